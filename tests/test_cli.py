"""Tests for the command line interface."""

from typer.testing import CliRunner

from unifiipam.cli.main import app
from unifiipam.ipam.identity import mac_for_claim

runner = CliRunner()


def test_mac_lists_each_claim():
    result = runner.invoke(app, ["mac", "cp-0", "worker-1"])
    assert result.exit_code == 0
    assert mac_for_claim("cp-0") in result.output
    assert mac_for_claim("worker-1") in result.output


def test_no_arguments_shows_help():
    result = runner.invoke(app, [])
    assert "serve" in result.output
    assert "mac" in result.output
