"""
UniFi IPAM CLI entry point.

Usage:
    unifiipam [OPTIONS] COMMAND [ARGS]...

Commands:
    serve  Run the manager server
    mac    Show the MAC address derived for a claim
"""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from unifiipam.ipam.identity import mac_for_claim
from unifiipam.models.enums import LogLevel
from unifiipam.server.config import config

console = Console()

app = typer.Typer(
    name="unifiipam",
    help="UniFi-backed IP address management",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command("serve")
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", "-H", help="Bind address", envvar="UNIFIIPAM_HOST"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-P", help="HTTP port", envvar="UNIFIIPAM_PORT"),
    ] = None,
    db_file: Annotated[
        str | None,
        typer.Option("--db", help="SQLite database file", envvar="UNIFIIPAM_DB"),
    ] = None,
    log_level: Annotated[
        LogLevel | None,
        typer.Option("--log-level", "-l", help="Log verbosity"),
    ] = None,
    log_file: Annotated[
        str | None,
        typer.Option("--log-file", help="Additional log file"),
    ] = None,
    watch_filter: Annotated[
        str | None,
        typer.Option("--watch-filter", help="Only reconcile claims with this watch-filter label"),
    ] = None,
    no_controllers: Annotated[
        bool,
        typer.Option("--no-controllers", help="Serve the API without reconciling"),
    ] = False,
):
    """Run the API server and the controllers."""
    from unifiipam.server.app import run

    if host:
        config.HOST_BIND_IP = host
    if port:
        config.HOST_PORT = port
    if db_file:
        config.DB_FILE = db_file
    if log_level:
        config.LOG_LEVEL = log_level
    if log_file:
        config.LOG_FILE = log_file
    if watch_filter is not None:
        config.WATCH_FILTER = watch_filter
    if no_controllers:
        config.CONTROLLERS_ENABLED = False

    run()


@app.command("mac")
def show_mac(
    claim_names: Annotated[list[str], typer.Argument(help="Claim name(s)")],
):
    """Show the MAC address registered with the controller for each claim."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Claim")
    table.add_column("MAC Address", style="cyan")
    for name in claim_names:
        table.add_row(name, mac_for_claim(name))
    console.print(table)


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
