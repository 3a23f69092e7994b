"""Tests for the claim name to MAC derivation."""

import re

from unifiipam.ipam.identity import mac_for_claim, normalize_mac, same_mac

MAC_RE = re.compile(r"^02(:[0-9a-f]{2}){5}$")


def test_mac_is_stable_and_locally_administered():
    mac = mac_for_claim("cp-0")
    assert mac == mac_for_claim("cp-0")
    assert MAC_RE.match(mac)


def test_same_length_names_do_not_collide():
    names = [f"node-{i:03d}" for i in range(500)]
    macs = {mac_for_claim(name) for name in names}
    assert len(macs) == len(names)


def test_normalize_mac_accepts_common_forms():
    assert normalize_mac("02-AB-CD-EF-01-23") == "02:ab:cd:ef:01:23"
    assert normalize_mac("02abcdef0123") == "02:ab:cd:ef:01:23"


def test_same_mac():
    assert same_mac("02:AB:cd:ef:01:23", "02-ab-cd-ef-01-23")
    assert not same_mac("02:ab:cd:ef:01:23", "02:ab:cd:ef:01:24")
    assert not same_mac(None, "02:ab:cd:ef:01:23")
    assert not same_mac("", "")
