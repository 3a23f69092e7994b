"""Tests for address-set arithmetic."""

import ipaddress

import pytest

from unifiipam.ipam.addrset import (
    AddressSet,
    address_at,
    addresses_to_set,
    contains,
    first_free,
    parse_address,
    parse_exclude,
    parse_network,
    representative_network,
    subnet_address_set,
)
from unifiipam.ipam.exceptions import AddressParseError, OutOfRangeError
from unifiipam.models.resources import Subnet


def ip(value: str):
    return ipaddress.ip_address(value)


class TestParsing:
    def test_parse_address_rejects_garbage(self):
        with pytest.raises(AddressParseError):
            parse_address("10.1.40.300")

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_address("not-an-ip")

    def test_parse_network_requires_prefix(self):
        with pytest.raises(AddressParseError, match="missing prefix length"):
            parse_network("10.1.40.0")

    def test_parse_network_non_strict_accepts_host_bits(self):
        assert str(parse_network("10.1.40.1/24", strict=False)) == "10.1.40.0/24"

    def test_parse_exclude_forms(self):
        assert parse_exclude("10.0.0.5") == (ip("10.0.0.5"), ip("10.0.0.5"))
        assert parse_exclude("10.0.0.5-10.0.0.9") == (ip("10.0.0.5"), ip("10.0.0.9"))
        assert parse_exclude("10.0.0.8/30") == (ip("10.0.0.8"), ip("10.0.0.11"))

    def test_parse_exclude_rejects_reversed_range(self):
        with pytest.raises(AddressParseError):
            parse_exclude("10.0.0.9-10.0.0.5")


class TestAddressSet:
    def test_ranges_are_merged(self):
        s = AddressSet.from_addresses([ip("10.0.0.1"), ip("10.0.0.2"), ip("10.0.0.3")])
        assert s.ranges() == [(ip("10.0.0.1"), ip("10.0.0.3"))]
        assert s.size == 3

    def test_difference_splits_range(self):
        s = AddressSet.from_range(ip("10.0.0.1"), ip("10.0.0.10"))
        s = s - AddressSet.from_range(ip("10.0.0.4"), ip("10.0.0.6"))
        assert s.ranges() == [
            (ip("10.0.0.1"), ip("10.0.0.3")),
            (ip("10.0.0.7"), ip("10.0.0.10")),
        ]
        assert "10.0.0.5" not in s
        assert "10.0.0.7" in s

    def test_union_keeps_families_apart(self):
        v4 = AddressSet.from_addresses([ip("10.0.0.1")])
        v6 = AddressSet.from_addresses([ip("fd00::1")])
        both = v4 | v6
        assert both.size == 2
        assert both.first() == ip("10.0.0.1")
        assert "fd00::1" in both

    def test_contains_ignores_unparseable(self):
        assert "garbage" not in AddressSet.from_addresses([ip("10.0.0.1")])

    def test_large_ipv6_block_is_not_expanded(self):
        s = AddressSet.from_network(ipaddress.ip_network("fd00::/64"))
        assert s.size == 2**64
        assert s.first() == ip("fd00::")

    def test_empty_set(self):
        assert not AddressSet()
        assert AddressSet().first() is None


class TestAddressAt:
    def test_ipv4_cidr_skips_network_address(self):
        subnet = Subnet(cidr="10.1.40.0/24")
        assert address_at(subnet, 0) == ip("10.1.40.1")
        assert address_at(subnet, 253) == ip("10.1.40.254")

    def test_ipv4_cidr_never_yields_broadcast(self):
        with pytest.raises(OutOfRangeError):
            address_at(Subnet(cidr="10.1.40.0/24"), 254)

    def test_ipv6_cidr_starts_at_network_address(self):
        assert address_at(Subnet(cidr="fd00::/120"), 0) == ip("fd00::")

    def test_range_is_inclusive_and_bounded(self):
        subnet = Subnet(start="10.1.50.10", end="10.1.50.20")
        assert address_at(subnet, 0) == ip("10.1.50.10")
        assert address_at(subnet, 10) == ip("10.1.50.20")
        with pytest.raises(OutOfRangeError):
            address_at(subnet, 11)

    def test_negative_index(self):
        with pytest.raises(OutOfRangeError):
            address_at(Subnet(cidr="10.1.40.0/24"), -1)

    def test_point_to_point_blocks_are_fully_usable(self):
        assert address_at(Subnet(cidr="10.0.0.0/31"), 0) == ip("10.0.0.0")
        assert address_at(Subnet(cidr="10.0.0.0/31"), 1) == ip("10.0.0.1")
        assert address_at(Subnet(cidr="10.0.0.7/32"), 0) == ip("10.0.0.7")

    def test_enumeration_is_monotonic(self):
        subnet = Subnet(start="10.1.50.10", end="10.1.50.20")
        addresses = [address_at(subnet, i) for i in range(11)]
        assert addresses == sorted(addresses)


class TestContains:
    def test_cidr_and_range(self):
        subnets = [Subnet(cidr="10.1.40.0/24"), Subnet(start="10.1.50.10", end="10.1.50.20")]
        assert contains("10.1.40.77", subnets)
        assert contains("10.1.50.10", subnets)
        assert contains("10.1.50.20", subnets)
        assert not contains("10.1.50.21", subnets)
        assert not contains("10.1.41.1", subnets)

    def test_malformed_never_matches(self):
        assert not contains("nope", [Subnet(cidr="10.1.40.0/24")])
        assert not contains("10.1.40.1", [Subnet(cidr="bogus")])


class TestSubnetAddressSet:
    def test_gateway_and_excludes_removed(self):
        subnet = Subnet(
            cidr="10.1.40.0/24",
            exclude_ranges=["10.1.40.2", "10.1.40.10-10.1.40.19", "10.1.40.128/25"],
        )
        space = subnet_address_set(subnet, "10.1.40.1")
        assert space.first() == ip("10.1.40.3")
        assert "10.1.40.10" not in space
        assert "10.1.40.20" in space
        assert "10.1.40.200" not in space
        # .1-.127 minus gateway, .2 and ten excluded addresses
        assert space.size == 127 - 1 - 1 - 10

    def test_malformed_exclude_raises(self):
        with pytest.raises(AddressParseError):
            subnet_address_set(Subnet(cidr="10.1.40.0/24", exclude_ranges=["10.1.40.x"]))

    def test_neither_form_raises(self):
        with pytest.raises(AddressParseError):
            subnet_address_set(Subnet())


class TestSpokenFor:
    def test_addresses_to_set_mixes_hosts_and_blocks(self):
        s = addresses_to_set(["10.0.0.1", "", "10.0.0.8/30"])
        assert s.size == 5

    def test_first_free(self):
        pool_set = AddressSet.from_range(ip("10.0.0.1"), ip("10.0.0.5"))
        excluded = addresses_to_set(["10.0.0.1", "10.0.0.2", "10.0.0.4"])
        assert first_free(pool_set, excluded) == ip("10.0.0.3")

    def test_first_free_exhausted(self):
        pool_set = AddressSet.from_range(ip("10.0.0.1"), ip("10.0.0.2"))
        assert first_free(pool_set, pool_set) is None


class TestRepresentativeNetwork:
    def test_cidr_is_its_own_block(self):
        assert str(representative_network(Subnet(cidr="10.1.40.0/24"), 16)) == "10.1.40.0/24"

    def test_range_widened_by_prefix(self):
        subnet = Subnet(start="10.1.50.10", end="10.1.50.20")
        assert str(representative_network(subnet, 24)) == "10.1.50.0/24"
