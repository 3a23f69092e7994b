"""
Address-set arithmetic over pool subnets.

Subnets are declared either as a CIDR block or as an inclusive start/end
range. This module turns those declarations into exclusion-aware address
spaces and answers the questions the allocator and the pool status engine
ask of them: what is the N-th usable address, is an address configured,
which addresses are left.

Address sets are stored as sorted, merged integer ranges per IP family so
that large IPv6 blocks never have to be expanded.

Usable addresses of a CIDR block:
    - IPv4: network and broadcast addresses are skipped (except /31 and /32,
      where every address is usable)
    - IPv6: every address of the prefix is usable
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Union

from unifiipam.ipam.exceptions import AddressParseError, OutOfRangeError

if TYPE_CHECKING:
    from unifiipam.models.resources import Subnet

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


# =============================================================================
# Parsing
# =============================================================================


def parse_address(value: str) -> IPAddress:
    """
    Parse a single IP address.

    Raises:
        AddressParseError: If the string is not a valid IPv4/IPv6 address.
    """
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError as e:
        raise AddressParseError(value, str(e)) from e


def parse_network(value: str, strict: bool = True) -> IPNetwork:
    """
    Parse a CIDR block.

    Args:
        value: CIDR string, e.g. ``"10.1.40.0/24"``.
        strict: Reject blocks with host bits set (``10.1.40.1/24``).

    Raises:
        AddressParseError: If the string is not a valid CIDR.
    """
    if "/" not in value:
        raise AddressParseError(value, "missing prefix length")
    try:
        return ipaddress.ip_network(value.strip(), strict=strict)
    except ValueError as e:
        raise AddressParseError(value, str(e)) from e


def parse_range(value: str) -> tuple[IPAddress, IPAddress]:
    """
    Parse an ``"a-b"`` inclusive address range.

    Raises:
        AddressParseError: If either end is invalid, families differ, or a > b.
    """
    parts = value.split("-")
    if len(parts) != 2:
        raise AddressParseError(value, "expected 'start-end'")
    start = parse_address(parts[0])
    end = parse_address(parts[1])
    if start.version != end.version:
        raise AddressParseError(value, "mixed address families")
    if start > end:
        raise AddressParseError(value, "start is greater than end")
    return start, end


def parse_exclude(value: str) -> tuple[IPAddress, IPAddress]:
    """Parse an exclude entry (single IP, CIDR or range) into inclusive bounds."""
    value = value.strip()
    if "/" in value:
        network = parse_network(value, strict=False)
        return network.network_address, network.broadcast_address
    if "-" in value:
        return parse_range(value)
    address = parse_address(value)
    return address, address


# =============================================================================
# AddressSet
# =============================================================================


class AddressSet:
    """
    Immutable-by-convention set of IP addresses.

    Internally a sorted list of non-overlapping, non-adjacent
    ``(version, first, last)`` integer ranges. IPv4 ranges sort before IPv6.
    """

    def __init__(self, ranges: Iterable[tuple[int, int, int]] = ()):
        self._ranges: list[tuple[int, int, int]] = _merge(ranges)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_range(cls, start: IPAddress, end: IPAddress) -> AddressSet:
        if start > end:
            return cls()
        return cls([(start.version, int(start), int(end))])

    @classmethod
    def from_network(cls, network: IPNetwork) -> AddressSet:
        return cls.from_range(network.network_address, network.broadcast_address)

    @classmethod
    def from_addresses(cls, addresses: Iterable[IPAddress]) -> AddressSet:
        return cls((a.version, int(a), int(a)) for a in addresses)

    # -------------------------------------------------------------------------
    # Set algebra
    # -------------------------------------------------------------------------

    def union(self, other: AddressSet) -> AddressSet:
        return AddressSet(self._ranges + other._ranges)

    def difference(self, other: AddressSet) -> AddressSet:
        result: list[tuple[int, int, int]] = []
        for version, lo, hi in self._ranges:
            pieces = [(lo, hi)]
            for o_version, o_lo, o_hi in other._ranges:
                if o_version != version:
                    continue
                next_pieces = []
                for p_lo, p_hi in pieces:
                    if o_hi < p_lo or o_lo > p_hi:
                        next_pieces.append((p_lo, p_hi))
                        continue
                    if o_lo > p_lo:
                        next_pieces.append((p_lo, o_lo - 1))
                    if o_hi < p_hi:
                        next_pieces.append((o_hi + 1, p_hi))
                pieces = next_pieces
                if not pieces:
                    break
            result.extend((version, p_lo, p_hi) for p_lo, p_hi in pieces)
        return AddressSet(result)

    def remove(self, address: IPAddress) -> AddressSet:
        return self.difference(AddressSet.from_addresses([address]))

    __or__ = union
    __sub__ = difference

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __contains__(self, address: object) -> bool:
        if isinstance(address, str):
            try:
                address = parse_address(address)
            except AddressParseError:
                return False
        if not isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            return False
        value = int(address)
        for version, lo, hi in self._ranges:
            if version == address.version and lo <= value <= hi:
                return True
        return False

    def __iter__(self) -> Iterator[IPAddress]:
        for version, lo, hi in self._ranges:
            for value in range(lo, hi + 1):
                yield _make_address(version, value)

    def __bool__(self) -> bool:
        return bool(self._ranges)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AddressSet):
            return NotImplemented
        return self._ranges == other._ranges

    def __repr__(self) -> str:
        parts = [
            f"{_make_address(v, lo)}-{_make_address(v, hi)}"
            for v, lo, hi in self._ranges
        ]
        return f"AddressSet([{', '.join(parts)}])"

    @property
    def size(self) -> int:
        """Exact number of addresses (may exceed sys.maxsize for IPv6)."""
        return sum(hi - lo + 1 for _, lo, hi in self._ranges)

    def ranges(self) -> list[tuple[IPAddress, IPAddress]]:
        return [
            (_make_address(v, lo), _make_address(v, hi)) for v, lo, hi in self._ranges
        ]

    def first(self) -> IPAddress | None:
        if not self._ranges:
            return None
        version, lo, _ = self._ranges[0]
        return _make_address(version, lo)


def _make_address(version: int, value: int) -> IPAddress:
    if version == 4:
        return ipaddress.IPv4Address(value)
    return ipaddress.IPv6Address(value)


def _merge(ranges: Iterable[tuple[int, int, int]]) -> list[tuple[int, int, int]]:
    merged: list[tuple[int, int, int]] = []
    for version, lo, hi in sorted(ranges):
        if merged:
            m_version, m_lo, m_hi = merged[-1]
            if m_version == version and lo <= m_hi + 1:
                merged[-1] = (version, m_lo, max(m_hi, hi))
                continue
        merged.append((version, lo, hi))
    return merged


# =============================================================================
# CIDR Helpers
# =============================================================================


def first_usable(network: IPNetwork) -> IPAddress:
    """First usable address: the network address is skipped for IPv4."""
    if network.version == 4 and network.prefixlen < 31:
        return network.network_address + 1
    return network.network_address


def last_usable(network: IPNetwork) -> IPAddress:
    """Last usable address: the broadcast address is skipped for IPv4."""
    if network.version == 4 and network.prefixlen < 31:
        return network.broadcast_address - 1
    return network.broadcast_address


def subnet_bounds(subnet: Subnet) -> tuple[IPAddress, IPAddress]:
    """
    Inclusive bounds of a subnet's addressable range.

    Raises:
        AddressParseError: If the subnet declaration cannot be parsed or
            declares neither form.
    """
    if subnet.cidr:
        network = parse_network(subnet.cidr, strict=False)
        return first_usable(network), last_usable(network)
    if subnet.start and subnet.end:
        start = parse_address(subnet.start)
        end = parse_address(subnet.end)
        if start.version != end.version:
            raise AddressParseError(f"{subnet.start}-{subnet.end}", "mixed families")
        if start > end:
            raise AddressParseError(
                f"{subnet.start}-{subnet.end}", "start is greater than end"
            )
        return start, end
    raise AddressParseError(repr(subnet), "subnet must have either cidr or start/end")


def subnet_label(subnet: Subnet) -> str:
    if subnet.cidr:
        return subnet.cidr
    return f"{subnet.start}-{subnet.end}"


# =============================================================================
# Subnet Operations
# =============================================================================


def address_at(subnet: Subnet, index: int) -> IPAddress:
    """
    Deterministic index-based enumeration of a subnet.

    Index 0 is the first usable address of a CIDR block, or ``start`` for
    a range. Enumeration never wraps.

    Raises:
        OutOfRangeError: If the index is negative or beyond the last
            usable address.
        AddressParseError: If the subnet declaration is invalid.
    """
    first, last = subnet_bounds(subnet)
    if index < 0 or int(first) + index > int(last):
        raise OutOfRangeError(index, subnet_label(subnet))
    return _make_address(first.version, int(first) + index)


def contains(address: str | IPAddress, subnets: Iterable[Subnet]) -> bool:
    """
    True if the address lies inside any of the subnets.

    CIDR subnets use plain block containment; ranges compare inclusively.
    Unparseable addresses and subnets never match.
    """
    if isinstance(address, str):
        try:
            address = parse_address(address)
        except AddressParseError:
            return False

    return any(subnet_contains(subnet, address) for subnet in subnets)


def subnet_contains(subnet: Subnet, address: IPAddress) -> bool:
    try:
        if subnet.cidr:
            return address in parse_network(subnet.cidr, strict=False)
        if subnet.start and subnet.end:
            start = parse_address(subnet.start)
            end = parse_address(subnet.end)
            return address.version == start.version and start <= address <= end
    except AddressParseError:
        return False
    return False


def subnet_address_set(subnet: Subnet, gateway: str | None = None) -> AddressSet:
    """
    Build a subnet's allocatable address space.

    The result is the usable range of the subnet minus the gateway minus
    every exclude entry.

    Args:
        subnet: Subnet declaration.
        gateway: Effective gateway of the subnet, if any.

    Raises:
        AddressParseError: If the subnet, the gateway or an exclude entry
            is malformed.
    """
    first, last = subnet_bounds(subnet)
    space = AddressSet.from_range(first, last)

    if gateway:
        space = space.remove(parse_address(gateway))

    for entry in subnet.exclude_ranges:
        if not entry.strip():
            continue
        lo, hi = parse_exclude(entry)
        space = space.difference(AddressSet.from_range(lo, hi))

    return space


def addresses_to_set(addresses: Iterable[str]) -> AddressSet:
    """
    Parse single addresses and CIDR blocks into one set.

    Empty strings are skipped.

    Raises:
        AddressParseError: On any malformed entry.
    """
    ranges: list[tuple[int, int, int]] = []
    for value in addresses:
        value = value.strip()
        if not value:
            continue
        if "/" in value:
            network = parse_network(value, strict=False)
            ranges.append(
                (
                    network.version,
                    int(network.network_address),
                    int(network.broadcast_address),
                )
            )
        else:
            address = parse_address(value)
            ranges.append((address.version, int(address), int(address)))
    return AddressSet(ranges)


def first_free(pool_set: AddressSet, excluded: AddressSet) -> IPAddress | None:
    """Lowest address of ``pool_set`` not present in ``excluded``."""
    return pool_set.difference(excluded).first()


def representative_network(subnet: Subnet, prefix: int) -> IPNetwork:
    """
    CIDR block representing a subnet, for matching against provider networks.

    CIDR subnets return their own block. A range is widened to the block of
    ``prefix`` bits containing its start address.
    """
    if subnet.cidr:
        return parse_network(subnet.cidr, strict=False)
    if not subnet.start:
        raise AddressParseError(repr(subnet), "subnet must have either cidr or start/end")
    start = parse_address(subnet.start)
    return parse_network(f"{start}/{prefix}", strict=False)
