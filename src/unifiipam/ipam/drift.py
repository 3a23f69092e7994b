"""
Drift detection between a pool and its backing provider network.

The provider network is translated into an equivalent subnet declaration
and compared with the first subnet of the pool. Auto-discovery finds the
provider network whose CIDR fully contains a pool's first subnet.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from unifiipam.ipam.addrset import (
    IPNetwork,
    first_usable,
    last_usable,
    parse_address,
    parse_network,
    representative_network,
)
from unifiipam.ipam.allocator import DEFAULT_PREFIX, effective_gateway, effective_prefix
from unifiipam.ipam.exceptions import AddressParseError
from unifiipam.models.resources import NetworkInfo, ObservedNetworkConfig, Subnet

if TYPE_CHECKING:
    from unifiipam.models.resources import PoolSpec
    from unifiipam.unifi.client import Network


def network_to_subnet(network: Network) -> Subnet:
    """
    Translate a provider network into a subnet declaration.

    Gateway is the provider's DHCP gateway when that override is enabled,
    else the first usable address of the CIDR. With DHCP enabled, the parts
    of the usable range before the DHCP start and after the DHCP stop are
    excluded. DNS servers are copied when DHCP DNS is enabled.

    Raises:
        AddressParseError: If the network has no valid CIDR or DHCP bounds.
    """
    if not network.cidr:
        raise AddressParseError("", f"network {network.id} has no IP subnet configured")

    block = parse_network(network.cidr, strict=False)
    subnet = Subnet(
        cidr=str(block),
        prefix=block.prefixlen,
        gateway=network.gateway or str(first_usable(block)),
    )

    if network.dhcp_enabled and network.dhcp_start and network.dhcp_stop:
        subnet.exclude_ranges = dhcp_complement(block, network.dhcp_start, network.dhcp_stop)

    if network.dhcp_dns_enabled and network.dhcp_dns:
        subnet.dns_servers = list(network.dhcp_dns)

    return subnet


def dhcp_complement(block: IPNetwork, dhcp_start: str, dhcp_stop: str) -> list[str]:
    """Ranges of the usable block before the DHCP start and after the DHCP stop."""
    start = parse_address(dhcp_start)
    stop = parse_address(dhcp_stop)
    low = first_usable(block)
    high = last_usable(block)

    ranges = []
    if start > low:
        ranges.append(f"{low}-{start - 1}")
    if stop < high:
        ranges.append(f"{stop + 1}-{high}")
    return ranges


def detect_drift(
    spec: PoolSpec, observed: Subnet, default_prefix: int = DEFAULT_PREFIX
) -> list[str]:
    """
    Compare the pool's first subnet with the provider-derived subnet.

    Returns:
        Human-readable differences; empty when in sync.
    """
    if not spec.subnets:
        return []

    declared = spec.subnets[0]
    differences = []

    declared_block = representative_network(
        declared, effective_prefix(declared, spec, default_prefix)
    )
    observed_block = parse_network(observed.cidr or "", strict=False)
    if declared_block != observed_block:
        differences.append(f"CIDR {declared_block} != provider {observed_block}")

    declared_gateway = effective_gateway(declared, spec)
    if declared_gateway and observed.gateway:
        if parse_address(declared_gateway) != parse_address(observed.gateway):
            differences.append(
                f"gateway {declared_gateway} != provider {observed.gateway}"
            )

    return differences


def find_network_for_subnet(
    networks: Iterable[Network], block: IPNetwork
) -> Network | None:
    """First provider network whose CIDR contains both ends of ``block``."""
    for network in networks:
        if not network.cidr:
            continue
        try:
            candidate = parse_network(network.cidr, strict=False)
        except AddressParseError:
            continue
        if candidate.version != block.version:
            continue
        if block.network_address in candidate and block.broadcast_address in candidate:
            return network
    return None


def observed_config(network: Network, observed: Subnet) -> ObservedNetworkConfig:
    return ObservedNetworkConfig(
        cidr=observed.cidr or "",
        gateway=observed.gateway or "",
        dhcp_enabled=network.dhcp_enabled,
        dhcp_range=network.dhcp_range,
    )


def network_info(network: Network) -> NetworkInfo:
    return NetworkInfo(
        name=network.name,
        vlan=network.vlan,
        purpose=network.purpose,
        network_group=network.network_group,
        dhcp_lease_time=network.dhcp_lease_time,
    )
