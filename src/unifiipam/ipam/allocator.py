"""
Allocation engine.

Resolves a claim to a concrete (address, prefix, gateway) triple using a
strict priority order, first success wins:

    1. Pinned: ``pool.spec.pre_allocations[claim name]``
    2. Requested: the claim's ``ipAddress`` annotation
    3. Dynamic: lowest free address, scanning subnets in declared order

The scan is not atomic against the store or the provider: callers must
serialise resolve-and-commit (the claim controller runs a single worker).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from unifiipam.ipam.addrset import (
    AddressSet,
    IPAddress,
    addresses_to_set,
    contains,
    first_free,
    first_usable,
    parse_address,
    parse_network,
    subnet_address_set,
    subnet_contains,
)
from unifiipam.ipam.exceptions import (
    AddressConflictError,
    ExternalConflictError,
    OutOfSubnetError,
    PoolExhaustedError,
)
from unifiipam.ipam.identity import mac_for_claim, same_mac
from unifiipam.utils.logger import get_logger

if TYPE_CHECKING:
    from unifiipam.models.resources import Claim, Pool, PoolSpec, Subnet

logger = get_logger(__name__)

DEFAULT_PREFIX = 24


class ProviderBinding(Protocol):
    """Anything the provider reports as holding an IP for a MAC."""

    ip: str
    mac: str


@dataclass
class Allocation:
    """Result of a successful resolve."""

    address: str
    prefix: int
    gateway: str | None
    source: str


# =============================================================================
# Effective Subnet Settings
# =============================================================================


def effective_prefix(
    subnet: Subnet, spec: PoolSpec, default_prefix: int = DEFAULT_PREFIX
) -> int:
    """Subnet override, else pool default, else the CIDR's own bits."""
    if subnet.prefix is not None:
        return subnet.prefix
    if spec.prefix is not None:
        return spec.prefix
    if subnet.cidr:
        return parse_network(subnet.cidr, strict=False).prefixlen
    return default_prefix


def effective_gateway(subnet: Subnet, spec: PoolSpec) -> str | None:
    """Subnet override, else pool default, else the CIDR's first usable address."""
    if subnet.gateway:
        return subnet.gateway
    if spec.gateway:
        return spec.gateway
    if subnet.cidr:
        return str(first_usable(parse_network(subnet.cidr, strict=False)))
    return None


def effective_dns_servers(subnet: Subnet, spec: PoolSpec) -> list[str]:
    return list(subnet.dns_servers or spec.dns_servers)


def owning_subnet(address: IPAddress, subnets: Iterable[Subnet]) -> Subnet | None:
    for subnet in subnets:
        if subnet_contains(subnet, address):
            return subnet
    return None


def pool_address_set(spec: PoolSpec) -> AddressSet:
    """Union of the allocatable address spaces of every subnet of a pool."""
    result = AddressSet()
    for subnet in spec.subnets:
        result = result.union(
            subnet_address_set(subnet, effective_gateway(subnet, spec))
        )
    return result


# =============================================================================
# Resolve
# =============================================================================


def resolve(
    pool: Pool,
    claim: Claim,
    static_assignments: Iterable[ProviderBinding] = (),
    bound_addresses: Mapping[str, str] | None = None,
    active_leases: Iterable[ProviderBinding] = (),
    default_prefix: int = DEFAULT_PREFIX,
) -> Allocation:
    """
    Resolve a claim to an address.

    Args:
        pool: Pool the claim references.
        claim: Claim being resolved; its name is the allocation key.
        static_assignments: Fixed assignments the provider already holds.
        bound_addresses: Claim name to address for every address currently
            bound in the store for this pool.
        active_leases: Best-effort extra conflict source for dynamic
            allocation.
        default_prefix: Prefix used when neither subnet, pool nor CIDR
            provide one.

    Returns:
        The resolved allocation.

    Raises:
        AddressParseError: On a malformed pinned or requested address.
        OutOfSubnetError: Pinned or requested address outside every subnet.
        AddressConflictError: Address bound to another claim.
        ExternalConflictError: Address held by a foreign MAC at the provider.
        PoolExhaustedError: No free address left in any subnet.
    """
    bound = dict(bound_addresses or {})
    static_assignments = list(static_assignments)
    claim_mac = mac_for_claim(claim.name)

    pinned = pool.spec.pre_allocations.get(claim.name, "").strip()
    if pinned:
        return _resolve_fixed(
            pool,
            claim.name,
            claim_mac,
            pinned,
            static_assignments,
            bound,
            allow_same_claim=True,
            source="pre-allocated",
            default_prefix=default_prefix,
        )

    requested = claim.requested_address
    if requested:
        return _resolve_fixed(
            pool,
            claim.name,
            claim_mac,
            requested,
            static_assignments,
            bound,
            allow_same_claim=False,
            source="requested",
            default_prefix=default_prefix,
        )

    return _resolve_dynamic(
        pool,
        claim.name,
        claim_mac,
        static_assignments,
        bound,
        list(active_leases),
        default_prefix,
    )


def _resolve_fixed(
    pool: Pool,
    claim_name: str,
    claim_mac: str,
    value: str,
    static_assignments: list[ProviderBinding],
    bound: dict[str, str],
    allow_same_claim: bool,
    source: str,
    default_prefix: int,
) -> Allocation:
    address = parse_address(value)
    spec = pool.spec

    if not contains(address, spec.subnets):
        raise OutOfSubnetError(str(address), claim_name, source)

    for bound_claim, bound_value in bound.items():
        if not _same_address(bound_value, address):
            continue
        if allow_same_claim and bound_claim == claim_name:
            continue
        raise AddressConflictError(str(address), bound_claim)

    for assignment in static_assignments:
        if not _same_address(assignment.ip, address):
            continue
        if same_mac(assignment.mac, claim_mac):
            continue
        raise ExternalConflictError(str(address), assignment.mac)

    subnet = owning_subnet(address, spec.subnets)
    if subnet is None:
        return Allocation(
            address=str(address),
            prefix=spec.prefix if spec.prefix is not None else default_prefix,
            gateway=spec.gateway,
            source=source,
        )

    logger.debug(f"Resolved {source} address {address} for claim {claim_name}")
    return Allocation(
        address=str(address),
        prefix=effective_prefix(subnet, spec, default_prefix),
        gateway=effective_gateway(subnet, spec),
        source=source,
    )


def _resolve_dynamic(
    pool: Pool,
    claim_name: str,
    claim_mac: str,
    static_assignments: list[ProviderBinding],
    bound: dict[str, str],
    active_leases: list[ProviderBinding],
    default_prefix: int,
) -> Allocation:
    spec = pool.spec

    # Provider entries held by this claim's own MAC are a previous allocation
    # of the same claim, not a conflict.
    own_ips = [a.ip for a in static_assignments if same_mac(a.mac, claim_mac)]
    foreign = [
        binding.ip
        for binding in [*static_assignments, *active_leases]
        if binding.ip and not same_mac(binding.mac, claim_mac)
    ]
    excluded = addresses_to_set([*bound.values(), *foreign])

    for subnet in spec.subnets:
        gateway = effective_gateway(subnet, spec)
        space = subnet_address_set(subnet, gateway)

        candidate = None
        for ip in own_ips:
            if ip in space and ip not in excluded:
                candidate = parse_address(ip)
                break
        if candidate is None:
            candidate = first_free(space, excluded)
        if candidate is None:
            continue

        logger.debug(f"Resolved dynamic address {candidate} for claim {claim_name}")
        return Allocation(
            address=str(candidate),
            prefix=effective_prefix(subnet, spec, default_prefix),
            gateway=gateway,
            source="dynamic",
        )

    raise PoolExhaustedError(pool.name)


def _same_address(value: str, address: IPAddress) -> bool:
    try:
        return parse_address(value) == address
    except ValueError:
        return False
