"""
Pool statistics and capacity.

Everything here is derived fresh from the pool declaration and the bound
addresses; nothing is patched incrementally.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from unifiipam.ipam.addrset import AddressSet, parse_address
from unifiipam.ipam.exceptions import AddressParseError
from unifiipam.models.enums import ConditionReason, ConditionType
from unifiipam.models.resources import (
    AddressStats,
    AllocatedIP,
    AllocationDetails,
    CapacityStatus,
    set_condition,
)

if TYPE_CHECKING:
    from unifiipam.models.resources import Address, PoolStatus

HIGH_UTILIZATION_PERCENT = 80
NEAR_EXHAUSTION_PERCENT = 90
EXHAUSTED_PERCENT = 100


def compute_address_stats(pool_set: AddressSet, addresses: Iterable[str]) -> AddressStats:
    """
    Count total/used/free/out-of-range addresses.

    Args:
        pool_set: Allocatable address space of the pool.
        addresses: Bound address strings. Empty or malformed entries are
            ignored.
    """
    total = pool_set.size
    used = 0
    out_of_range = 0

    for value in addresses:
        if not value:
            continue
        try:
            address = parse_address(value)
        except AddressParseError:
            continue
        if address in pool_set:
            used += 1
        else:
            out_of_range += 1

    return AddressStats(
        total=total,
        used=used,
        free=max(total - used, 0),
        out_of_range=out_of_range,
    )


def compute_capacity(stats: AddressStats) -> CapacityStatus:
    if stats.total <= 0:
        return CapacityStatus(utilization_percent=0, high_utilization=False)
    utilization = stats.used * 100 // stats.total
    return CapacityStatus(
        utilization_percent=utilization,
        high_utilization=utilization >= HIGH_UTILIZATION_PERCENT,
    )


def build_allocations(addresses: Iterable[Address]) -> dict[str, str]:
    """Claim name to bound address, rebuilt from the address objects."""
    return {
        a.spec.claim_ref.name: a.spec.address
        for a in addresses
        if a.spec.claim_ref.name and a.spec.address
    }


def build_allocation_details(
    addresses: Iterable[Address], cluster_label: str
) -> AllocationDetails:
    """Per-IP allocation details, ordered by allocation time."""
    allocated = [
        AllocatedIP(
            ip=a.spec.address,
            claim_name=a.spec.claim_ref.name,
            cluster_name=a.metadata.labels.get(cluster_label, ""),
            mac_address=a.spec.mac_address or "",
            allocated_at=a.metadata.creation_timestamp,
        )
        for a in addresses
        if a.spec.address
    ]
    allocated.sort(key=lambda item: (item.allocated_at is None, item.allocated_at, item.ip))

    times = [item.allocated_at for item in allocated if item.allocated_at is not None]
    return AllocationDetails(
        allocated_ips=allocated,
        first_allocation_time=min(times) if times else None,
        last_allocation_time=max(times) if times else None,
    )


def apply_capacity_conditions(status: PoolStatus, generation: int = 0) -> None:
    """
    Set the Healthy and Exhausted conditions from current statistics.

    Healthy is false from 90% utilisation (or with out-of-range addresses);
    Exhausted is true at 100%.
    """
    stats = status.addresses
    utilization = status.capacity.utilization_percent
    exhausted = stats.total > 0 and utilization >= EXHAUSTED_PERCENT

    if exhausted:
        set_condition(
            status.conditions,
            ConditionType.EXHAUSTED,
            True,
            ConditionReason.POOL_EXHAUSTED.value,
            f"All {stats.total} addresses are in use",
            generation,
        )
    else:
        set_condition(
            status.conditions,
            ConditionType.EXHAUSTED,
            False,
            ConditionReason.CAPACITY_AVAILABLE.value,
            f"{stats.free} of {stats.total} addresses free",
            generation,
        )

    if exhausted:
        healthy, reason = False, ConditionReason.POOL_EXHAUSTED
        message = "Pool has no free addresses"
    elif utilization >= NEAR_EXHAUSTION_PERCENT:
        healthy, reason = False, ConditionReason.NEAR_EXHAUSTION
        message = f"Pool is {utilization}% utilized"
    elif stats.out_of_range > 0:
        healthy, reason = False, ConditionReason.OUT_OF_RANGE_ADDRESSES
        message = (
            f"{stats.out_of_range} bound addresses are outside the configured subnets"
        )
    elif status.capacity.high_utilization:
        healthy, reason = True, ConditionReason.HIGH_UTILIZATION
        message = f"Pool is {utilization}% utilized"
    else:
        healthy, reason = True, ConditionReason.HEALTHY
        message = f"Pool is {utilization}% utilized"

    set_condition(
        status.conditions,
        ConditionType.HEALTHY,
        healthy,
        reason.value,
        message,
        generation,
    )
