"""
IP address management core.

Pure functions over pool declarations: address-set arithmetic, the
allocation engine, claim identities, pool statistics and drift detection.
Nothing in this package talks to the store or the provider.
"""

from unifiipam.ipam.addrset import (
    AddressSet,
    address_at,
    contains,
    parse_address,
    parse_network,
    subnet_address_set,
)
from unifiipam.ipam.allocator import (
    Allocation,
    effective_gateway,
    effective_prefix,
    pool_address_set,
    resolve,
)
from unifiipam.ipam.drift import detect_drift, find_network_for_subnet, network_to_subnet
from unifiipam.ipam.identity import mac_for_claim

__all__ = [
    # Address sets
    "AddressSet",
    "address_at",
    "contains",
    "parse_address",
    "parse_network",
    "subnet_address_set",
    # Allocation
    "Allocation",
    "effective_gateway",
    "effective_prefix",
    "pool_address_set",
    "resolve",
    # Drift
    "detect_drift",
    "find_network_for_subnet",
    "network_to_subnet",
    # Identity
    "mac_for_claim",
]
