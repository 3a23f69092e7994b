"""IPAM exception classes."""


class IPAMError(Exception):
    """Base exception for address management operations."""

    pass


# =============================================================================
# Parsing
# =============================================================================


class AddressParseError(IPAMError, ValueError):
    """Malformed address, CIDR or range string."""

    def __init__(self, value: str, reason: str = ""):
        self.value = value
        message = f"invalid address format: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class OutOfRangeError(IPAMError, IndexError):
    """Index-based enumeration walked past the last usable address."""

    def __init__(self, index: int, subnet: str):
        self.index = index
        self.subnet = subnet
        super().__init__(f"index {index} out of range for {subnet}")


# =============================================================================
# Allocation
# =============================================================================


class AllocationError(IPAMError):
    """Base class for failures to resolve a claim to an address."""

    pass


class OutOfSubnetError(AllocationError):
    """A pinned or requested address is outside every configured subnet."""

    def __init__(self, address: str, claim_name: str, source: str = "requested"):
        self.address = address
        self.claim_name = claim_name
        super().__init__(
            f"{source} address {address} for claim {claim_name} "
            f"is not in configured subnets"
        )


class AddressConflictError(AllocationError):
    """The address is already bound to another claim in the store."""

    def __init__(self, address: str, bound_to: str):
        self.address = address
        self.bound_to = bound_to
        super().__init__(f"address {address} is already assigned to claim {bound_to}")


class ExternalConflictError(AllocationError):
    """The provider already assigns the address to a foreign MAC."""

    def __init__(self, address: str, mac: str):
        self.address = address
        self.mac = mac
        super().__init__(f"address {address} has a provider conflict with MAC {mac}")


class PoolExhaustedError(AllocationError):
    """Every subnet of the pool is fully excluded."""

    def __init__(self, pool_name: str):
        self.pool_name = pool_name
        super().__init__(f"exhausted IP pool {pool_name}: no free addresses available")


# =============================================================================
# Dependencies
# =============================================================================


class DependencyNotReadyError(IPAMError):
    """A referenced resource is missing or not ready yet; retry later."""

    pass


class PoolNotFoundError(DependencyNotReadyError):
    """The pool referenced by a claim does not exist."""

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name
        super().__init__(f"pool {namespace}/{name} not found")


class InstanceNotReadyError(DependencyNotReadyError):
    """The provider instance is missing or failed credential validation."""

    def __init__(self, namespace: str, name: str, reason: str = "not ready"):
        self.namespace = namespace
        self.name = name
        super().__init__(f"instance {namespace}/{name} {reason}")


class NetworkNotDiscoveredError(DependencyNotReadyError):
    """The pool has neither an explicit nor a discovered network ID."""

    def __init__(self, pool_name: str):
        self.pool_name = pool_name
        super().__init__(f"pool {pool_name} has no network ID (not discovered yet)")
