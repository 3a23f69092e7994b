"""
Enumeration types for the IPAM provider.

This module defines the enumerations shared by the resource models, the
reconcilers and the configuration so status values stay consistent.
"""

from enum import Enum


# =============================================================================
# Condition Enums
# =============================================================================


class ConditionType(str, Enum):
    """
    Condition types reported on pools, claims and instances.

    Pools carry NetworkSynced, Ready, Healthy, Exhausted and NetworkDiscovered.
    Claims and instances only carry Ready.
    """

    READY = "Ready"
    HEALTHY = "Healthy"
    EXHAUSTED = "Exhausted"
    NETWORK_SYNCED = "NetworkSynced"
    NETWORK_DISCOVERED = "NetworkDiscovered"


class ConditionStatus(str, Enum):
    """Tri-state condition status, as in Kubernetes conditions."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionReason(str, Enum):
    """Machine-readable reasons attached to conditions."""

    # Pool readiness
    POOL_READY = "PoolReady"
    INSTANCE_NOT_READY = "InstanceNotReady"
    INSTANCE_NOT_FOUND = "InstanceNotFound"
    NO_SUBNETS = "NoSubnets"
    INVALID_CONFIGURATION = "InvalidConfiguration"

    # Pool health / capacity
    HEALTHY = "Healthy"
    HIGH_UTILIZATION = "HighUtilization"
    NEAR_EXHAUSTION = "NearExhaustion"
    POOL_EXHAUSTED = "PoolExhausted"
    CAPACITY_AVAILABLE = "CapacityAvailable"
    OUT_OF_RANGE_ADDRESSES = "OutOfRangeAddresses"

    # Network discovery / sync
    NETWORK_FOUND = "NetworkFound"
    NETWORK_NOT_FOUND = "NetworkNotFound"
    NETWORK_CONFIGURED = "NetworkConfigured"
    DISCOVERY_FAILED = "DiscoveryFailed"
    SYNCED = "Synced"
    CONFIGURATION_DRIFT = "ConfigurationDrift"
    SYNC_FAILED = "SyncFailed"

    # Claims
    ADDRESS_ALLOCATED = "AddressAllocated"
    ALLOCATION_FAILED = "AllocationFailed"
    POOL_NOT_FOUND = "PoolNotFound"
    DEPENDENCY_NOT_READY = "DependencyNotReady"

    # Instances
    CREDENTIALS_VALID = "CredentialsValid"
    SECRET_NOT_FOUND = "SecretNotFound"
    INVALID_CREDENTIALS = "InvalidCredentials"
    CLIENT_CREATION_FAILED = "ClientCreationFailed"
    CREDENTIALS_VALIDATION_FAILED = "CredentialsValidationFailed"


# =============================================================================
# Store Enums
# =============================================================================


class EventType(str, Enum):
    """
    Kind of change delivered to resource store watchers.

    MODIFIED is also used for a deletion request on an object that still has
    finalizers; DELETED is only emitted once the object is actually gone.
    """

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
