"""
Pydantic models for the resources managed by the IPAM provider.

Every resource carries an ``ObjectMeta`` (identity, labels, annotations,
finalizers, owner references) plus a spec and, where applicable, a status.
The resource store persists these models as JSON and the HTTP API exposes
them directly.

Resource Kinds:
    - Pool: subnets and defaults addresses are allocated from
    - Claim: a request for one address from a pool
    - Address: the concrete (IP, prefix, gateway) bound to a claim
    - Instance: connection details of one UniFi controller
    - Secret: credentials referenced by an instance
"""

import datetime
import uuid
from typing import ClassVar

from pydantic import BaseModel, Field

from unifiipam.constants import (
    ADDRESS_KIND,
    API_GROUP,
    API_VERSION,
    CLAIM_KIND,
    CLUSTER_NAME_LABEL,
    DEFAULT_SITE,
    INSTANCE_KIND,
    PAUSED_ANNOTATION,
    POOL_KIND,
    REQUESTED_ADDRESS_ANNOTATION,
    SECRET_KIND,
)
from unifiipam.models.enums import ConditionStatus, ConditionType


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# =============================================================================
# Metadata
# =============================================================================


class OwnerReference(BaseModel):
    """
    Link from a dependent resource to one of its owners.

    Only the owner flagged ``controller`` is the deletion authority: removing
    it cascades to the dependent. Other owners are back-references.
    """

    api_version: str = API_VERSION
    kind: str
    name: str
    uid: str
    controller: bool = False
    block_owner_deletion: bool = False


class ObjectMeta(BaseModel):
    """Identity and bookkeeping shared by every resource."""

    name: str
    namespace: str = "default"
    uid: str = Field(default_factory=lambda: uuid.uuid4().hex)
    resource_version: int = 0
    generation: int = 0
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    owner_references: list[OwnerReference] = Field(default_factory=list)
    creation_timestamp: datetime.datetime | None = None
    deletion_timestamp: datetime.datetime | None = None


class Condition(BaseModel):
    """A named status condition with reason and message."""

    type: ConditionType
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime.datetime = Field(default_factory=utcnow)
    observed_generation: int = 0


def get_condition(
    conditions: list[Condition], condition_type: ConditionType
) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(
    conditions: list[Condition],
    condition_type: ConditionType,
    status: ConditionStatus | bool,
    reason: str,
    message: str = "",
    observed_generation: int = 0,
) -> None:
    """
    Insert or update a condition in place.

    The transition time only moves when the status value actually changes.
    """
    if isinstance(status, bool):
        status = ConditionStatus.TRUE if status else ConditionStatus.FALSE

    existing = get_condition(conditions, condition_type)
    if existing is None:
        conditions.append(
            Condition(
                type=condition_type,
                status=status,
                reason=reason,
                message=message,
                observed_generation=observed_generation,
            )
        )
        return

    if existing.status != status:
        existing.last_transition_time = utcnow()
    existing.status = status
    existing.reason = reason
    existing.message = message
    existing.observed_generation = observed_generation


def is_condition_true(
    conditions: list[Condition], condition_type: ConditionType
) -> bool:
    condition = get_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


# =============================================================================
# Resource Base
# =============================================================================


class Resource(BaseModel):
    """Base class for stored resources."""

    KIND: ClassVar[str] = ""

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> tuple[str, str]:
        return (self.metadata.namespace, self.metadata.name)

    @property
    def deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    @property
    def paused(self) -> bool:
        return PAUSED_ANNOTATION in self.metadata.annotations

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add a finalizer. Returns True when the metadata changed."""
        if finalizer in self.metadata.finalizers:
            return False
        self.metadata.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove a finalizer. Returns True when the metadata changed."""
        if finalizer not in self.metadata.finalizers:
            return False
        self.metadata.finalizers = [
            f for f in self.metadata.finalizers if f != finalizer
        ]
        return True

    def owner_reference(
        self, controller: bool = False, block_owner_deletion: bool = False
    ) -> OwnerReference:
        """Build an owner reference pointing at this resource."""
        return OwnerReference(
            kind=self.KIND,
            name=self.metadata.name,
            uid=self.metadata.uid,
            controller=controller,
            block_owner_deletion=block_owner_deletion,
        )

    def set_owner_reference(self, ref: OwnerReference) -> None:
        """Insert or replace the owner reference for the same kind and name."""
        refs = [
            r
            for r in self.metadata.owner_references
            if not (r.kind == ref.kind and r.name == ref.name)
        ]
        refs.append(ref)
        self.metadata.owner_references = refs


# =============================================================================
# References
# =============================================================================


class ObjectReference(BaseModel):
    """Namespaced reference; an empty namespace means the referrer's namespace."""

    name: str = ""
    namespace: str = ""


class TypedLocalReference(BaseModel):
    """Reference to a resource of a given group/kind in the same namespace."""

    api_group: str = API_GROUP
    kind: str = POOL_KIND
    name: str = ""


class LocalReference(BaseModel):
    name: str = ""


# =============================================================================
# Pool
# =============================================================================


class Subnet(BaseModel):
    """
    One address block of a pool.

    Exactly one of ``cidr`` or the ``start``/``end`` pair must be set.
    ``exclude_ranges`` entries may be single addresses, CIDR blocks or
    ``"a-b"`` ranges.
    """

    cidr: str | None = Field(default=None, description="CIDR block, e.g. 10.1.40.0/24")
    start: str | None = Field(default=None, description="First address of a range")
    end: str | None = Field(default=None, description="Last address of a range")
    gateway: str | None = Field(default=None, description="Gateway override")
    prefix: int | None = Field(default=None, description="Prefix length override")
    exclude_ranges: list[str] = Field(default_factory=list)
    dns_servers: list[str] = Field(default_factory=list)


class PoolSpec(BaseModel):
    instance_ref: ObjectReference = Field(default_factory=ObjectReference)
    network_id: str | None = Field(
        default=None,
        description="Provider network ID (auto-discovered when empty)",
    )
    subnets: list[Subnet] = Field(default_factory=list)
    pre_allocations: dict[str, str] = Field(
        default_factory=dict,
        description="Claim name to pinned address",
    )
    prefix: int | None = None
    gateway: str | None = None
    dns_servers: list[str] = Field(default_factory=list)


class AddressStats(BaseModel):
    total: int = 0
    used: int = 0
    free: int = 0
    out_of_range: int = 0


class CapacityStatus(BaseModel):
    utilization_percent: int = 0
    high_utilization: bool = False


class NetworkInfo(BaseModel):
    """Metadata copied from the provider network backing a pool."""

    name: str = ""
    vlan: int | None = None
    purpose: str = ""
    network_group: str = ""
    dhcp_lease_time: int | None = None


class ObservedNetworkConfig(BaseModel):
    """Provider configuration as last seen, kept for drift comparison."""

    cidr: str = ""
    gateway: str = ""
    dhcp_enabled: bool = False
    dhcp_range: str = ""


class AllocatedIP(BaseModel):
    ip: str
    claim_name: str
    cluster_name: str = ""
    mac_address: str = ""
    allocated_at: datetime.datetime | None = None


class AllocationDetails(BaseModel):
    allocated_ips: list[AllocatedIP] = Field(default_factory=list)
    first_allocation_time: datetime.datetime | None = None
    last_allocation_time: datetime.datetime | None = None


class PoolStatus(BaseModel):
    # Derived from bound addresses on every reconcile
    allocations: dict[str, str] = Field(default_factory=dict)
    discovered_network_id: str | None = None
    addresses: AddressStats = Field(default_factory=AddressStats)
    capacity: CapacityStatus = Field(default_factory=CapacityStatus)
    network_info: NetworkInfo | None = None
    observed_network_config: ObservedNetworkConfig | None = None
    allocation_details: AllocationDetails | None = None
    conditions: list[Condition] = Field(default_factory=list)
    last_sync_time: datetime.datetime | None = None


class Pool(Resource):
    KIND: ClassVar[str] = POOL_KIND

    spec: PoolSpec = Field(default_factory=PoolSpec)
    status: PoolStatus = Field(default_factory=PoolStatus)

    @property
    def network_id(self) -> str | None:
        """Explicit network ID, falling back to the discovered one."""
        return self.spec.network_id or self.status.discovered_network_id

    @property
    def instance_key(self) -> tuple[str, str]:
        ref = self.spec.instance_ref
        return (ref.namespace or self.metadata.namespace, ref.name)


# =============================================================================
# Claim
# =============================================================================


class ClaimSpec(BaseModel):
    pool_ref: TypedLocalReference = Field(default_factory=TypedLocalReference)


class ClaimStatus(BaseModel):
    address_ref: LocalReference | None = None
    conditions: list[Condition] = Field(default_factory=list)


class Claim(Resource):
    KIND: ClassVar[str] = CLAIM_KIND

    spec: ClaimSpec = Field(default_factory=ClaimSpec)
    status: ClaimStatus = Field(default_factory=ClaimStatus)

    @property
    def requested_address(self) -> str:
        return self.metadata.annotations.get(REQUESTED_ADDRESS_ANNOTATION, "").strip()

    @property
    def cluster_name(self) -> str:
        return self.metadata.labels.get(CLUSTER_NAME_LABEL, "")

    def references_unifi_pool(self) -> bool:
        ref = self.spec.pool_ref
        return ref.api_group == API_GROUP and ref.kind == POOL_KIND


# =============================================================================
# Address
# =============================================================================


class AddressSpec(BaseModel):
    claim_ref: LocalReference = Field(default_factory=LocalReference)
    pool_ref: TypedLocalReference = Field(default_factory=TypedLocalReference)
    address: str = ""
    prefix: int = 0
    gateway: str | None = None
    mac_address: str | None = None


class Address(Resource):
    KIND: ClassVar[str] = ADDRESS_KIND

    spec: AddressSpec = Field(default_factory=AddressSpec)


# =============================================================================
# Instance
# =============================================================================


class InstanceSpec(BaseModel):
    host: str = Field(default="", description="Controller URL, e.g. https://unifi.lan")
    credentials_ref: ObjectReference = Field(default_factory=ObjectReference)
    site: str = DEFAULT_SITE
    insecure: bool = Field(default=False, description="Skip TLS verification")


class InstanceStatus(BaseModel):
    ready: bool = False
    conditions: list[Condition] = Field(default_factory=list)
    last_sync_time: datetime.datetime | None = None
    failure_reason: str | None = None
    failure_message: str | None = None


class Instance(Resource):
    KIND: ClassVar[str] = INSTANCE_KIND

    spec: InstanceSpec = Field(default_factory=InstanceSpec)
    status: InstanceStatus = Field(default_factory=InstanceStatus)

    @property
    def credentials_key(self) -> tuple[str, str]:
        ref = self.spec.credentials_ref
        return (ref.namespace or self.metadata.namespace, ref.name)


# =============================================================================
# Secret
# =============================================================================


class Secret(Resource):
    KIND: ClassVar[str] = SECRET_KIND

    data: dict[str, str] = Field(default_factory=dict)


RESOURCE_KINDS: dict[str, type[Resource]] = {
    cls.KIND: cls for cls in (Pool, Claim, Address, Instance, Secret)
}
