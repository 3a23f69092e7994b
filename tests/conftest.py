"""
Pytest fixtures shared by the test suite.

Provides a fresh SQLite-backed resource store per test, an in-memory fake
of the UniFi controller client and builders for the resource models.
"""

import pytest

from unifiipam.constants import CREDENTIALS_API_KEY
from unifiipam.models.resources import (
    Address,
    AddressSpec,
    Claim,
    ClaimSpec,
    Instance,
    InstanceSpec,
    LocalReference,
    ObjectMeta,
    ObjectReference,
    Pool,
    PoolSpec,
    Secret,
    Subnet,
    TypedLocalReference,
)
from unifiipam.server.config import ManagerConfig
from unifiipam.store.base import close_database, initialize_database
from unifiipam.store.resources import ResourceStore
from unifiipam.unifi.client import ActiveLease, Network, ProviderAPIError, StaticAssignment
from unifiipam.webhooks import register_webhooks

NAMESPACE = "default"
API_KEY = "good-key"


# ============================================
# Builders
# ============================================


def make_pool(
    name: str = "pool",
    cidr: str | None = "10.1.40.0/24",
    network_id: str | None = "net-1",
    instance: str = "unifi",
    subnets: list[Subnet] | None = None,
    **spec,
) -> Pool:
    if subnets is None:
        subnets = [Subnet(cidr=cidr)] if cidr else []
    return Pool(
        metadata=ObjectMeta(name=name, namespace=NAMESPACE),
        spec=PoolSpec(
            instance_ref=ObjectReference(name=instance),
            network_id=network_id,
            subnets=subnets,
            **spec,
        ),
    )


def make_claim(
    name: str,
    pool: str = "pool",
    annotations: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
) -> Claim:
    return Claim(
        metadata=ObjectMeta(
            name=name,
            namespace=NAMESPACE,
            annotations=annotations or {},
            labels=labels or {},
        ),
        spec=ClaimSpec(pool_ref=TypedLocalReference(name=pool)),
    )


def make_address(name: str, ip: str, pool: str = "pool", prefix: int = 24) -> Address:
    return Address(
        metadata=ObjectMeta(name=name, namespace=NAMESPACE),
        spec=AddressSpec(
            claim_ref=LocalReference(name=name),
            pool_ref=TypedLocalReference(name=pool),
            address=ip,
            prefix=prefix,
        ),
    )


def make_secret(name: str = "unifi-credentials", api_key: str = API_KEY) -> Secret:
    data = {CREDENTIALS_API_KEY: api_key} if api_key else {}
    return Secret(metadata=ObjectMeta(name=name, namespace=NAMESPACE), data=data)


def make_instance(
    name: str = "unifi",
    host: str = "https://unifi.lan",
    secret: str = "unifi-credentials",
) -> Instance:
    return Instance(
        metadata=ObjectMeta(name=name, namespace=NAMESPACE),
        spec=InstanceSpec(host=host, credentials_ref=ObjectReference(name=secret)),
    )


# ============================================
# Fake Provider
# ============================================


class FakeUnifi:
    """
    Stand-in for UnifiClient keeping controller state in memory.

    ``factory`` is passed to the ProviderConnector/Manager in place of the
    client class; every client it builds shares this state.
    """

    def __init__(self):
        self.networks: list[Network] = [
            Network(id="net-1", name="Servers", cidr="10.1.40.0/24", vlan=40, purpose="corporate")
        ]
        self.assignments: dict[str, StaticAssignment] = {}
        self.leases: list[ActiveLease] = []
        self.valid_keys = {API_KEY}
        self.api_key: str | None = None
        self.created: list[StaticAssignment] = []
        self.deleted: list[str] = []
        self.network_error: Exception | None = None
        self.lease_error: Exception | None = None
        self.validate_error: Exception | None = None

    def factory(self, **kwargs):
        self.api_key = kwargs["api_key"]
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    def assign(self, mac: str, ip: str, network_id: str = "net-1") -> None:
        self.assignments[mac] = StaticAssignment(mac=mac, ip=ip, network_id=network_id)

    async def list_networks(self):
        if self.network_error is not None:
            raise self.network_error
        return list(self.networks)

    async def get_network(self, network_id):
        for network in await self.list_networks():
            if network.id == network_id:
                return network
        raise ProviderAPIError(f"network {network_id} not found", status_code=404)

    async def validate_credentials(self):
        if self.validate_error is not None:
            raise self.validate_error
        if self.api_key not in self.valid_keys:
            raise ProviderAPIError("HTTP 401 on GET rest/networkconf", status_code=401)

    async def list_static_assignments(self, network_id):
        return [a for a in self.assignments.values() if a.network_id == network_id]

    async def get_static_assignment(self, mac):
        return self.assignments.get(mac)

    async def create_static_assignment(self, network_id, mac, ip, hostname=""):
        assignment = StaticAssignment(mac=mac, ip=ip, hostname=hostname, network_id=network_id)
        self.assignments[mac] = assignment
        self.created.append(assignment)
        return assignment

    async def delete_static_assignment(self, mac):
        self.assignments.pop(mac, None)
        self.deleted.append(mac)

    async def list_active_leases(self, network_id=None):
        if self.lease_error is not None:
            raise self.lease_error
        return [lease for lease in self.leases if not network_id or lease.network_id == network_id]


# ============================================
# Fixtures
# ============================================


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "unifiipam.db")


@pytest.fixture
def store(db_path):
    """Resource store without admission hooks."""
    initialize_database(db_path)
    yield ResourceStore()
    close_database()


@pytest.fixture
def admitted_store(store):
    """Resource store with the pool and instance admission hooks."""
    register_webhooks(store)
    return store


@pytest.fixture
def fake_unifi():
    return FakeUnifi()


@pytest.fixture
def manager_config():
    return ManagerConfig(
        DB_FILE=":memory:",
        ADDRESS_VISIBLE_TIMEOUT=0.1,
        ADDRESS_VISIBLE_POLL_INTERVAL=0.001,
    )


@pytest.fixture
async def ready_instance(store):
    """A stored secret plus an instance already marked ready."""
    await store.create(make_secret())
    instance = await store.create(make_instance())
    instance.status.ready = True
    return await store.update_status(instance)
