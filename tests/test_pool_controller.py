"""Tests for the pool reconciler."""

import pytest

from conftest import NAMESPACE, make_address, make_pool
from unifiipam.constants import PROTECT_POOL_FINALIZER
from unifiipam.controllers.pool import PoolReconciler
from unifiipam.controllers.provider import ProviderConnector
from unifiipam.models.enums import ConditionReason, ConditionStatus, ConditionType
from unifiipam.models.resources import Address, Instance, Pool, Subnet, get_condition
from unifiipam.unifi.client import ProviderTransportError

KEY = (NAMESPACE, "pool")


@pytest.fixture
def reconciler(store, fake_unifi, manager_config):
    connector = ProviderConnector(store, manager_config, fake_unifi.factory)
    return PoolReconciler(store, connector, manager_config)


async def reconciled(store, reconciler) -> Pool:
    await reconciler.reconcile(KEY)
    return await store.get(Pool, NAMESPACE, "pool")


def condition(pool: Pool, condition_type: ConditionType):
    return get_condition(pool.status.conditions, condition_type)


class TestStatus:
    async def test_statistics_and_allocations(self, store, ready_instance, reconciler):
        await store.create(make_pool())
        await store.create(make_address("a", "10.1.40.2"))
        await store.create(make_address("b", "10.1.40.3"))

        pool = await reconciled(store, reconciler)
        assert pool.status.allocations == {"a": "10.1.40.2", "b": "10.1.40.3"}
        assert pool.status.addresses.total == 253
        assert pool.status.addresses.used == 2
        assert pool.status.addresses.free == 251
        assert pool.status.capacity.utilization_percent == 0
        assert [d.ip for d in pool.status.allocation_details.allocated_ips] == [
            "10.1.40.2",
            "10.1.40.3",
        ]

        ready = condition(pool, ConditionType.READY)
        assert ready.status == ConditionStatus.TRUE
        assert ready.reason == ConditionReason.POOL_READY.value
        assert condition(pool, ConditionType.HEALTHY).status == ConditionStatus.TRUE
        assert condition(pool, ConditionType.EXHAUSTED).status == ConditionStatus.FALSE

    async def test_protect_finalizer_follows_usage(self, store, ready_instance, reconciler):
        await store.create(make_pool())
        await store.create(make_address("a", "10.1.40.2"))
        assert (await reconciled(store, reconciler)).has_finalizer(PROTECT_POOL_FINALIZER)

        await store.delete(Address, NAMESPACE, "a")
        assert not (await reconciled(store, reconciler)).has_finalizer(PROTECT_POOL_FINALIZER)

    async def test_out_of_range_address(self, store, ready_instance, reconciler):
        await store.create(make_pool())
        await store.create(make_address("a", "10.9.9.9"))

        pool = await reconciled(store, reconciler)
        assert pool.status.addresses.out_of_range == 1
        healthy = condition(pool, ConditionType.HEALTHY)
        assert healthy.status == ConditionStatus.FALSE
        assert healthy.reason == ConditionReason.OUT_OF_RANGE_ADDRESSES.value

    async def test_exhausted(self, store, ready_instance, reconciler):
        await store.create(make_pool(subnets=[Subnet(start="10.1.40.10", end="10.1.40.11")]))
        await store.create(make_address("a", "10.1.40.10"))
        await store.create(make_address("b", "10.1.40.11"))

        pool = await reconciled(store, reconciler)
        assert pool.status.addresses.free == 0
        assert condition(pool, ConditionType.EXHAUSTED).status == ConditionStatus.TRUE

    async def test_no_subnets(self, store, ready_instance, reconciler):
        await store.create(make_pool(cidr=None))
        ready = condition(await reconciled(store, reconciler), ConditionType.READY)
        assert ready.status == ConditionStatus.FALSE
        assert ready.reason == ConditionReason.NO_SUBNETS.value


class TestInstanceDependency:
    async def test_instance_missing(self, store, reconciler, manager_config):
        await store.create(make_pool(instance="ghost"))
        result = await reconciler.reconcile(KEY)
        assert result.requeue_after == manager_config.DEPENDENCY_RETRY_SECONDS

        pool = await store.get(Pool, NAMESPACE, "pool")
        assert condition(pool, ConditionType.READY).reason == ConditionReason.INSTANCE_NOT_FOUND.value
        # statistics are still published
        assert pool.status.addresses.total == 253

    async def test_instance_not_ready(self, store, ready_instance, reconciler):
        instance = await store.get(Instance, NAMESPACE, "unifi")
        instance.status.ready = False
        await store.update_status(instance)
        await store.create(make_pool())

        pool = await reconciled(store, reconciler)
        assert condition(pool, ConditionType.READY).reason == ConditionReason.INSTANCE_NOT_READY.value


class TestProviderSync:
    async def test_explicit_network_in_sync(self, store, ready_instance, reconciler):
        await store.create(make_pool())
        pool = await reconciled(store, reconciler)

        discovered = condition(pool, ConditionType.NETWORK_DISCOVERED)
        assert discovered.reason == ConditionReason.NETWORK_CONFIGURED.value
        synced = condition(pool, ConditionType.NETWORK_SYNCED)
        assert synced.status == ConditionStatus.TRUE
        assert synced.reason == ConditionReason.SYNCED.value
        assert pool.status.network_info.name == "Servers"
        assert pool.status.network_info.vlan == 40
        assert pool.status.observed_network_config.cidr == "10.1.40.0/24"
        assert pool.status.last_sync_time is not None

    async def test_discovery(self, store, ready_instance, reconciler):
        await store.create(make_pool(network_id=None))
        pool = await reconciled(store, reconciler)

        assert pool.status.discovered_network_id == "net-1"
        assert pool.network_id == "net-1"
        discovered = condition(pool, ConditionType.NETWORK_DISCOVERED)
        assert discovered.status == ConditionStatus.TRUE
        assert discovered.reason == ConditionReason.NETWORK_FOUND.value
        assert condition(pool, ConditionType.NETWORK_SYNCED).status == ConditionStatus.TRUE

    async def test_discovery_without_match(self, store, ready_instance, reconciler):
        await store.create(make_pool(cidr="192.168.5.0/24", network_id=None))
        pool = await reconciled(store, reconciler)

        assert pool.status.discovered_network_id is None
        discovered = condition(pool, ConditionType.NETWORK_DISCOVERED)
        assert discovered.status == ConditionStatus.FALSE
        assert discovered.reason == ConditionReason.NETWORK_NOT_FOUND.value
        assert condition(pool, ConditionType.NETWORK_SYNCED) is None

    async def test_discovery_failure(self, store, ready_instance, fake_unifi, reconciler):
        fake_unifi.network_error = ProviderTransportError("unreachable")
        await store.create(make_pool(network_id=None))
        pool = await reconciled(store, reconciler)
        assert condition(pool, ConditionType.NETWORK_DISCOVERED).reason == (
            ConditionReason.DISCOVERY_FAILED.value
        )

    async def test_drift(self, store, ready_instance, fake_unifi, reconciler):
        network = fake_unifi.networks[0]
        network.dhcp_gateway_enabled = True
        network.dhcp_gateway = "10.1.40.254"
        await store.create(make_pool())

        pool = await reconciled(store, reconciler)
        synced = condition(pool, ConditionType.NETWORK_SYNCED)
        assert synced.status == ConditionStatus.FALSE
        assert synced.reason == ConditionReason.CONFIGURATION_DRIFT.value
        assert synced.message == "gateway 10.1.40.1 != provider 10.1.40.254"
        # drift does not make the pool unusable
        assert condition(pool, ConditionType.READY).status == ConditionStatus.TRUE

    async def test_sync_failure(self, store, ready_instance, fake_unifi, reconciler):
        fake_unifi.network_error = ProviderTransportError("unreachable")
        await store.create(make_pool())

        pool = await reconciled(store, reconciler)
        synced = condition(pool, ConditionType.NETWORK_SYNCED)
        assert synced.reason == ConditionReason.SYNC_FAILED.value
        assert "unreachable" in synced.message

    async def test_sync_runs_once_per_interval(self, store, ready_instance, fake_unifi, reconciler):
        await store.create(make_pool())
        await reconciler.reconcile(KEY)

        fake_unifi.network_error = ProviderTransportError("unreachable")
        pool = await reconciled(store, reconciler)
        assert condition(pool, ConditionType.NETWORK_SYNCED).reason == ConditionReason.SYNCED.value

    async def test_spec_change_forces_sync(self, store, ready_instance, reconciler):
        await store.create(make_pool())
        pool = await reconciled(store, reconciler)

        pool.spec.gateway = "10.1.40.254"
        await store.update(pool)
        pool = await reconciled(store, reconciler)
        synced = condition(pool, ConditionType.NETWORK_SYNCED)
        assert synced.reason == ConditionReason.CONFIGURATION_DRIFT.value
        assert synced.observed_generation == 2


class TestDeletion:
    async def test_deletion_waits_for_addresses(self, store, ready_instance, reconciler, manager_config):
        await store.create(make_pool())
        await store.create(make_address("a", "10.1.40.2"))
        await reconciler.reconcile(KEY)

        await store.delete(Pool, NAMESPACE, "pool")
        result = await reconciler.reconcile(KEY)
        assert result.requeue_after == manager_config.POOL_DELETION_POLL_SECONDS
        assert (await store.get(Pool, NAMESPACE, "pool")).deleting

        await store.delete(Address, NAMESPACE, "a")
        await reconciler.reconcile(KEY)
        assert await store.get_or_none(Pool, NAMESPACE, "pool") is None

    async def test_missing_pool(self, reconciler):
        result = await reconciler.reconcile(KEY)
        assert result.requeue_after is None
