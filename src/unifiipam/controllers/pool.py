"""
Pool reconciler.

Re-derives pool status from scratch on every pass; it never allocates.

Each pass:
    - defers deletion while addresses still reference the pool
    - keeps the protect finalizer in line with address usage
    - rebuilds allocations, address statistics, capacity and allocation
      details from the bound addresses
    - discovers the backing provider network when none is configured
    - compares the live provider network with the first subnet at most
      once per sync interval (or when the spec changed)
"""

import datetime

from unifiipam.constants import CLUSTER_NAME_LABEL, PROTECT_POOL_FINALIZER
from unifiipam.controllers.provider import ProviderConnector
from unifiipam.controllers.runtime import Result
from unifiipam.ipam.addrset import representative_network
from unifiipam.ipam.allocator import effective_prefix, pool_address_set
from unifiipam.ipam.drift import (
    detect_drift,
    find_network_for_subnet,
    network_info,
    network_to_subnet,
    observed_config,
)
from unifiipam.ipam.exceptions import AddressParseError, InstanceNotReadyError
from unifiipam.ipam.stats import (
    apply_capacity_conditions,
    build_allocation_details,
    build_allocations,
    compute_address_stats,
    compute_capacity,
)
from unifiipam.models.enums import ConditionReason, ConditionType
from unifiipam.models.resources import (
    Instance,
    Pool,
    get_condition,
    set_condition,
    utcnow,
)
from unifiipam.server.config import ManagerConfig
from unifiipam.store.lookups import addresses_for_pool
from unifiipam.store.resources import ResourceStore
from unifiipam.unifi.client import ProviderError
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)


class PoolReconciler:
    """Maintains pool status, discovery and drift conditions."""

    def __init__(
        self,
        store: ResourceStore,
        connector: ProviderConnector,
        config: ManagerConfig,
    ):
        self.store = store
        self.connector = connector
        self.config = config

    async def reconcile(self, key: tuple[str, str]) -> Result:
        namespace, name = key
        pool = await self.store.get_or_none(Pool, namespace, name)
        if pool is None:
            return Result()

        addresses = await addresses_for_pool(self.store, namespace, name)

        if pool.deleting:
            return await self._reconcile_delete(pool, len(addresses))

        # Protect the pool only while addresses reference it
        if addresses and pool.add_finalizer(PROTECT_POOL_FINALIZER):
            pool = await self.store.update(pool)
        elif not addresses and pool.remove_finalizer(PROTECT_POOL_FINALIZER):
            pool = await self.store.update(pool)

        status = pool.status
        generation = pool.metadata.generation

        status.allocations = build_allocations(addresses)
        status.allocation_details = build_allocation_details(addresses, CLUSTER_NAME_LABEL)

        if not pool.spec.subnets:
            self._set(pool, ConditionType.READY, False, ConditionReason.NO_SUBNETS, "pool has no subnets")
            await self.store.update_status(pool)
            return Result()

        try:
            pool_set = pool_address_set(pool.spec)
        except AddressParseError as e:
            self._set(pool, ConditionType.READY, False, ConditionReason.INVALID_CONFIGURATION, str(e))
            await self.store.update_status(pool)
            return Result()

        status.addresses = compute_address_stats(
            pool_set, (a.spec.address for a in addresses)
        )
        status.capacity = compute_capacity(status.addresses)
        apply_capacity_conditions(status, generation)

        instance_namespace, instance_name = pool.instance_key
        instance = await self.store.get_or_none(Instance, instance_namespace, instance_name)
        if instance is None or not instance.status.ready:
            reason = (
                ConditionReason.INSTANCE_NOT_FOUND
                if instance is None
                else ConditionReason.INSTANCE_NOT_READY
            )
            self._set(
                pool,
                ConditionType.READY,
                False,
                reason,
                f"instance {instance_namespace}/{instance_name} is not ready",
            )
            await self.store.update_status(pool)
            return Result(requeue_after=self.config.DEPENDENCY_RETRY_SECONDS)

        await self._sync_provider(pool, instance)

        self._set(pool, ConditionType.READY, True, ConditionReason.POOL_READY, "pool is ready")
        await self.store.update_status(pool)
        return Result()

    # =========================================================================
    # Deletion
    # =========================================================================

    async def _reconcile_delete(self, pool: Pool, in_use: int) -> Result:
        if in_use:
            logger.info(
                f"Pool {pool.namespace}/{pool.name} still has {in_use} addresses, "
                f"deferring deletion"
            )
            return Result(requeue_after=self.config.POOL_DELETION_POLL_SECONDS)

        if pool.remove_finalizer(PROTECT_POOL_FINALIZER):
            await self.store.update(pool)
            logger.info(f"Pool {pool.namespace}/{pool.name} released for deletion")
        return Result()

    # =========================================================================
    # Provider Sync
    # =========================================================================

    def _sync_due(self, pool: Pool) -> bool:
        status = pool.status
        if status.last_sync_time is None:
            return True
        synced = get_condition(status.conditions, ConditionType.NETWORK_SYNCED)
        if synced is None or synced.observed_generation != pool.metadata.generation:
            return True
        age = utcnow() - status.last_sync_time
        return age >= datetime.timedelta(seconds=self.config.POOL_SYNC_INTERVAL_SECONDS)

    async def _sync_provider(self, pool: Pool, instance: Instance) -> None:
        discovery_needed = not pool.spec.network_id and not pool.status.discovered_network_id
        if not discovery_needed and not self._sync_due(pool):
            return

        try:
            client = await self.connector.connect(instance)
        except InstanceNotReadyError as e:
            self._set(pool, ConditionType.NETWORK_SYNCED, False, ConditionReason.SYNC_FAILED, str(e))
            return

        async with client:
            if pool.spec.network_id:
                self._set(
                    pool,
                    ConditionType.NETWORK_DISCOVERED,
                    True,
                    ConditionReason.NETWORK_CONFIGURED,
                    f"network {pool.spec.network_id} configured explicitly",
                )
            else:
                await self._discover(pool, client)

            if pool.network_id and self._sync_due(pool):
                await self._check_drift(pool, client)

    async def _discover(self, pool: Pool, client) -> None:
        first = pool.spec.subnets[0]
        try:
            block = representative_network(
                first, effective_prefix(first, pool.spec, self.config.DEFAULT_PREFIX)
            )
            networks = await client.list_networks()
        except (AddressParseError, ProviderError) as e:
            logger.warning(f"Network discovery failed for pool {pool.name}: {e}")
            self._set(
                pool,
                ConditionType.NETWORK_DISCOVERED,
                False,
                ConditionReason.DISCOVERY_FAILED,
                str(e),
            )
            return

        network = find_network_for_subnet(networks, block)
        if network is None:
            pool.status.discovered_network_id = None
            self._set(
                pool,
                ConditionType.NETWORK_DISCOVERED,
                False,
                ConditionReason.NETWORK_NOT_FOUND,
                f"no provider network contains {block}",
            )
            return

        if pool.status.discovered_network_id != network.id:
            logger.info(f"Discovered network {network.name} ({network.id}) for pool {pool.name}")
        pool.status.discovered_network_id = network.id
        self._set(
            pool,
            ConditionType.NETWORK_DISCOVERED,
            True,
            ConditionReason.NETWORK_FOUND,
            f"network {network.name} ({network.id}) contains {block}",
        )

    async def _check_drift(self, pool: Pool, client) -> None:
        status = pool.status
        try:
            network = await client.get_network(pool.network_id)
            observed = network_to_subnet(network)
            differences = detect_drift(pool.spec, observed, self.config.DEFAULT_PREFIX)
        except (ProviderError, AddressParseError) as e:
            logger.warning(f"Network sync failed for pool {pool.name}: {e}")
            self._set(pool, ConditionType.NETWORK_SYNCED, False, ConditionReason.SYNC_FAILED, str(e))
            return

        status.network_info = network_info(network)
        status.observed_network_config = observed_config(network, observed)
        status.last_sync_time = utcnow()

        if differences:
            message = "; ".join(differences)
            logger.warning(f"Pool {pool.name} drifted from provider network: {message}")
            self._set(
                pool,
                ConditionType.NETWORK_SYNCED,
                False,
                ConditionReason.CONFIGURATION_DRIFT,
                message,
            )
        else:
            self._set(
                pool,
                ConditionType.NETWORK_SYNCED,
                True,
                ConditionReason.SYNCED,
                f"in sync with network {network.name}",
            )

    @staticmethod
    def _set(
        pool: Pool,
        condition_type: ConditionType,
        status: bool,
        reason: ConditionReason,
        message: str,
    ) -> None:
        set_condition(
            pool.status.conditions,
            condition_type,
            status,
            reason.value,
            message,
            pool.metadata.generation,
        )
