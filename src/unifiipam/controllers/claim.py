"""
Claim reconciler.

Drives a claim from unbound to bound to released:

    Unbound   -> add the release finalizer, resolve an address, register it
                 with the provider, create the address object
    Bound     -> nothing to do
    Releasing -> release the provider assignment, delete the address,
                 drop the release finalizer
    Released  -> the store removes the claim

Resolve-and-commit is not atomic, so this reconciler must only ever run
with a single worker.
"""

import asyncio

from unifiipam.constants import (
    CLUSTER_NAME_LABEL,
    PROTECT_ADDRESS_FINALIZER,
    RELEASE_ADDRESS_FINALIZER,
    WATCH_FILTER_LABEL,
)
from unifiipam.controllers.provider import ProviderConnector
from unifiipam.controllers.runtime import Result
from unifiipam.ipam.allocator import Allocation, resolve
from unifiipam.ipam.exceptions import (
    AllocationError,
    DependencyNotReadyError,
    NetworkNotDiscoveredError,
    PoolNotFoundError,
)
from unifiipam.ipam.identity import mac_for_claim
from unifiipam.models.enums import ConditionReason, ConditionType
from unifiipam.models.resources import (
    Address,
    AddressSpec,
    Claim,
    LocalReference,
    ObjectMeta,
    Pool,
    TypedLocalReference,
    is_condition_true,
    set_condition,
)
from unifiipam.server.config import ManagerConfig
from unifiipam.store.errors import NotFoundError
from unifiipam.store.lookups import addresses_for_pool
from unifiipam.store.resources import ResourceStore
from unifiipam.unifi.client import ProviderError
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)


def claim_in_scope(claim: Claim, watch_filter: str) -> bool:
    """Claims for other pool kinds, or outside the watch filter, are ignored."""
    if not claim.references_unifi_pool():
        return False
    if watch_filter and claim.metadata.labels.get(WATCH_FILTER_LABEL) != watch_filter:
        return False
    return True


class ClaimReconciler:
    """Reconciles address claims against UniFi-backed pools."""

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
        claim = await self.store.get_or_none(Claim, namespace, name)
        if claim is None or not claim_in_scope(claim, self.config.WATCH_FILTER):
            return Result()

        if claim.deleting:
            return await self._reconcile_delete(claim)

        # Make the deletion observable before anything is allocated
        if claim.add_finalizer(RELEASE_ADDRESS_FINALIZER):
            await self.store.update(claim)
            logger.debug(f"Added release finalizer to claim {namespace}/{name}")
            return Result()

        pool = await self.store.get_or_none(Pool, namespace, claim.spec.pool_ref.name)
        if pool is None:
            missing = PoolNotFoundError(namespace, claim.spec.pool_ref.name)
            logger.info(f"Claim {namespace}/{name} waiting: {missing}")
            await self._set_ready(claim, False, ConditionReason.POOL_NOT_FOUND, str(missing))
            return Result(requeue_after=self.config.DEPENDENCY_RETRY_SECONDS)

        if pool.paused:
            logger.info(f"Pool {pool.namespace}/{pool.name} is paused, skipping claim {name}")
            return Result()

        address = await self.store.get_or_none(Address, namespace, name)
        if address is not None and address.spec.address:
            await self._mark_bound(claim, address)
            return Result()

        return await self._allocate(claim, pool, address)

    # =========================================================================
    # Normal Path
    # =========================================================================

    async def _allocate(
        self, claim: Claim, pool: Pool, existing: Address | None
    ) -> Result:
        try:
            allocation = await self._resolve_and_register(claim, pool)
        except DependencyNotReadyError as e:
            logger.info(f"Claim {claim.namespace}/{claim.name} waiting: {e}")
            await self._set_ready(claim, False, ConditionReason.DEPENDENCY_NOT_READY, str(e))
            return Result(requeue_after=self.config.DEPENDENCY_RETRY_SECONDS)
        except (AllocationError, ProviderError) as e:
            logger.warning(f"Allocation failed for claim {claim.namespace}/{claim.name}: {e}")
            await self._set_ready(claim, False, ConditionReason.ALLOCATION_FAILED, str(e))
            raise

        address = await self._ensure_address(claim, pool, existing, allocation)
        logger.info(
            f"Allocated {allocation.address}/{allocation.prefix} ({allocation.source}) "
            f"to claim {claim.namespace}/{claim.name} from pool {pool.name}"
        )

        if not await self._wait_for_address(claim.namespace, claim.name):
            logger.warning(f"Address {claim.namespace}/{claim.name} not visible yet, requeueing")
            return Result(requeue_after=self.config.ADDRESS_VISIBLE_REQUEUE_SECONDS)

        await self._mark_bound(claim, address)
        return Result()

    async def _resolve_and_register(self, claim: Claim, pool: Pool) -> Allocation:
        namespace, instance_name = pool.instance_key
        client = await self.connector.connect_pool_instance(namespace, instance_name)

        network_id = pool.network_id
        if not network_id:
            raise NetworkNotDiscoveredError(pool.name)

        bound = {
            a.spec.claim_ref.name: a.spec.address
            for a in await addresses_for_pool(self.store, pool.namespace, pool.name)
            if a.spec.address
        }
        mac = mac_for_claim(claim.name)

        async with client:
            static_assignments = await client.list_static_assignments(network_id)
            try:
                leases = await client.list_active_leases(network_id)
            except ProviderError as e:
                logger.warning(f"Skipping active lease check for pool {pool.name}: {e}")
                leases = []

            allocation = resolve(
                pool,
                claim,
                static_assignments,
                bound,
                leases,
                default_prefix=self.config.DEFAULT_PREFIX,
            )

            existing = await client.get_static_assignment(mac)
            if existing is not None and existing.ip == allocation.address:
                logger.debug(f"MAC {mac} already holds {allocation.address}")
            else:
                if existing is not None:
                    logger.info(
                        f"Replacing stale assignment {existing.ip} for MAC {mac} "
                        f"with {allocation.address}"
                    )
                    await client.delete_static_assignment(mac)
                await client.create_static_assignment(
                    network_id, mac, allocation.address, claim.name
                )

        return allocation

    async def _ensure_address(
        self,
        claim: Claim,
        pool: Pool,
        existing: Address | None,
        allocation: Allocation,
    ) -> Address:
        address = existing or Address(
            metadata=ObjectMeta(name=claim.name, namespace=claim.namespace)
        )
        address.spec = AddressSpec(
            claim_ref=LocalReference(name=claim.name),
            pool_ref=TypedLocalReference(name=pool.name),
            address=allocation.address,
            prefix=allocation.prefix,
            gateway=allocation.gateway,
            mac_address=mac_for_claim(claim.name),
        )
        address.set_owner_reference(
            claim.owner_reference(controller=True, block_owner_deletion=True)
        )
        address.set_owner_reference(
            pool.owner_reference(controller=False, block_owner_deletion=True)
        )
        address.add_finalizer(PROTECT_ADDRESS_FINALIZER)
        if claim.cluster_name:
            address.metadata.labels[CLUSTER_NAME_LABEL] = claim.cluster_name

        if existing is None:
            return await self.store.create(address)
        return await self.store.update(address)

    async def _wait_for_address(self, namespace: str, name: str) -> bool:
        """Poll until the address can be read back."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.ADDRESS_VISIBLE_TIMEOUT
        while True:
            address = await self.store.get_or_none(Address, namespace, name)
            if address is not None and address.spec.address:
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.config.ADDRESS_VISIBLE_POLL_INTERVAL)

    async def _mark_bound(self, claim: Claim, address: Address) -> None:
        ref = claim.status.address_ref
        ready = is_condition_true(claim.status.conditions, ConditionType.READY)
        if ref is not None and ref.name == address.name and ready:
            return
        claim.status.address_ref = LocalReference(name=address.name)
        await self._set_ready(
            claim,
            True,
            ConditionReason.ADDRESS_ALLOCATED,
            f"bound to {address.spec.address}/{address.spec.prefix}",
        )

    # =========================================================================
    # Deletion Path
    # =========================================================================

    async def _reconcile_delete(self, claim: Claim) -> Result:
        if not claim.has_finalizer(RELEASE_ADDRESS_FINALIZER):
            return Result()

        try:
            await self._release(claim)
        except DependencyNotReadyError as e:
            # Without a reachable provider only the local binding can be released
            logger.warning(
                f"Provider release skipped for claim {claim.namespace}/{claim.name}: {e}"
            )

        await self._delete_address(claim.namespace, claim.name)

        claim.remove_finalizer(RELEASE_ADDRESS_FINALIZER)
        await self.store.update(claim)
        logger.info(f"Released claim {claim.namespace}/{claim.name}")
        return Result()

    async def _release(self, claim: Claim) -> None:
        if not self.config.RELEASE_STATIC_ASSIGNMENTS:
            return
        pool = await self.store.get_or_none(Pool, claim.namespace, claim.spec.pool_ref.name)
        if pool is None:
            return

        namespace, instance_name = pool.instance_key
        client = await self.connector.connect_pool_instance(namespace, instance_name)
        async with client:
            await client.delete_static_assignment(mac_for_claim(claim.name))

    async def _delete_address(self, namespace: str, name: str) -> None:
        address = await self.store.get_or_none(Address, namespace, name)
        if address is None:
            return
        if address.remove_finalizer(PROTECT_ADDRESS_FINALIZER):
            address = await self.store.update(address)
        try:
            await self.store.delete(Address, namespace, name)
        except NotFoundError:
            pass
        logger.debug(f"Deleted address {namespace}/{name}")

    # =========================================================================
    # Status
    # =========================================================================

    async def _set_ready(
        self, claim: Claim, ready: bool, reason: ConditionReason, message: str
    ) -> None:
        set_condition(
            claim.status.conditions,
            ConditionType.READY,
            ready,
            reason.value,
            message,
            claim.metadata.generation,
        )
        await self.store.update_status(claim)
