"""
Controller manager.

Owns the three controllers and feeds them from a single store watch:

    - claims: the claim itself (UniFi pool references only, watch filter
      applied)
    - addresses: the owning claim and the referenced pool
    - pools: the pool; all of its claims when it becomes usable again
      (created unpaused, unpaused, or free addresses back from zero)
    - instances: the instance; referencing pools when readiness flips
    - secrets: instances using them

Status-only writes never re-enqueue the object they were written to, so a
reconcile that only refreshes status does not trigger itself.
"""

import asyncio

from unifiipam.controllers.claim import ClaimReconciler, claim_in_scope
from unifiipam.controllers.instance import InstanceReconciler
from unifiipam.controllers.pool import PoolReconciler
from unifiipam.controllers.provider import ClientFactory, ProviderConnector
from unifiipam.controllers.runtime import Controller
from unifiipam.controllers.workqueue import RateLimitingQueue
from unifiipam.models.enums import EventType
from unifiipam.models.resources import (
    Address,
    Claim,
    Instance,
    Pool,
    Resource,
    Secret,
)
from unifiipam.server.config import ManagerConfig
from unifiipam.store.lookups import claims_for_pool, pools_for_instance
from unifiipam.store.resources import ResourceStore, WatchEvent
from unifiipam.unifi.client import UnifiClient
from unifiipam.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)

# Resolve-and-commit is not atomic across claims
CLAIM_WORKERS = 1


# =============================================================================
# Event Predicates
# =============================================================================


def metadata_changed(event: WatchEvent) -> bool:
    """
    True when an event warrants reconciling the object itself.

    Creations always do; updates only when the spec generation, deletion
    state, finalizers, annotations or labels changed.
    """
    if event.type is EventType.ADDED:
        return True
    if event.type is EventType.DELETED or event.old is None:
        return False

    old, new = event.old.metadata, event.obj.metadata
    return (
        old.generation != new.generation
        or old.deletion_timestamp != new.deletion_timestamp
        or old.finalizers != new.finalizers
        or old.annotations != new.annotations
        or old.labels != new.labels
    )


def pool_became_usable(event: WatchEvent) -> bool:
    """True when waiting claims of the pool may now make progress."""
    pool: Pool = event.obj
    if event.type is EventType.ADDED:
        return not pool.paused
    if event.type is EventType.DELETED or event.old is None:
        return False

    old: Pool = event.old
    if old.paused and not pool.paused:
        return True
    return old.status.addresses.free == 0 and pool.status.addresses.free > 0


def readiness_changed(event: WatchEvent) -> bool:
    instance: Instance = event.obj
    if event.type is not EventType.MODIFIED or event.old is None:
        return True
    return event.old.status.ready != instance.status.ready


# =============================================================================
# Manager
# =============================================================================


class Manager:
    """
    Runs the claim, pool and instance controllers.

    Args:
        store: Resource store to watch and reconcile.
        config: Manager configuration.
        client_factory: Provider client factory (``UnifiClient`` by default).
    """

    def __init__(
        self,
        store: ResourceStore,
        config: ManagerConfig,
        client_factory: ClientFactory = UnifiClient,
    ):
        self.store = store
        self.config = config
        self.connector = ProviderConnector(store, config, client_factory)

        self.claims = self._controller(
            "claims", ClaimReconciler(store, self.connector, config), CLAIM_WORKERS
        )
        self.pools = self._controller(
            "pools", PoolReconciler(store, self.connector, config), config.POOL_WORKERS
        )
        self.instances = self._controller(
            "instances",
            InstanceReconciler(store, self.connector, config),
            config.INSTANCE_WORKERS,
        )

        self._watch: asyncio.Queue[WatchEvent] | None = None
        self._tasks: set[asyncio.Task] = set()

    def _controller(self, name: str, reconciler, workers: int) -> Controller:
        queue = RateLimitingQueue(
            base_delay=self.config.BACKOFF_BASE_SECONDS,
            max_delay=self.config.BACKOFF_MAX_SECONDS,
        )
        return Controller(name, reconciler, workers=workers, queue=queue)

    @property
    def controllers(self) -> list[Controller]:
        return [self.instances, self.pools, self.claims]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the store, enqueue everything and start workers."""
        self._watch = self.store.watch()

        for controller in self.controllers:
            controller.start()

        await self.enqueue_all()

        for name, coro in (
            ("manager-dispatch", self._dispatch_loop()),
            ("manager-resync", self._resync_loop()),
        ):
            task = asyncio.create_task(coro, name=name)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        logger.info("Controller manager started")

    async def stop(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._watch is not None:
            self.store.unwatch(self._watch)
            self._watch = None

        for controller in self.controllers:
            await controller.stop()
        logger.info("Controller manager stopped")

    async def enqueue_all(self) -> None:
        for instance in await self.store.list(Instance):
            self.instances.enqueue(instance.key)
        for pool in await self.store.list(Pool):
            self.pools.enqueue(pool.key)
        for claim in await self.store.list(Claim):
            self._enqueue_claim(claim)

    # -------------------------------------------------------------------------
    # Event Routing
    # -------------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._watch.get()
            try:
                await self.dispatch(event)
            except Exception as e:
                logger.error(f"Error dispatching {event.type.value} {event.obj.KIND}: {e}")
                logger.debug(format_traceback(e))

    async def dispatch(self, event: WatchEvent) -> None:
        """Route one store event to the controllers it concerns."""
        obj: Resource = event.obj

        if isinstance(obj, Claim):
            if metadata_changed(event):
                self._enqueue_claim(obj)

        elif isinstance(obj, Address):
            # Addresses have no status; every change counts
            self.claims.enqueue((obj.namespace, obj.spec.claim_ref.name))
            self.pools.enqueue((obj.namespace, obj.spec.pool_ref.name))

        elif isinstance(obj, Pool):
            if metadata_changed(event):
                self.pools.enqueue(obj.key)
            if pool_became_usable(event):
                for claim in await claims_for_pool(self.store, obj.namespace, obj.name):
                    self._enqueue_claim(claim)

        elif isinstance(obj, Instance):
            if metadata_changed(event):
                self.instances.enqueue(obj.key)
            if readiness_changed(event):
                for pool in await pools_for_instance(self.store, obj.namespace, obj.name):
                    self.pools.enqueue(pool.key)

        elif isinstance(obj, Secret):
            for instance in await self.store.list(Instance):
                if instance.credentials_key == obj.key:
                    self.instances.enqueue(instance.key)

    def _enqueue_claim(self, claim: Claim) -> None:
        if claim_in_scope(claim, self.config.WATCH_FILTER):
            self.claims.enqueue(claim.key)

    # -------------------------------------------------------------------------
    # Periodic Resync
    # -------------------------------------------------------------------------

    async def _resync_loop(self) -> None:
        """Re-enqueue every pool so provider drift is re-checked."""
        while True:
            await asyncio.sleep(self.config.POOL_SYNC_INTERVAL_SECONDS)

            try:
                pools = await self.store.list(Pool)
                for pool in pools:
                    self.pools.enqueue(pool.key)
                logger.debug(f"Resync enqueued {len(pools)} pools")
            except Exception as e:
                logger.error(f"Error during pool resync: {e}")
