"""
Resource store.

A small declarative object store with the semantics the reconcilers rely
on:

    - typed get/list/create/update/delete with optimistic concurrency
      (``metadata.resource_version`` must match on every update)
    - spec/status split (``update`` never touches status,
      ``update_status`` never touches anything else)
    - finalizers: deleting an object that still has finalizers only marks
      it with a deletion timestamp; it disappears once the last finalizer
      is removed
    - owner references: removing an object cascades to dependents whose
      *controller* owner reference points at it
    - admission hooks per kind, run before anything is persisted
    - watch queues receiving every change

All database calls are short synchronous Peewee queries executed on the
event loop thread, which also keeps writes strictly ordered.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Protocol, TypeVar

from unifiipam.models.enums import EventType
from unifiipam.models.resources import RESOURCE_KINDS, Resource, utcnow
from unifiipam.store.base import ResourceRecord, db
from unifiipam.store.errors import AlreadyExistsError, ConflictError, NotFoundError
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=Resource)


@dataclass
class WatchEvent:
    """A change delivered to watchers."""

    type: EventType
    obj: Resource
    old: Resource | None = None


class AdmissionHook(Protocol):
    """
    Admission hook for one resource kind.

    Every method may raise ``AdmissionDeniedError``.
    """

    async def default(self, obj: Resource) -> None: ...

    async def validate_create(self, obj: Resource) -> None: ...

    async def validate_update(self, old: Resource, new: Resource) -> None: ...

    async def validate_delete(self, obj: Resource) -> None: ...


def _body(obj: Resource) -> dict:
    """Everything except metadata and status, used to detect spec changes."""
    return obj.model_dump(mode="json", exclude={"metadata", "status"})


class ResourceStore:
    """Persistent typed resource store with watch and admission support."""

    def __init__(self):
        self._watchers: list[asyncio.Queue[WatchEvent]] = []
        self._admission: dict[str, AdmissionHook] = {}
        last = ResourceRecord.select(ResourceRecord.resource_version).order_by(
            ResourceRecord.resource_version.desc()
        ).first()
        self._version = last.resource_version if last else 0

    # =========================================================================
    # Registration
    # =========================================================================

    def register_admission(self, kind: str, hook: AdmissionHook) -> None:
        self._admission[kind] = hook

    def watch(self) -> asyncio.Queue[WatchEvent]:
        """Subscribe to every subsequent change."""
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        self._watchers.append(queue)
        return queue

    def unwatch(self, queue: asyncio.Queue[WatchEvent]) -> None:
        if queue in self._watchers:
            self._watchers.remove(queue)

    def _emit(self, event_type: EventType, obj: Resource, old: Resource | None = None):
        for queue in self._watchers:
            queue.put_nowait(WatchEvent(event_type, obj, old))

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    # =========================================================================
    # Reads
    # =========================================================================

    def _record(self, kind: str, namespace: str, name: str) -> ResourceRecord | None:
        return ResourceRecord.get_or_none(
            (ResourceRecord.kind == kind)
            & (ResourceRecord.namespace == namespace)
            & (ResourceRecord.name == name)
        )

    async def get_or_none(self, cls: type[T], namespace: str, name: str) -> T | None:
        record = self._record(cls.KIND, namespace, name)
        if record is None:
            return None
        return cls.model_validate_json(record.body)

    async def get(self, cls: type[T], namespace: str, name: str) -> T:
        """
        Fetch one resource.

        Raises:
            NotFoundError: If it does not exist.
        """
        obj = await self.get_or_none(cls, namespace, name)
        if obj is None:
            raise NotFoundError(cls.KIND, namespace, name)
        return obj

    async def list(
        self,
        cls: type[T],
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[T]:
        """
        List resources of one kind.

        Args:
            cls: Resource model class.
            namespace: Restrict to one namespace (None for all).
            labels: Only return objects carrying all of these labels.
        """
        query = ResourceRecord.select().where(ResourceRecord.kind == cls.KIND)
        if namespace is not None:
            query = query.where(ResourceRecord.namespace == namespace)

        items = [
            cls.model_validate_json(record.body)
            for record in query.order_by(ResourceRecord.namespace, ResourceRecord.name)
        ]
        if labels:
            items = [
                item
                for item in items
                if all(item.metadata.labels.get(k) == v for k, v in labels.items())
            ]
        return items

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, obj: T) -> T:
        """
        Persist a new resource.

        Raises:
            AlreadyExistsError: Same kind/namespace/name already stored.
            AdmissionDeniedError: Rejected by the kind's admission hook.
        """
        hook = self._admission.get(obj.KIND)
        if hook is not None:
            await hook.default(obj)
            await hook.validate_create(obj)

        meta = obj.metadata
        if self._record(obj.KIND, meta.namespace, meta.name) is not None:
            raise AlreadyExistsError(obj.KIND, meta.namespace, meta.name)

        meta.uid = uuid.uuid4().hex
        meta.resource_version = self._next_version()
        meta.generation = 1
        meta.creation_timestamp = utcnow()
        meta.deletion_timestamp = None

        ResourceRecord.create(
            kind=obj.KIND,
            namespace=meta.namespace,
            name=meta.name,
            uid=meta.uid,
            resource_version=meta.resource_version,
            body=obj.model_dump_json(),
        )
        logger.debug(f"Created {obj.KIND} {meta.namespace}/{meta.name}")
        self._emit(EventType.ADDED, obj.model_copy(deep=True))
        return obj

    def _check_version(self, obj: Resource) -> tuple[ResourceRecord, Resource]:
        meta = obj.metadata
        record = self._record(obj.KIND, meta.namespace, meta.name)
        if record is None:
            raise NotFoundError(obj.KIND, meta.namespace, meta.name)
        if record.resource_version != meta.resource_version:
            raise ConflictError(
                obj.KIND,
                meta.namespace,
                meta.name,
                meta.resource_version,
                record.resource_version,
            )
        current = RESOURCE_KINDS[obj.KIND].model_validate_json(record.body)
        return record, current

    async def update(self, obj: T) -> T:
        """
        Update metadata and spec. Status is kept as stored.

        Removing the last finalizer of an object that is being deleted
        removes it from the store.

        Raises:
            NotFoundError: If it does not exist.
            ConflictError: On a stale resource version.
            AdmissionDeniedError: Rejected by the kind's admission hook.
        """
        record, current = self._check_version(obj)

        new = obj.model_copy(deep=True)
        meta = new.metadata
        meta.uid = current.metadata.uid
        meta.creation_timestamp = current.metadata.creation_timestamp
        meta.deletion_timestamp = current.metadata.deletion_timestamp
        if hasattr(current, "status"):
            new.status = current.status

        spec_changed = _body(new) != _body(current)
        if spec_changed:
            hook = self._admission.get(obj.KIND)
            if hook is not None:
                await hook.validate_update(current, new)
            meta.generation = current.metadata.generation + 1

        if meta.deletion_timestamp is not None and not meta.finalizers:
            self._remove(record, new)
            return new

        self._save(record, new)
        obj.metadata.resource_version = new.metadata.resource_version
        self._emit(EventType.MODIFIED, new.model_copy(deep=True), current)
        return new

    async def update_status(self, obj: T) -> T:
        """
        Update status only.

        Raises:
            NotFoundError: If it does not exist.
            ConflictError: On a stale resource version.
        """
        record, current = self._check_version(obj)

        new = current.model_copy(deep=True)
        if hasattr(obj, "status"):
            new.status = obj.status.model_copy(deep=True)

        self._save(record, new)
        obj.metadata.resource_version = new.metadata.resource_version
        self._emit(EventType.MODIFIED, new.model_copy(deep=True), current)
        return new

    async def delete(self, cls: type[Resource], namespace: str, name: str) -> None:
        """
        Request deletion of a resource.

        With finalizers present only the deletion timestamp is set.

        Raises:
            NotFoundError: If it does not exist.
            AdmissionDeniedError: Rejected by the kind's admission hook.
        """
        record = self._record(cls.KIND, namespace, name)
        if record is None:
            raise NotFoundError(cls.KIND, namespace, name)
        current = cls.model_validate_json(record.body)

        hook = self._admission.get(cls.KIND)
        if hook is not None:
            await hook.validate_delete(current)

        self._delete(record, current)

    def _delete(self, record: ResourceRecord, current: Resource) -> None:
        if not current.metadata.finalizers:
            self._remove(record, current)
            return

        if current.metadata.deletion_timestamp is not None:
            return

        new = current.model_copy(deep=True)
        new.metadata.deletion_timestamp = utcnow()
        self._save(record, new)
        logger.debug(
            f"Marked {new.KIND} {new.namespace}/{new.name} for deletion "
            f"(finalizers: {', '.join(new.metadata.finalizers)})"
        )
        self._emit(EventType.MODIFIED, new.model_copy(deep=True), current)

    def _save(self, record: ResourceRecord, obj: Resource) -> None:
        obj.metadata.resource_version = self._next_version()
        record.resource_version = obj.metadata.resource_version
        record.body = obj.model_dump_json()
        record.save()

    def _remove(self, record: ResourceRecord, obj: Resource) -> None:
        uid = obj.metadata.uid
        with db.atomic():
            record.delete_instance()
        logger.debug(f"Removed {obj.KIND} {obj.namespace}/{obj.name}")
        self._emit(EventType.DELETED, obj)
        self._collect_dependents(uid)

    def _collect_dependents(self, owner_uid: str) -> None:
        """Cascade deletion to objects controlled by the removed owner."""
        candidates = ResourceRecord.select().where(ResourceRecord.body.contains(owner_uid))
        for record in list(candidates):
            dependent = RESOURCE_KINDS[record.kind].model_validate_json(record.body)
            if any(
                ref.uid == owner_uid and ref.controller
                for ref in dependent.metadata.owner_references
            ):
                logger.debug(
                    f"Garbage collecting {dependent.KIND} "
                    f"{dependent.namespace}/{dependent.name}"
                )
                self._delete(record, dependent)
