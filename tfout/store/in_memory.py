"""Module for in memory object store."""

import copy
import itertools
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from typing import Any, DefaultDict, TypeVar

from tfout.exceptions import ConflictError, ObjectExistsError, ObjectNotFoundError
from tfout.manifest import KubernetesObject, NamedResource

from .store import Store, StoreEvent

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=KubernetesObject)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Objects are copied on the way in and out so that callers never share
    state with the store. Deleting an object also deletes every object whose
    owner references point at it.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamedResource, KubernetesObject] = {}
        self._versions = itertools.count(1)
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )

    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a copy of an object by resource identity and type."""
        obj = self._objects.get(resource_id)
        if obj is None:
            return None
        if not isinstance(obj, cls):
            raise ValueError(
                f"Object {resource_id.namespaced_name} is not of type {cls.__name__} (was {obj.__class__.__name__})"
            )
        return copy.deepcopy(obj)

    def create_object(self, obj: T) -> T:
        """Create a new object, returning the stored copy."""
        resource_id = obj.resource_id
        if resource_id in self._objects:
            raise ObjectExistsError(f"Object {resource_id} already exists")
        stored = copy.deepcopy(obj)
        if not stored.metadata.uid:
            stored.metadata.uid = str(uuid.uuid4())
        stored.metadata.resource_version = self._next_version()
        _LOGGER.debug("Adding object %s to store", resource_id)
        self._objects[resource_id] = stored
        self._fire_event(StoreEvent.OBJECT_ADDED, resource_id, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def update_object(self, obj: T) -> T:
        """Replace the metadata and spec of an existing object."""
        existing = self._check_current(obj)
        stored = copy.deepcopy(obj)
        stored.metadata.uid = existing.metadata.uid
        stored.metadata.resource_version = self._next_version()
        if hasattr(existing, "status"):
            setattr(stored, "status", copy.deepcopy(getattr(existing, "status")))
        _LOGGER.debug(
            "Updating object %s to version %s",
            obj.resource_id,
            stored.metadata.resource_version,
        )
        self._objects[obj.resource_id] = stored
        self._fire_event(
            StoreEvent.OBJECT_UPDATED, obj.resource_id, copy.deepcopy(stored)
        )
        return copy.deepcopy(stored)

    def update_status(self, obj: T) -> T:
        """Replace only the status of an existing object."""
        existing = self._check_current(obj)
        if not hasattr(existing, "status"):
            raise ValueError(f"Object {obj.resource_id} does not support status")
        stored = copy.deepcopy(existing)
        setattr(stored, "status", copy.deepcopy(getattr(obj, "status")))
        stored.metadata.resource_version = self._next_version()
        _LOGGER.debug("Updating status for %s", obj.resource_id)
        self._objects[obj.resource_id] = stored
        self._fire_event(
            StoreEvent.STATUS_UPDATED, obj.resource_id, copy.deepcopy(stored)
        )
        return copy.deepcopy(stored)

    def delete_object(self, resource_id: NamedResource) -> None:
        """Delete an object and any objects it owns."""
        if (obj := self._objects.pop(resource_id, None)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        _LOGGER.debug("Deleted object %s", resource_id)
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, obj)
        owned = [
            dependent_id
            for dependent_id, dependent in self._objects.items()
            if any(
                ref.uid == obj.metadata.uid
                for ref in dependent.metadata.owner_references
            )
        ]
        for dependent_id in owned:
            if dependent_id in self._objects:
                _LOGGER.debug(
                    "Garbage collecting %s owned by %s", dependent_id, resource_id
                )
                self.delete_object(dependent_id)

    def list_objects(self, kind: str | None = None) -> list[KubernetesObject]:
        """List copies of all objects in the store, optionally filtered by kind."""
        return [
            copy.deepcopy(obj)
            for obj in self._objects.values()
            if kind is None or obj.kind == kind
        ]

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, KubernetesObject], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush and event == StoreEvent.OBJECT_ADDED:
            _LOGGER.debug("Flushing objects for event type %s", event)
            for resource_id, obj in list(self._objects.items()):
                callback(resource_id, copy.deepcopy(obj))

        return remove

    def _check_current(self, obj: KubernetesObject) -> KubernetesObject:
        """Return the stored object, verifying `obj` is not stale."""
        resource_id = obj.resource_id
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        if obj.metadata.resource_version != existing.metadata.resource_version:
            raise ConflictError(
                f"Object {resource_id} has been modified; please apply your "
                f"changes to the latest version (have {obj.metadata.resource_version}, "
                f"stored {existing.metadata.resource_version})"
            )
        return existing

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
