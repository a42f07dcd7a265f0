"""Store module for holding kubernetes objects."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from tfout.manifest import KubernetesObject, NamedResource

T = TypeVar("T", bound=KubernetesObject)


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    STATUS_UPDATED = "status_updated"
    OBJECT_DELETED = "object_deleted"


class Store(ABC):
    """Abstract base class for the object store with listener support.

    Objects carry a `resourceVersion` that changes on every write. Updates
    made with a stale version raise ConflictError so that callers can re-read
    and retry, the way the Kubernetes API server behaves.
    """

    @abstractmethod
    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a copy of an object by resource identity and type."""

    @abstractmethod
    def create_object(self, obj: T) -> T:
        """Create a new object, returning the stored copy.

        Raises ObjectExistsError if an object with the same identity exists.
        """

    @abstractmethod
    def update_object(self, obj: T) -> T:
        """Replace the metadata and spec of an existing object.

        The stored status is left untouched. Raises ObjectNotFoundError if the
        object does not exist and ConflictError if `obj` is stale.
        """

    @abstractmethod
    def update_status(self, obj: T) -> T:
        """Replace only the status of an existing object.

        Raises ObjectNotFoundError if the object does not exist and
        ConflictError if `obj` is stale.
        """

    @abstractmethod
    def delete_object(self, resource_id: NamedResource) -> None:
        """Delete an object and any objects it owns.

        Raises ObjectNotFoundError if the object does not exist.
        """

    @abstractmethod
    def list_objects(self, kind: str | None = None) -> list[KubernetesObject]:
        """List copies of all objects in the store, optionally filtered by kind."""

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, KubernetesObject], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event.

        When `flush` is set the callback is invoked for every object already in
        the store. Returns a callable that can be called to remove the listener.
        """
