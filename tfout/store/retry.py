"""Conflict-safe read-modify-write of objects in the store."""

import asyncio
import copy
import logging
from collections.abc import Callable
from typing import TypeVar

from tfout.exceptions import ConflictError, ObjectNotFoundError, WriteConflict
from tfout.manifest import KubernetesObject, NamedResource

from .store import Store

__all__ = ["update_with_retry"]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=KubernetesObject)

# Same budget as the client-go DefaultRetry backoff
DEFAULT_RETRY_STEPS = 5
DEFAULT_RETRY_BACKOFF = 0.01


async def update_with_retry(
    store: Store,
    resource_id: NamedResource,
    cls: type[T],
    mutate: Callable[[T], None],
    *,
    status_only: bool = True,
    steps: int = DEFAULT_RETRY_STEPS,
    backoff: float = DEFAULT_RETRY_BACKOFF,
) -> T:
    """Apply `mutate` to the latest version of an object and write it back.

    The object is re-read before every attempt and `mutate` is applied again,
    so it must only depend on the object it is given. When `status_only` is
    false the metadata and spec are written first and then the status.

    Raises ObjectNotFoundError if the object is gone and WriteConflict once
    `steps` attempts have all collided with a concurrent writer.
    """
    last_error: ConflictError | None = None
    for attempt in range(1, steps + 1):
        if (obj := store.get_object(resource_id, cls)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        mutate(obj)
        try:
            if not status_only:
                status = copy.deepcopy(getattr(obj, "status"))
                obj = store.update_object(obj)
                setattr(obj, "status", status)
            return store.update_status(obj)
        except ConflictError as err:
            _LOGGER.debug(
                "Conflict updating %s (attempt %d/%d): %s",
                resource_id,
                attempt,
                steps,
                err,
            )
            last_error = err
            if attempt < steps:
                await asyncio.sleep(backoff)
    raise WriteConflict(
        f"Gave up updating {resource_id} after {steps} conflicting attempts"
    ) from last_error
