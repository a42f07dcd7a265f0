"""Tests for conflict-safe updates."""

import datetime
from collections.abc import Callable

import pytest

from tfout.exceptions import ObjectNotFoundError, WriteConflict
from tfout.manifest import NamedResource, TerraformOutputs
from tfout.store import (
    READY_CONDITION,
    InMemoryStore,
    get_condition,
    set_condition,
    update_with_retry,
)

RESOURCE_ID = NamedResource("TerraformOutputs", "default", "app")
NOW = datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc)


def concurrent_write(store: InMemoryStore) -> None:
    """Simulate another writer changing the object."""
    other = store.get_object(RESOURCE_ID, TerraformOutputs)
    assert other is not None
    touched = int(other.metadata.labels.get("touched", "0"))
    other.metadata.labels["touched"] = str(touched + 1)
    store.update_object(other)


async def test_conflict_is_retried(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test an update that collides with another writer is applied again."""
    create_resource()
    calls = 0

    def mutate(obj: TerraformOutputs) -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            concurrent_write(store)
        obj.status.message = "hello"

    result = await update_with_retry(
        store, RESOURCE_ID, TerraformOutputs, mutate, backoff=0
    )

    assert calls == 2
    assert result.status.message == "hello"
    # The concurrent change is not lost
    assert result.metadata.labels == {"touched": "1"}


async def test_retry_budget_exhausted(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test that constant conflicts end with WriteConflict."""
    create_resource()
    calls = 0

    def mutate(obj: TerraformOutputs) -> None:
        nonlocal calls
        calls += 1
        concurrent_write(store)
        obj.status.message = "never written"

    with pytest.raises(WriteConflict, match="after 3 conflicting attempts"):
        await update_with_retry(
            store, RESOURCE_ID, TerraformOutputs, mutate, steps=3, backoff=0
        )

    assert calls == 3
    obj = store.get_object(RESOURCE_ID, TerraformOutputs)
    assert obj is not None
    assert obj.status.message is None


async def test_update_metadata_and_status(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test that both annotations and status are written when requested."""
    create_resource()

    def mutate(obj: TerraformOutputs) -> None:
        obj.metadata.annotations["example"] = "value"
        obj.status.output_count = 3

    result = await update_with_retry(
        store, RESOURCE_ID, TerraformOutputs, mutate, status_only=False
    )

    assert result.metadata.annotations == {"example": "value"}
    assert result.status.output_count == 3


async def test_status_only_ignores_metadata(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test that a status update does not write annotations."""
    create_resource()

    def mutate(obj: TerraformOutputs) -> None:
        obj.metadata.annotations["example"] = "value"
        obj.status.output_count = 3

    result = await update_with_retry(store, RESOURCE_ID, TerraformOutputs, mutate)

    assert result.metadata.annotations == {}
    assert result.status.output_count == 3


async def test_missing_object(store: InMemoryStore) -> None:
    """Test updating an object that was deleted."""
    with pytest.raises(ObjectNotFoundError):
        await update_with_retry(
            store, RESOURCE_ID, TerraformOutputs, lambda obj: None
        )


def test_set_condition(
    create_resource: Callable[..., TerraformOutputs],
) -> None:
    """Test the transition time only moves when the condition flips."""
    status = create_resource().status
    later = NOW + datetime.timedelta(minutes=1)

    set_condition(status, READY_CONDITION, False, "Progressing", "Fetching", NOW)
    set_condition(status, READY_CONDITION, False, "SyncFailed", "Failed", later)
    condition = get_condition(status, READY_CONDITION)
    assert condition is not None
    assert condition.status == "False"
    assert condition.reason == "SyncFailed"
    assert condition.message == "Failed"
    assert condition.last_transition_time == NOW

    set_condition(status, READY_CONDITION, True, "Synced", "Done", later)
    condition = get_condition(status, READY_CONDITION)
    assert condition is not None
    assert condition.status == "True"
    assert condition.last_transition_time == later
    assert len(status.conditions) == 1
    assert get_condition(status, "Other") is None
