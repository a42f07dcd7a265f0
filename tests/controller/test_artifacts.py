"""Tests for writing outputs to ConfigMaps and Secrets."""

from collections.abc import Callable
from typing import Any

import pytest

from tfout.controller import (
    MergedOutputs,
    classify,
    needs_force_sync,
    stringify,
    sync_artifacts,
    upsert_artifact,
)
from tfout.exceptions import ArtifactSyncFailure, ObjectExistsError
from tfout.manifest import (
    ConfigMap,
    NamedResource,
    ObjectMeta,
    OwnerReference,
    Secret,
    TerraformOutputs,
)
from tfout.metrics import ReconcileMetrics
from tfout.policy import AllowListSensitivityPolicy
from tfout.store import InMemoryStore

CONFIG_MAP_ID = NamedResource("ConfigMap", "apps", "app-config")
SECRET_ID = NamedResource("Secret", "apps", "app-secret")
LABELS = {
    "app.kubernetes.io/managed-by": "tfout",
    "terraform-outputs/source": "app",
}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("vpc-123", "vpc-123"),
        ("", ""),
        (["b", "a"], '["b","a"]'),
        ({"b": 1, "a": [1, 2]}, '{"a":[1,2],"b":1}'),
        ({"name": "café"}, '{"name":"café"}'),
        (3, "3"),
        (1.5, "1.5"),
        (1.0, "1.0"),
        ([1.0, 2], "[1.0,2]"),
        (True, "true"),
        (None, "null"),
    ],
)
def test_stringify(value: Any, expected: str) -> None:
    """Test values are converted to the stored string form."""
    assert stringify(value) == expected


def test_classify() -> None:
    """Test outputs are routed by the state sensitivity flag."""
    config_data, secret_data = classify(
        {"vpc_id": "vpc-123", "db_pass": "secret", "ports": [80, 443]},
        {"vpc_id": False, "db_pass": True},
    )
    assert config_data == {"vpc_id": "vpc-123", "ports": "[80,443]"}
    assert secret_data == {"db_pass": "secret"}


def test_classify_allow_list() -> None:
    """Test the allow list policy ignores the state flag."""
    config_data, secret_data = classify(
        {"vpc_id": "vpc-123", "db_pass": "secret"},
        {"vpc_id": False, "db_pass": True},
        AllowListSensitivityPolicy(["vpc_id"]),
    )
    assert config_data == {"db_pass": "secret"}
    assert secret_data == {"vpc_id": "vpc-123"}


def test_upsert_creates_owned_artifact(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test a missing artifact is created with labels and an owner reference."""
    owner = create_resource()
    metrics = ReconcileMetrics()

    upsert_artifact(
        store,
        Secret,
        "app-secret",
        "apps",
        {"db_pass": "secret"},
        owner,
        metrics.scoped(owner.resource_id),
    )

    secret = store.get_object(SECRET_ID, Secret)
    assert secret is not None
    assert secret.data == {"db_pass": "c2VjcmV0"}
    assert secret.values() == {"db_pass": "secret"}
    assert secret.type == "Opaque"
    assert secret.metadata.labels == LABELS
    assert secret.metadata.owner_references == [
        OwnerReference(
            api_version="tfout.wibrow.net/v1alpha1",
            kind="TerraformOutputs",
            name="app",
            uid=owner.metadata.uid,
            controller=True,
            block_owner_deletion=True,
        )
    ]
    assert metrics.secret_operations_total == {
        ("default", "app", "create", "success"): 1
    }


def test_upsert_replaces_data_and_keeps_owner(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test an existing artifact has its data replaced, not merged."""
    owner = create_resource()
    foreign_owner = OwnerReference(
        api_version="v1", kind="Namespace", name="apps", uid="1234"
    )
    store.create_object(
        ConfigMap(
            metadata=ObjectMeta(
                name="app-config",
                namespace="apps",
                labels={"team": "platform"},
                owner_references=[foreign_owner],
            ),
            data={"stale": "value", "vpc_id": "vpc-000"},
        )
    )

    upsert_artifact(store, ConfigMap, "app-config", "apps", {"vpc_id": "vpc-123"}, owner)

    config_map = store.get_object(CONFIG_MAP_ID, ConfigMap)
    assert config_map is not None
    assert config_map.data == {"vpc_id": "vpc-123"}
    assert config_map.metadata.labels == LABELS
    assert config_map.metadata.owner_references == [foreign_owner]


def test_upsert_failure(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test a store failure is reported as an artifact sync failure."""
    owner = create_resource()
    metrics = ReconcileMetrics()

    class FailingStore(InMemoryStore):
        def create_object(self, obj: Any) -> Any:
            raise ObjectExistsError("boom")

    with pytest.raises(
        ArtifactSyncFailure, match="failed to sync ConfigMap app-config: boom"
    ):
        upsert_artifact(
            FailingStore(),
            ConfigMap,
            "app-config",
            "apps",
            {},
            owner,
            metrics.scoped(owner.resource_id),
        )
    assert metrics.config_map_operations_total == {
        ("default", "app", "create", "error"): 1
    }


def test_sync_writes_empty_artifacts(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test a configured artifact is written even with no outputs routed to it."""
    owner = create_resource()
    merged = MergedOutputs(values={"db_pass": "secret"}, sensitive={"db_pass": True})

    config_data, secret_data = sync_artifacts(store, owner, merged)

    assert config_data == {}
    assert secret_data == {"db_pass": "secret"}
    config_map = store.get_object(CONFIG_MAP_ID, ConfigMap)
    assert config_map is not None
    assert config_map.data == {}


def test_sync_without_targets(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test nothing is written when no target names are configured."""
    owner = create_resource(config_map_name=None, secret_name=None)
    merged = MergedOutputs(values={"vpc_id": "vpc-123"}, sensitive={"vpc_id": False})

    sync_artifacts(store, owner, merged)

    assert store.list_objects("ConfigMap") == []
    assert store.list_objects("Secret") == []


def test_needs_force_sync(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test a missing or foreign artifact forces a sync."""
    owner = create_resource()
    assert needs_force_sync(store, owner)

    sync_artifacts(store, owner, MergedOutputs())
    assert not needs_force_sync(store, owner)

    store.delete_object(SECRET_ID)
    assert needs_force_sync(store, owner)

    store.create_object(
        Secret(metadata=ObjectMeta(name="app-secret", namespace="apps"))
    )
    assert needs_force_sync(store, owner)


def test_no_force_sync_without_targets(
    store: InMemoryStore, create_resource: Callable[..., TerraformOutputs]
) -> None:
    """Test an object with no targets never forces a sync."""
    owner = create_resource(config_map_name=None, secret_name=None)
    assert not needs_force_sync(store, owner)
