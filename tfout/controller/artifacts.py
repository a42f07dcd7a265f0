"""Write merged outputs into the target ConfigMap and Secret."""

import json
import logging
from typing import Any

from tfout.exceptions import ArtifactSyncFailure, TfoutException
from tfout.manifest import (
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    SOURCE_LABEL,
    ConfigMap,
    NamedResource,
    ObjectMeta,
    Secret,
    TerraformOutputs,
    encode_secret_value,
    is_owned_by,
)
from tfout.metrics import MetricsScope
from tfout.policy import SensitivityPolicy, SnapshotSensitivityPolicy
from tfout.store import Store

from .merge import MergedOutputs

__all__ = [
    "stringify",
    "classify",
    "upsert_artifact",
    "sync_artifacts",
    "needs_force_sync",
]

_LOGGER = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"


def stringify(value: Any) -> str:
    """Convert an output value to the string stored in the artifact.

    Strings are used as is and lists or objects become compact JSON with
    sorted keys. Other values (numbers, booleans, null) use their JSON text.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(
            value, separators=(",", ":"), sort_keys=True, ensure_ascii=False
        )
    return json.dumps(value)


def classify(
    values: dict[str, Any],
    sensitive: dict[str, bool],
    policy: SensitivityPolicy | None = None,
) -> tuple[dict[str, str], dict[str, str]]:
    """Split outputs into non-sensitive and sensitive string maps."""
    policy = policy or SnapshotSensitivityPolicy()
    config_data: dict[str, str] = {}
    secret_data: dict[str, str] = {}
    for key, value in values.items():
        if policy.is_sensitive(key, sensitive.get(key, False)):
            _LOGGER.debug("Output %s marked as sensitive", key)
            secret_data[key] = stringify(value)
        else:
            _LOGGER.debug("Output %s marked as non-sensitive", key)
            config_data[key] = stringify(value)
    return config_data, secret_data


def artifact_labels(owner: TerraformOutputs) -> dict[str, str]:
    return {
        MANAGED_BY_LABEL: MANAGED_BY_VALUE,
        SOURCE_LABEL: owner.name,
    }


def upsert_artifact(
    store: Store,
    cls: type[ConfigMap] | type[Secret],
    name: str,
    namespace: str,
    values: dict[str, str],
    owner: TerraformOutputs,
    metrics: MetricsScope | None = None,
) -> None:
    """Create the artifact or replace the data and labels of the existing one.

    An existing artifact keeps its owner references.
    """
    resource_id = NamedResource(cls.kind, namespace, name)
    if cls is Secret:
        data = {key: encode_secret_value(value) for key, value in values.items()}
    else:
        data = dict(values)
    labels = artifact_labels(owner)

    operation = CREATE
    try:
        if (existing := store.get_object(resource_id, cls)) is None:
            store.create_object(
                cls(
                    metadata=ObjectMeta(
                        name=name,
                        namespace=namespace,
                        labels=labels,
                        owner_references=[owner.owner_reference()],
                    ),
                    data=data,
                )
            )
        else:
            operation = UPDATE
            existing.data = data
            existing.metadata.labels = labels
            store.update_object(existing)
    except TfoutException as err:
        if metrics:
            metrics.artifact_operation(cls.kind, operation, success=False)
        raise ArtifactSyncFailure(cls.kind, name, str(err)) from err
    if metrics:
        metrics.artifact_operation(cls.kind, operation, success=True)
    _LOGGER.debug("%s %s %s with %d keys", operation, cls.kind, resource_id, len(data))


def sync_artifacts(
    store: Store,
    resource: TerraformOutputs,
    merged: MergedOutputs,
    policy: SensitivityPolicy | None = None,
    metrics: MetricsScope | None = None,
) -> tuple[dict[str, str], dict[str, str]]:
    """Classify the merged outputs and write each configured artifact.

    A configured artifact is written even when no outputs are routed to it,
    so that it ends up empty rather than holding stale values.

    Returns:
        The non-sensitive and sensitive data that was written.
    """
    config_data, secret_data = classify(merged.values, merged.sensitive, policy)
    _LOGGER.info(
        "Categorized outputs for %s: %d sensitive, %d non-sensitive",
        resource.resource_id,
        len(secret_data),
        len(config_data),
    )
    target = resource.spec.target
    if target.config_map_name:
        upsert_artifact(
            store,
            ConfigMap,
            target.config_map_name,
            target.namespace,
            config_data,
            resource,
            metrics,
        )
        _LOGGER.info(
            "ConfigMap %s/%s synced with %d keys",
            target.namespace,
            target.config_map_name,
            len(config_data),
        )
    if target.secret_name:
        upsert_artifact(
            store,
            Secret,
            target.secret_name,
            target.namespace,
            secret_data,
            resource,
            metrics,
        )
        _LOGGER.info(
            "Secret %s/%s synced with %d keys",
            target.namespace,
            target.secret_name,
            len(secret_data),
        )
    return config_data, secret_data


def needs_force_sync(store: Store, resource: TerraformOutputs) -> bool:
    """Check if a configured artifact is missing or not owned by the resource."""
    target = resource.spec.target
    artifacts: list[tuple[type[ConfigMap] | type[Secret], str | None]] = [
        (ConfigMap, target.config_map_name),
        (Secret, target.secret_name),
    ]
    for cls, name in artifacts:
        if not name:
            continue
        resource_id = NamedResource(cls.kind, target.namespace, name)
        try:
            existing = store.get_object(resource_id, cls)
        except TfoutException as err:
            _LOGGER.error("Failed to check %s existence: %s", resource_id, err)
            continue
        if existing is None:
            _LOGGER.info("%s missing, triggering force sync", resource_id)
            return True
        if not is_owned_by(existing, resource):
            _LOGGER.info(
                "%s exists but lacks proper owner reference, triggering force sync",
                resource_id,
            )
            return True
    return False
