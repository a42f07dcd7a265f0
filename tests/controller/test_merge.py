"""Tests for merging outputs across backends."""

from collections.abc import Callable
from typing import Any

import pytest

from tfout.controller import merge_all
from tfout.exceptions import MalformedSnapshot
from tfout.manifest import NamedResource, TerraformOutputs
from tfout.metrics import ReconcileMetrics

KEYS = ("base.tfstate", "network.tfstate", "override.tfstate")


@pytest.fixture(name="resource")
def resource_fixture(
    fetcher: Any, create_resource: Callable[..., TerraformOutputs]
) -> TerraformOutputs:
    fetcher.set_state(
        "base.tfstate",
        {"region": "us-east-1", "vpc_id": "vpc-000", "token": "abc"},
        sensitive=["token"],
    )
    fetcher.set_state("override.tfstate", {"vpc_id": "vpc-999", "token": "public"})
    return create_resource(keys=KEYS)


async def test_last_backend_wins(fetcher: Any, resource: TerraformOutputs) -> None:
    """Test the value and flag from the last backend defining a key are used."""
    merged = await merge_all(resource, fetcher)

    assert merged.values == {
        "region": "us-east-1",
        "vpc_id": "vpc-999",
        "token": "public",
        "db_pass": "secret",
    }
    assert merged.sensitive == {
        "region": False,
        "vpc_id": False,
        "token": False,
        "db_pass": True,
    }
    assert len(merged) == 4
    assert merged.sensitive_count == 1
    assert fetcher.fetch_calls == [
        ("base.tfstate", 0),
        ("network.tfstate", 1),
        ("override.tfstate", 2),
    ]


async def test_failure_fails_merge(fetcher: Any, resource: TerraformOutputs) -> None:
    """Test a single failing backend fails the whole merge."""
    fetcher.fetch_errors["network.tfstate"] = MalformedSnapshot(1, "bad json")
    metrics = ReconcileMetrics()

    with pytest.raises(MalformedSnapshot, match="backend 1: bad json"):
        await merge_all(
            resource,
            fetcher,
            metrics.scoped(NamedResource("TerraformOutputs", "default", "app")),
        )

    assert fetcher.fetch_calls == [("base.tfstate", 0), ("network.tfstate", 1)]
    assert metrics.backend_fetch_total == {
        ("default", "app", "s3", 0, "success"): 1,
        ("default", "app", "s3", 1, "error"): 1,
    }
