"""Shared fixtures for tfout tests."""

import asyncio
import datetime
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from tfout.backend import BackendFetcher, OutputValue, Snapshot
from tfout.exceptions import TfoutException
from tfout.manifest import BackendDescriptor, TerraformOutputs
from tfout.metrics import MetricsScope
from tfout.store import InMemoryStore

BUCKET = "tfstate"
START = datetime.datetime(2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


class FakeFetcher(BackendFetcher):
    """Serves Terraform state from memory, keyed by object key."""

    def __init__(self) -> None:
        self.etags: dict[str, str] = {}
        self.snapshots: dict[str, Snapshot] = {}
        self.fingerprint_errors: dict[str, TfoutException] = {}
        self.fetch_errors: dict[str, TfoutException] = {}
        self.fingerprint_calls: list[tuple[str, int]] = []
        self.fetch_calls: list[tuple[str, int]] = []
        self.delay: float = 0

    def set_state(
        self,
        key: str,
        outputs: dict[str, Any],
        sensitive: Iterable[str] = (),
        etag: str = "etag-1",
    ) -> None:
        sensitive_keys = set(sensitive)
        self.etags[key] = etag
        self.snapshots[key] = Snapshot(
            outputs={
                name: OutputValue(value=value, sensitive=name in sensitive_keys)
                for name, value in outputs.items()
            }
        )

    async def fingerprint(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> str:
        assert backend.s3 is not None
        key = backend.s3.key
        self.fingerprint_calls.append((key, backend_index))
        if (err := self.fingerprint_errors.get(key)) is not None:
            raise err
        return self.etags[key]

    async def fetch(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> Snapshot:
        assert backend.s3 is not None
        key = backend.s3.key
        self.fetch_calls.append((key, backend_index))
        if self.delay:
            await asyncio.sleep(self.delay)
        if (err := self.fetch_errors.get(key)) is not None:
            raise err
        return self.snapshots[key]


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime.datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, delta: datetime.timedelta) -> None:
        self.now = self.now + delta


def terraform_outputs_doc(
    name: str = "app",
    namespace: str = "default",
    keys: Iterable[str] = ("network.tfstate",),
    config_map_name: str | None = "app-config",
    secret_name: str | None = "app-secret",
    target_namespace: str = "apps",
    sync_interval: str | None = "5m",
) -> dict[str, Any]:
    """Return a raw TerraformOutputs document."""
    spec: dict[str, Any] = {
        "backends": [
            {"s3": {"bucket": BUCKET, "key": key, "region": "us-east-1"}}
            for key in keys
        ],
        "target": {"namespace": target_namespace},
    }
    if sync_interval is not None:
        spec["syncInterval"] = sync_interval
    if config_map_name:
        spec["target"]["configMapName"] = config_map_name
    if secret_name:
        spec["target"]["secretName"] = secret_name
    return {
        "apiVersion": "tfout.wibrow.net/v1alpha1",
        "kind": "TerraformOutputs",
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }


@pytest.fixture(name="store")
def store_fixture() -> InMemoryStore:
    """Fixture for an empty store."""
    return InMemoryStore()


@pytest.fixture(name="fetcher")
def fetcher_fixture() -> FakeFetcher:
    """Fixture for a fetcher with a single state file."""
    fetcher = FakeFetcher()
    fetcher.set_state(
        "network.tfstate",
        {"vpc_id": "vpc-123", "db_pass": "secret"},
        sensitive=["db_pass"],
    )
    return fetcher


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    """Fixture for a clock under test control."""
    return FakeClock()


@pytest.fixture(name="create_resource")
def create_resource_fixture(
    store: InMemoryStore,
) -> Callable[..., TerraformOutputs]:
    """Fixture that adds a TerraformOutputs object to the store."""

    def _create(**kwargs: Any) -> TerraformOutputs:
        return store.create_object(
            TerraformOutputs.parse_doc(terraform_outputs_doc(**kwargs))
        )

    return _create
