"""Interface for reading Terraform state from a backend."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping

from tfout.exceptions import UnsupportedBackendKind
from tfout.manifest import BackendDescriptor, BackendKind
from tfout.metrics import MetricsScope

from .state import Snapshot

__all__ = ["BackendFetcher", "BackendDispatcher"]

_LOGGER = logging.getLogger(__name__)


class BackendFetcher(ABC):
    """Reads Terraform state from one kind of backend.

    Implementations never modify the backend.
    """

    @abstractmethod
    async def fingerprint(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> str:
        """Return a token identifying the current contents of the state file.

        This only reads object metadata, not the object itself.

        Raises:
            BackendUnavailable: If the backend can't be reached.
        """

    @abstractmethod
    async def fetch(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> Snapshot:
        """Download and parse the state file.

        Raises:
            BackendUnavailable: If the backend can't be reached.
            MalformedSnapshot: If the state file can't be parsed.
        """


class BackendDispatcher(BackendFetcher):
    """Routes each backend to the fetcher registered for its kind."""

    def __init__(self, fetchers: Mapping[BackendKind, BackendFetcher]) -> None:
        self._fetchers = dict(fetchers)

    def _fetcher(self, backend: BackendDescriptor) -> BackendFetcher:
        kind = backend.kind
        if (fetcher := self._fetchers.get(kind)) is None:
            raise UnsupportedBackendKind(f"Unsupported backend type: {kind}")
        return fetcher

    async def fingerprint(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> str:
        return await self._fetcher(backend).fingerprint(backend, backend_index, metrics)

    async def fetch(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> Snapshot:
        return await self._fetcher(backend).fetch(backend, backend_index, metrics)
