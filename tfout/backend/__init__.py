"""Backends holding Terraform state.

A backend can cheaply report a fingerprint of its state file, used to detect
changes, or download and parse the whole file into a Snapshot.
"""

from tfout.config import S3FetcherConfig
from tfout.manifest import BackendKind

from .fetcher import BackendFetcher, BackendDispatcher
from .s3 import S3Fetcher
from .state import OutputValue, Snapshot, parse_state

__all__ = [
    "BackendFetcher",
    "BackendDispatcher",
    "S3Fetcher",
    "OutputValue",
    "Snapshot",
    "parse_state",
    "default_fetcher",
]


def default_fetcher(s3_config: S3FetcherConfig | None = None) -> BackendFetcher:
    """Return a fetcher that supports every known backend kind."""
    return BackendDispatcher({BackendKind.S3: S3Fetcher(s3_config)})
