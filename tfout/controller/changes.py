"""Detect changes to backends by comparing ETags."""

import logging

from tfout.backend import BackendFetcher
from tfout.exceptions import InputException, UnsupportedBackendKind
from tfout.manifest import ETAG_ANNOTATION_PREFIX, TerraformOutputs
from tfout.metrics import MetricsScope

__all__ = ["detect_changes", "apply_etags"]

_LOGGER = logging.getLogger(__name__)


async def detect_changes(
    resource: TerraformOutputs,
    fetcher: BackendFetcher,
    metrics: MetricsScope | None = None,
) -> tuple[bool, dict[int, str]]:
    """Check if any backend state file changed since the last sync.

    The ETag of every backend is compared against the annotation stored on the
    object for that backend index. A missing annotation counts as a change.
    The first backend that can't be reached fails the whole check.

    Returns:
        A tuple of whether anything changed and the current ETag of every
        backend, keyed by backend index.
    """
    if not resource.spec.backends:
        raise InputException(f"No backends configured for {resource.resource_id}")

    etags: dict[int, str] = {}
    changed = False
    for index, backend in enumerate(resource.spec.backends):
        try:
            backend.validate()
        except UnsupportedBackendKind as err:
            raise UnsupportedBackendKind(f"backend {index}: {err}") from err
        etag = await fetcher.fingerprint(backend, index, metrics)
        etags[index] = etag
        stored = resource.stored_etag(index)
        if not stored or stored != etag:
            _LOGGER.debug(
                "Backend %d of %s changed (stored ETag %s, current %s)",
                index,
                resource.resource_id,
                stored,
                etag,
            )
            changed = True
    return changed, etags


def apply_etags(resource: TerraformOutputs, etags: dict[int, str]) -> None:
    """Record the ETag of each backend in the object annotations."""
    for index, etag in etags.items():
        resource.metadata.annotations[f"{ETAG_ANNOTATION_PREFIX}{index}"] = etag
