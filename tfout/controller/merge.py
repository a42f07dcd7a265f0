"""Fetch the outputs of every backend and merge them."""

import logging
from dataclasses import dataclass, field
from typing import Any

from tfout.backend import BackendFetcher
from tfout.exceptions import InputException, TfoutException, UnsupportedBackendKind
from tfout.manifest import TerraformOutputs
from tfout.metrics import MetricsScope, Timer

__all__ = ["MergedOutputs", "merge_all"]

_LOGGER = logging.getLogger(__name__)


@dataclass
class MergedOutputs:
    """Output values and sensitivity flags merged across backends."""

    values: dict[str, Any] = field(default_factory=dict)
    sensitive: dict[str, bool] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.values)

    @property
    def sensitive_count(self) -> int:
        return sum(1 for flag in self.sensitive.values() if flag)


async def merge_all(
    resource: TerraformOutputs,
    fetcher: BackendFetcher,
    metrics: MetricsScope | None = None,
) -> MergedOutputs:
    """Fetch every backend in order and merge the outputs.

    When more than one backend defines an output the value and sensitivity
    flag of the last backend win. Any backend failure fails the whole merge.
    """
    if not resource.spec.backends:
        raise InputException(f"No backends configured for {resource.resource_id}")

    merged = MergedOutputs()
    for index, backend in enumerate(resource.spec.backends):
        try:
            kind = backend.validate()
        except UnsupportedBackendKind as err:
            raise UnsupportedBackendKind(f"backend {index}: {err}") from err
        _LOGGER.info(
            "Processing backend %d of %s: %s",
            index,
            resource.resource_id,
            backend.location,
        )
        timer = Timer()
        try:
            snapshot = await fetcher.fetch(backend, index, metrics)
        except TfoutException:
            if metrics:
                metrics.backend_fetch(kind, index, False, timer.elapsed)
            raise
        if metrics:
            metrics.backend_fetch(kind, index, True, timer.elapsed)

        for key, output in snapshot.outputs.items():
            if key in merged.values:
                _LOGGER.info(
                    "Output key %s conflict detected, using value from backend %d",
                    key,
                    index,
                )
            merged.values[key] = output.value
            merged.sensitive[key] = output.sensitive
        _LOGGER.info(
            "Processed backend %d with %d outputs", index, len(snapshot.outputs)
        )

    _LOGGER.info(
        "Merged %d outputs from %d backends",
        len(merged),
        len(resource.spec.backends),
    )
    return merged
