"""Counters and timers describing the work done by a reconciler.

The metrics are held by a reconciler instance rather than a process wide
registry. Sub-components are handed a `MetricsScope` that is bound to the
object being reconciled.
"""

import datetime
import logging
from collections import Counter, defaultdict
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import DefaultDict

from .manifest import NamedResource

__all__ = ["ReconcileMetrics", "MetricsScope"]

_LOGGER = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


def _result(success: bool) -> str:
    return SUCCESS if success else ERROR


class ReconcileMetrics:
    """Counters, gauges and durations keyed by label tuples."""

    def __init__(self) -> None:
        self.reconcile_total: Counter[tuple[str, str, str]] = Counter()
        self.reconcile_duration: DefaultDict[tuple[str, str, str], list[float]] = (
            defaultdict(list)
        )
        self.backend_fetch_total: Counter[tuple[str, str, str, int, str]] = Counter()
        self.backend_fetch_duration: DefaultDict[
            tuple[str, str, str, int], list[float]
        ] = defaultdict(list)
        self.s3_requests_total: Counter[tuple[str, str, str, str]] = Counter()
        self.config_map_operations_total: Counter[tuple[str, str, str, str]] = (
            Counter()
        )
        self.secret_operations_total: Counter[tuple[str, str, str, str]] = Counter()
        self.outputs_found: dict[tuple[str, str], int] = {}
        self.sensitive_outputs_found: dict[tuple[str, str], int] = {}
        self.last_sync_timestamp: dict[tuple[str, str], float] = {}

    def scoped(self, resource_id: NamedResource) -> "MetricsScope":
        """Return a view that records metrics for a single object."""
        return MetricsScope(self, resource_id.namespace or "", resource_id.name)


@dataclass
class MetricsScope:
    """Metrics bound to the namespace and name of one object."""

    metrics: ReconcileMetrics
    namespace: str
    name: str

    def reconcile(self, success: bool, duration: float) -> None:
        key = (self.namespace, self.name, _result(success))
        self.metrics.reconcile_total[key] += 1
        self.metrics.reconcile_duration[key].append(duration)

    def backend_fetch(
        self, backend_type: str, backend_index: int, success: bool, duration: float
    ) -> None:
        self.metrics.backend_fetch_total[
            (self.namespace, self.name, backend_type, backend_index, _result(success))
        ] += 1
        if success:
            self.metrics.backend_fetch_duration[
                (self.namespace, self.name, backend_type, backend_index)
            ].append(duration)

    def object_storage_request(self, operation: str, success: bool) -> None:
        self.metrics.s3_requests_total[
            (self.namespace, self.name, operation, _result(success))
        ] += 1

    def artifact_operation(self, kind: str, operation: str, success: bool) -> None:
        counter = (
            self.metrics.secret_operations_total
            if kind == "Secret"
            else self.metrics.config_map_operations_total
        )
        counter[(self.namespace, self.name, operation, _result(success))] += 1

    def outputs(self, total: int, sensitive: int, now: datetime.datetime) -> None:
        key = (self.namespace, self.name)
        self.metrics.outputs_found[key] = total
        self.metrics.sensitive_outputs_found[key] = sensitive
        self.metrics.last_sync_timestamp[key] = now.timestamp()

    @contextmanager
    def timer(self, label: str) -> Generator["Timer", None, None]:
        """Measure the duration of a block, logged at debug level."""
        timer = Timer()
        _LOGGER.debug("[Trace] > %s/%s %s", self.namespace, self.name, label)
        try:
            yield timer
        finally:
            timer.stop()
            _LOGGER.debug(
                "[Trace] < %s/%s %s (%0.2fs)",
                self.namespace,
                self.name,
                label,
                timer.elapsed,
            )


class Timer:
    """Elapsed time since creation, frozen once stopped."""

    def __init__(self) -> None:
        self._start = perf_counter()
        self._end: float | None = None

    def stop(self) -> None:
        if self._end is None:
            self._end = perf_counter()

    @property
    def elapsed(self) -> float:
        end = self._end if self._end is not None else perf_counter()
        return end - self._start
