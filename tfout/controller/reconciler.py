"""
TerraformOutputs reconciler.

A reconciliation pass projects the outputs of the Terraform state files
referenced by a TerraformOutputs object into its ConfigMap and Secret.
Network traffic is avoided where possible:

1. If a target ConfigMap or Secret is missing, or not owned by the object,
   a sync is forced regardless of timing or ETags.
2. Otherwise the pass is skipped until `syncInterval` has elapsed since the
   last sync, and then skipped again unless a backend ETag changed.
3. A sync marks the object InProgress, fetches and merges all backends,
   writes the artifacts and finally records Success along with the current
   ETags (only when the sync was not forced).

Every failure is recorded as a Failed status before the pass returns, and
every pass asks to be requeued after the sync interval.
"""

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass

from tfout.backend import BackendFetcher
from tfout.config import ControllerConfig
from tfout.duration import parse_duration
from tfout.exceptions import ObjectNotFoundError, TfoutException
from tfout.manifest import NamedResource, SyncStatus, TerraformOutputs
from tfout.metrics import MetricsScope, ReconcileMetrics
from tfout.store import READY_CONDITION, Store, set_condition, update_with_retry
from tfout.store.status import REASON_FAILED, REASON_PROGRESSING, REASON_SYNCED

from .artifacts import needs_force_sync, sync_artifacts
from .changes import apply_etags, detect_changes
from .merge import merge_all

__all__ = ["TerraformOutputsReconciler", "ReconcileResult"]

_LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class ReconcileResult:
    """Outcome of a reconciliation pass."""

    requeue_after: datetime.timedelta | None = None
    """Delay before the object should be reconciled again, if at all."""

    error: TfoutException | None = None
    """The failure that ended the pass, if any."""

    @property
    def success(self) -> bool:
        return self.error is None


class TerraformOutputsReconciler:
    """Reconciles a single TerraformOutputs object at a time.

    The reconciler assumes it is never invoked twice concurrently for the same
    object; the controller work queue guarantees that.
    """

    def __init__(
        self,
        store: Store,
        fetcher: BackendFetcher,
        config: ControllerConfig | None = None,
        clock: Clock = utcnow,
        metrics: ReconcileMetrics | None = None,
    ) -> None:
        """Initialize the TerraformOutputsReconciler.

        Args:
            store: The store holding the TerraformOutputs and its artifacts
            fetcher: Reads state files from the backends
            config: The configuration for the reconciler
            clock: Returns the current time, replaced in tests
            metrics: Collects counters for the passes run by this reconciler
        """
        self._store = store
        self._fetcher = fetcher
        self._config = config or ControllerConfig()
        self._clock = clock
        self._metrics = metrics or ReconcileMetrics()

    @property
    def metrics(self) -> ReconcileMetrics:
        return self._metrics

    async def reconcile(self, resource_id: NamedResource) -> ReconcileResult:
        """Run one reconciliation pass for the object."""
        scope = self._metrics.scoped(resource_id)
        with scope.timer("reconcile") as timer:
            try:
                result = await self._reconcile_with_deadline(resource_id, scope)
            except ObjectNotFoundError:
                _LOGGER.info(
                    "%s not found. Ignoring since object must be deleted", resource_id
                )
                result = ReconcileResult()
        scope.reconcile(result.success, timer.elapsed)
        return result

    async def _reconcile_with_deadline(
        self, resource_id: NamedResource, scope: MetricsScope
    ) -> ReconcileResult:
        if (resource := self._store.get_object(resource_id, TerraformOutputs)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        interval = self._sync_interval(resource)
        try:
            async with asyncio.timeout(self._config.reconcile_timeout):
                return await self._reconcile(resource, interval, scope)
        except TimeoutError as err:
            return await self._fail(
                resource_id,
                f"Reconciliation timed out after {self._config.reconcile_timeout}s",
                interval,
                TfoutException(str(err) or "reconciliation timed out"),
            )

    async def _reconcile(
        self,
        resource: TerraformOutputs,
        interval: datetime.timedelta,
        scope: MetricsScope,
    ) -> ReconcileResult:
        resource_id = resource.resource_id
        now = self._clock()

        # Always checked first so that a recreation is never deferred
        force_sync = needs_force_sync(self._store, resource)
        if force_sync:
            _LOGGER.info(
                "Force sync of %s triggered due to missing ConfigMap/Secret",
                resource_id,
            )
        else:
            if (last_sync := _aware(resource.status.last_sync_time)) is not None:
                elapsed = now - last_sync
                if elapsed < interval:
                    _LOGGER.info(
                        "Sync interval not reached for %s, skipping (%s < %s)",
                        resource_id,
                        elapsed,
                        interval,
                    )
                    return ReconcileResult(requeue_after=interval - elapsed)
            try:
                changed, _ = await detect_changes(resource, self._fetcher, scope)
            except TfoutException as err:
                return await self._fail(
                    resource_id, f"Failed to check backend changes: {err}", interval, err
                )
            if not changed:
                _LOGGER.info("No backend changes detected for %s, skipping", resource_id)
                return ReconcileResult(requeue_after=interval)
            _LOGGER.info("Backend changes detected for %s", resource_id)

        message = (
            "Recreating missing resources" if force_sync else "Fetching Terraform outputs"
        )
        try:
            await self._update_status(
                resource_id, SyncStatus.IN_PROGRESS, message, REASON_PROGRESSING
            )
        except ObjectNotFoundError:
            raise
        except TfoutException as err:
            return await self._fail(
                resource_id, f"Failed to update status: {err}", interval, err
            )

        try:
            merged = await merge_all(resource, self._fetcher, scope)
        except TfoutException as err:
            return await self._fail(
                resource_id, f"Failed to fetch outputs: {err}", interval, err
            )

        try:
            sync_artifacts(
                self._store, resource, merged, self._config.sensitivity_policy, scope
            )
        except TfoutException as err:
            return await self._fail(
                resource_id, f"Failed to sync resources: {err}", interval, err
            )

        etags: dict[int, str] | None = None
        if not force_sync:
            # The state files may have changed while they were being fetched
            try:
                _, etags = await detect_changes(resource, self._fetcher, scope)
            except TfoutException as err:
                _LOGGER.warning(
                    "Failed to refresh backend ETags for %s: %s", resource_id, err
                )

        finished = self._clock()
        count = len(merged)
        if force_sync:
            message = f"Successfully recreated missing resources with {count} outputs"
        else:
            message = f"Successfully synced {count} outputs"

        def mark_synced(obj: TerraformOutputs) -> None:
            obj.status.last_sync_time = finished
            obj.status.sync_status = SyncStatus.SUCCESS
            obj.status.output_count = count
            obj.status.message = message
            set_condition(
                obj.status, READY_CONDITION, True, REASON_SYNCED, message, finished
            )
            if etags is not None:
                apply_etags(obj, etags)

        try:
            await update_with_retry(
                self._store,
                resource_id,
                TerraformOutputs,
                mark_synced,
                status_only=etags is None,
                steps=self._config.retry_steps,
                backoff=self._config.retry_backoff,
            )
        except ObjectNotFoundError:
            raise
        except TfoutException as err:
            return await self._fail(
                resource_id,
                f"Failed to update status and annotations: {err}",
                interval,
                err,
            )

        scope.outputs(count, merged.sensitive_count, finished)
        _LOGGER.info("%s for %s", message, resource_id)
        return ReconcileResult(requeue_after=interval)

    def _sync_interval(self, resource: TerraformOutputs) -> datetime.timedelta:
        try:
            interval = parse_duration(resource.spec.sync_interval)
        except ValueError as err:
            _LOGGER.debug(
                "Invalid syncInterval for %s, using default: %s",
                resource.resource_id,
                err,
            )
            return self._config.default_sync_interval
        if interval <= datetime.timedelta(0):
            return self._config.default_sync_interval
        return interval

    async def _update_status(
        self,
        resource_id: NamedResource,
        sync_status: SyncStatus,
        message: str,
        reason: str,
    ) -> None:
        now = self._clock()

        def mutate(obj: TerraformOutputs) -> None:
            obj.status.sync_status = sync_status
            obj.status.message = message
            set_condition(
                obj.status,
                READY_CONDITION,
                sync_status == SyncStatus.SUCCESS,
                reason,
                message,
                now,
            )

        await update_with_retry(
            self._store,
            resource_id,
            TerraformOutputs,
            mutate,
            steps=self._config.retry_steps,
            backoff=self._config.retry_backoff,
        )

    async def _fail(
        self,
        resource_id: NamedResource,
        message: str,
        interval: datetime.timedelta,
        err: TfoutException,
    ) -> ReconcileResult:
        """Record the failure on the object status and request a requeue."""
        _LOGGER.error("Failed to reconcile %s: %s", resource_id, message)
        try:
            await self._update_status(
                resource_id, SyncStatus.FAILED, message, REASON_FAILED
            )
        except TfoutException as status_err:
            _LOGGER.error(
                "Failed to record failure status for %s: %s", resource_id, status_err
            )
        return ReconcileResult(requeue_after=interval, error=err)


def _aware(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value
