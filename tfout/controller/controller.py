"""
TerraformOutputs controller.

The controller watches the store and feeds a work queue that runs the
reconciler. It reacts to:

    - TerraformOutputs objects being added or changed.
    - ConfigMaps and Secrets owned by a TerraformOutputs object being changed
      or deleted, which re-triggers their owner so that a deleted artifact is
      recreated.

After every pass the object is requeued after the delay requested by the
reconciler, which turns the controller into a poll loop at the sync interval.
"""

import logging

from tfout.backend import BackendFetcher
from tfout.config import ControllerConfig
from tfout.manifest import (
    TERRAFORM_OUTPUTS_KIND,
    ConfigMap,
    KubernetesObject,
    NamedResource,
    Secret,
    TerraformOutputs,
)
from tfout.store import Store, StoreEvent
from tfout.task import WorkQueue

from .reconciler import ReconcileResult, TerraformOutputsReconciler

__all__ = ["TerraformOutputsController"]

_LOGGER = logging.getLogger(__name__)


class TerraformOutputsController:
    """Controller for TerraformOutputs objects and the artifacts they own."""

    def __init__(
        self,
        store: Store,
        fetcher: BackendFetcher,
        config: ControllerConfig | None = None,
        reconciler: TerraformOutputsReconciler | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            store: The central store for TerraformOutputs and artifacts
            fetcher: Reads state files from the backends
            config: The configuration for the controller
            reconciler: Overrides the reconciler built from the arguments above
        """
        self._store = store
        self._config = config or ControllerConfig()
        self._reconciler = reconciler or TerraformOutputsReconciler(
            store, fetcher, self._config
        )
        self._queue: WorkQueue[NamedResource] = WorkQueue(
            self._process,
            workers=self._config.max_concurrent_reconciles,
            name="tfout-reconcile",
        )
        self._remove_listeners: list = []
        self._results: dict[NamedResource, ReconcileResult] = {}

    @property
    def reconciler(self) -> TerraformOutputsReconciler:
        return self._reconciler

    @property
    def queue(self) -> WorkQueue[NamedResource]:
        return self._queue

    def last_result(self, resource_id: NamedResource) -> ReconcileResult | None:
        """Return the result of the latest pass for the object."""
        return self._results.get(resource_id)

    async def start(self) -> None:
        """Start watching the store and processing objects."""
        if self._remove_listeners:
            return
        _LOGGER.info("Starting TerraformOutputs controller")
        self._queue.start()
        self._remove_listeners = [
            self._store.add_listener(StoreEvent.OBJECT_ADDED, self._on_changed, flush=True),
            self._store.add_listener(StoreEvent.OBJECT_UPDATED, self._on_changed),
            self._store.add_listener(StoreEvent.OBJECT_DELETED, self._on_deleted),
        ]

    async def close(self) -> None:
        """Stop watching the store and cancel any pending work."""
        _LOGGER.info("Closing TerraformOutputs controller")
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners.clear()
        await self._queue.close()

    async def block_till_done(self) -> None:
        """Wait for all queued reconciliations to finish."""
        await self._queue.join()

    def _on_changed(self, resource_id: NamedResource, obj: KubernetesObject) -> None:
        if isinstance(obj, TerraformOutputs):
            self._queue.add(resource_id)
        elif isinstance(obj, (ConfigMap, Secret)):
            self._enqueue_owner(obj)

    def _on_deleted(self, resource_id: NamedResource, obj: KubernetesObject) -> None:
        if isinstance(obj, (ConfigMap, Secret)):
            self._enqueue_owner(obj)
        elif isinstance(obj, TerraformOutputs):
            self._results.pop(resource_id, None)

    def _enqueue_owner(self, obj: KubernetesObject) -> None:
        owner_uids = {
            ref.uid
            for ref in obj.metadata.owner_references
            if ref.kind == TERRAFORM_OUTPUTS_KIND
        }
        if not owner_uids:
            return
        for owner in self._store.list_objects(TERRAFORM_OUTPUTS_KIND):
            if owner.metadata.uid in owner_uids:
                _LOGGER.debug(
                    "%s changed, requeueing owner %s", obj.resource_id, owner.resource_id
                )
                self._queue.add(owner.resource_id)

    async def _process(self, resource_id: NamedResource) -> None:
        result = await self._reconciler.reconcile(resource_id)
        if self._store.get_object(resource_id, TerraformOutputs) is None:
            self._results.pop(resource_id, None)
            return
        self._results[resource_id] = result
        if result.requeue_after is not None:
            self._queue.add_after(resource_id, result.requeue_after.total_seconds())
