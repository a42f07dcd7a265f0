"""The TerraformOutputs controller module.

This module provides the reconciler that syncs Terraform outputs into a
ConfigMap and Secret, and the controller that runs it whenever the object or
its artifacts change.
"""

from .artifacts import classify, needs_force_sync, stringify, sync_artifacts, upsert_artifact
from .changes import apply_etags, detect_changes
from .controller import TerraformOutputsController
from .merge import MergedOutputs, merge_all
from .reconciler import ReconcileResult, TerraformOutputsReconciler

__all__ = [
    "TerraformOutputsController",
    "TerraformOutputsReconciler",
    "ReconcileResult",
    "MergedOutputs",
    "merge_all",
    "detect_changes",
    "apply_etags",
    "classify",
    "stringify",
    "upsert_artifact",
    "sync_artifacts",
    "needs_force_sync",
]
