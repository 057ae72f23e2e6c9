"""Reconciliation of discovered entities into stored inventory."""

from fleetsync.reconciliation.reconciler import (
    MergeOutcome,
    ReconcileReport,
    Reconciler,
    merge_sync_result,
)

__all__ = [
    "MergeOutcome",
    "ReconcileReport",
    "Reconciler",
    "merge_sync_result",
]
