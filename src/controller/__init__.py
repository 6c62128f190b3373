"""Controller that provisions and retires PVCs for converted pods."""

from .reconciler import Action, PodKey, ReconcileOutcome, Reconciler
from .workqueue import WorkQueue

__all__ = ["Action", "PodKey", "ReconcileOutcome", "Reconciler", "WorkQueue"]
