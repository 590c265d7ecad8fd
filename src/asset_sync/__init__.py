"""Keep a content-hash index of on-disk assets in sync with a database table."""

from .constants import VERSION as __version__
from .core import FileRecord, IndexEntry, PlanEntry, ReconcileReport, UpdatePlan
from .reconciler import Reconciler, ReconcileState

__all__ = [
    "__version__",
    "FileRecord",
    "IndexEntry",
    "PlanEntry",
    "ReconcileReport",
    "ReconcileState",
    "Reconciler",
    "UpdatePlan",
]
