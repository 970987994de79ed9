"""Image clone controller: keeps workloads on images from a backup registry."""

__version__ = "0.1.0"

from image_clone.context import ExecutionContext
from image_clone.outcome import OutcomeStatus, ReconcileOutcome
from image_clone.reconciler import Reconciler
from image_clone.workitem import WorkItem, WorkloadKind, WorkloadRef, decode_key, encode_key

__all__ = [
    "ExecutionContext",
    "OutcomeStatus",
    "ReconcileOutcome",
    "Reconciler",
    "WorkItem",
    "WorkloadKind",
    "WorkloadRef",
    "decode_key",
    "encode_key",
]
