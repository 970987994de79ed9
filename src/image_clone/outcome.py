"""Outcome of one reconcile pass, handed back to the delivery layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OutcomeStatus(Enum):
    """How a reconcile pass ended."""

    SKIPPED = "skipped"
    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class ReconcileOutcome:
    """Returned by every reconcile pass.

    Attributes:
        status: Overall outcome.
        reason: Human-readable one-line explanation.
        requeue_after: Seconds to wait before redelivery (RETRY only).
        error: The error behind a RETRY or FATAL outcome.
    """

    status: OutcomeStatus
    reason: str = ""
    requeue_after: float | None = None
    error: Exception | None = None

    @classmethod
    def skipped(cls, reason: str) -> ReconcileOutcome:
        return cls(status=OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def success(cls, reason: str = "") -> ReconcileOutcome:
        return cls(status=OutcomeStatus.SUCCESS, reason=reason)

    @classmethod
    def retry(cls, after: float, error: Exception) -> ReconcileOutcome:
        return cls(status=OutcomeStatus.RETRY, reason=str(error), requeue_after=after, error=error)

    @classmethod
    def fatal(cls, error: Exception) -> ReconcileOutcome:
        return cls(status=OutcomeStatus.FATAL, reason=str(error), error=error)
