"""Cancellation and deadline context threaded through every blocking call."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from image_clone.exceptions import Cancelled


@dataclass
class ExecutionContext:
    """Context provided to a reconcile pass.

    Attributes:
        cancel_event: Set when cancellation is requested. Shared between a
                      parent context and the children derived from it.
        deadline: Absolute ``time.monotonic()`` value after which blocking
                  calls must give up, or None for no deadline.
    """

    cancel_event: threading.Event = field(default_factory=threading.Event)
    deadline: float | None = None

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested or the deadline has passed."""
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check_cancelled(self) -> None:
        """Raise Cancelled if the context is done."""
        if self.cancel_event.is_set():
            raise Cancelled("operation cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise Cancelled("deadline exceeded", cause="deadline")

    def child(self, timeout: float | None) -> ExecutionContext:
        """Derive a context sharing cancellation, with a tighter deadline."""
        if timeout is None:
            return ExecutionContext(cancel_event=self.cancel_event, deadline=self.deadline)
        deadline = time.monotonic() + timeout
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return ExecutionContext(cancel_event=self.cancel_event, deadline=deadline)
