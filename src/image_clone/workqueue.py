"""
In-process work queue feeding the reconcile workers.

Items are de-duplicated while queued, and an item is never handed to two
workers at once: re-adding an item that is being processed queues it again
only once the worker calls ``done``. Delayed adds wait in a heap until due.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Optional

from image_clone.workitem import WorkItem

logger = logging.getLogger(__name__)


class WorkQueue:
    """Thread-safe de-duplicating FIFO with delayed re-adds."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._queue: deque[WorkItem] = deque()
        self._dirty: set[WorkItem] = set()
        self._processing: set[WorkItem] = set()
        self._waiting: list[tuple[float, int, WorkItem]] = []
        self._counter = itertools.count()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, item: WorkItem) -> None:
        """Queue an item unless it is already queued."""
        with self._cond:
            self._add_locked(item)

    def add_after(self, item: WorkItem, delay: float) -> None:
        """Queue an item once ``delay`` seconds have passed."""
        if delay <= 0:
            self.add(item)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay, next(self._counter), item))
            self._cond.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[WorkItem]:
        """
        Block until an item is available.

        Returns:
            The next item, or None on shutdown or when ``timeout`` expires
        """
        with self._cond:
            end = None if timeout is None else time.monotonic() + timeout
            while True:
                self._promote_due_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._dirty.discard(item)
                    self._processing.add(item)
                    return item
                if self._shutting_down:
                    return None

                now = time.monotonic()
                if end is not None and now >= end:
                    return None
                wait = None
                if self._waiting:
                    wait = max(0.0, self._waiting[0][0] - now)
                if end is not None:
                    wait = end - now if wait is None else min(wait, end - now)
                self._cond.wait(wait)

    def done(self, item: WorkItem) -> None:
        """Mark an item as processed; requeue it if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty and not self._shutting_down:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop handing out items and wake every waiting worker."""
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._cond.notify_all()

    def _add_locked(self, item: WorkItem) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def _promote_due_locked(self) -> None:
        now = time.monotonic()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, item = heapq.heappop(self._waiting)
            self._add_locked(item)
