"""Tests for WorkQueue."""

import threading
import time

from image_clone.workitem import WorkItem
from image_clone.workqueue import WorkQueue

A = WorkItem(namespace="test", key="Deployment:a")
B = WorkItem(namespace="test", key="Deployment:b")


def test_fifo_order():
    """Items come out in the order they were added."""
    q = WorkQueue()
    q.add(A)
    q.add(B)

    assert q.get(timeout=0) == A
    assert q.get(timeout=0) == B


def test_duplicate_add_is_collapsed():
    """Adding a queued item again does not queue it twice."""
    q = WorkQueue()
    q.add(A)
    q.add(A)

    assert len(q) == 1


def test_readd_while_processing_waits_for_done():
    """An item re-added during processing is redelivered only after done()."""
    q = WorkQueue()
    q.add(A)
    item = q.get(timeout=0)

    q.add(A)
    assert len(q) == 0
    assert q.get(timeout=0) is None

    q.done(item)
    assert q.get(timeout=0) == A


def test_done_without_readd_does_not_requeue():
    q = WorkQueue()
    q.add(A)
    q.done(q.get(timeout=0))

    assert len(q) == 0


def test_add_after_delays_delivery():
    """Delayed items are not handed out before they are due."""
    q = WorkQueue()
    q.add_after(A, 0.1)

    assert q.get(timeout=0) is None
    start = time.monotonic()
    assert q.get(timeout=2) == A
    assert time.monotonic() - start >= 0.05


def test_add_after_orders_by_due_time():
    q = WorkQueue()
    q.add_after(A, 0.2)
    q.add_after(B, 0.05)

    assert q.get(timeout=2) == B
    assert q.get(timeout=2) == A


def test_add_after_non_positive_delay_adds_now():
    q = WorkQueue()
    q.add_after(A, 0)

    assert q.get(timeout=0) == A


def test_get_times_out():
    q = WorkQueue()

    assert q.get(timeout=0.05) is None


def test_shut_down_wakes_blocked_get():
    """A worker blocked in get() returns None on shutdown."""
    q = WorkQueue()
    results = []
    t = threading.Thread(target=lambda: results.append(q.get()))
    t.start()

    time.sleep(0.05)
    q.shut_down()
    t.join(timeout=2)

    assert not t.is_alive()
    assert results == [None]


def test_add_after_shut_down_is_ignored():
    q = WorkQueue()
    q.shut_down()
    q.add(A)
    q.add_after(B, 0.01)

    assert q.get(timeout=0) is None
