"""
Controller: watches workloads and drives reconcile workers.

One watch thread per workload kind turns ADDED/MODIFIED events into work items
(the kind is folded into the key with ``encode_key``), and a pool of worker
threads pulls items off the shared queue and reconciles them. RETRY outcomes
are re-queued after the delay the reconciler asked for.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import urllib3
from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from image_clone.config import Settings
from image_clone.context import ExecutionContext
from image_clone.exceptions import Cancelled
from image_clone.outcome import OutcomeStatus, ReconcileOutcome
from image_clone.reconciler import Reconciler
from image_clone.workitem import WorkItem, WorkloadKind, encode_key
from image_clone.workqueue import WorkQueue

logger = logging.getLogger(__name__)

HTTP_GONE = 410
WATCH_ERROR_BACKOFF = 5.0
"""Seconds to wait before re-opening a watch that failed."""

WORKER_JOIN_TIMEOUT = 30.0
"""Seconds to wait for each worker to finish its current item on shutdown."""

ENQUEUE_EVENT_TYPES = frozenset({"ADDED", "MODIFIED"})


class Controller:
    """Runs watches and reconcile workers until stopped."""

    def __init__(
        self,
        settings: Settings,
        reconciler: Reconciler,
        apps_api: Optional[client.AppsV1Api] = None,
        queue: Optional[WorkQueue] = None,
        watch_factory: Callable[[], Any] = watch.Watch,
    ):
        self.settings = settings
        self.reconciler = reconciler
        self.apps = apps_api or client.AppsV1Api()
        self.queue = queue or WorkQueue()
        self._watch_factory = watch_factory
        self._list_calls: dict[WorkloadKind, Callable[..., Any]] = {
            WorkloadKind.DEPLOYMENT: self.apps.list_deployment_for_all_namespaces,
            WorkloadKind.DAEMONSET: self.apps.list_daemon_set_for_all_namespaces,
        }

    def run(self, stop_event: threading.Event) -> None:
        """Start watches and workers; block until ``stop_event`` is set."""
        for kind in self._list_calls:
            threading.Thread(
                target=self._watch, args=(kind, stop_event), name=f"watch-{kind.value}", daemon=True
            ).start()

        workers = []
        for i in range(self.settings.workers):
            t = threading.Thread(target=self._worker, args=(stop_event,), name=f"worker-{i}", daemon=True)
            t.start()
            workers.append(t)

        logger.info(f"Controller started with {self.settings.workers} worker(s)")
        stop_event.wait()

        logger.info("Controller stopping")
        self.queue.shut_down()
        for t in workers:
            t.join(timeout=WORKER_JOIN_TIMEOUT)

    def handle_event(self, kind: WorkloadKind, event: dict[str, Any]) -> None:
        """Enqueue a work item for a watch event on a workload."""
        if event.get("type") not in ENQUEUE_EVENT_TYPES:
            return
        metadata = getattr(event.get("object"), "metadata", None)
        if metadata is None:
            return
        self.queue.add(WorkItem(namespace=metadata.namespace, key=encode_key(kind, metadata.name)))

    def process(self, item: WorkItem, stop_event: threading.Event) -> Optional[ReconcileOutcome]:
        """
        Reconcile one item and schedule its redelivery if needed.

        Returns:
            The outcome, or None if the pass was cancelled or failed unexpectedly
        """
        ctx = ExecutionContext(cancel_event=stop_event).child(self.settings.registry_timeout_seconds)
        try:
            outcome = self.reconciler.reconcile(item.namespace, item.key, ctx)
        except Cancelled as e:
            if stop_event.is_set():
                logger.info(f"Reconcile of {item.namespace}/{item.key} cancelled by shutdown")
            else:
                logger.warning(f"Reconcile of {item.namespace}/{item.key} cancelled: {e}")
                self.queue.add_after(item, self.settings.mirror_retry_seconds)
            return None
        except Exception:
            logger.exception(f"Unexpected error reconciling {item.namespace}/{item.key}")
            return None

        self._handle_outcome(item, outcome)
        return outcome

    def _handle_outcome(self, item: WorkItem, outcome: ReconcileOutcome) -> None:
        if outcome.status == OutcomeStatus.RETRY:
            self.queue.add_after(item, outcome.requeue_after or 0)
        elif outcome.status == OutcomeStatus.FATAL:
            logger.error(f"Giving up on {item.namespace}/{item.key}: {outcome.reason}")
        else:
            logger.debug(f"{item.namespace}/{item.key}: {outcome.status.value} {outcome.reason}")

    def _worker(self, stop_event: threading.Event) -> None:
        while True:
            item = self.queue.get()
            if item is None:
                return
            try:
                self.process(item, stop_event)
            finally:
                self.queue.done(item)

    def _watch(self, kind: WorkloadKind, stop_event: threading.Event) -> None:
        """Stream events for one kind, re-opening the watch until stopped."""
        list_call = self._list_calls[kind]
        resource_version: Optional[str] = None

        while not stop_event.is_set():
            w = self._watch_factory()
            kwargs: dict[str, Any] = {"timeout_seconds": self.settings.resync_seconds}
            if resource_version:
                kwargs["resource_version"] = resource_version
            try:
                for event in w.stream(list_call, **kwargs):
                    if stop_event.is_set():
                        w.stop()
                        break
                    metadata = getattr(event.get("object"), "metadata", None)
                    if metadata is not None:
                        resource_version = metadata.resource_version or resource_version
                    self.handle_event(kind, event)
                # Window closed: re-list so every object is delivered again
                resource_version = None
            except ApiException as e:
                if e.status == HTTP_GONE:
                    logger.info(f"{kind.value} watch expired, re-listing")
                    resource_version = None
                    continue
                logger.error(f"{kind.value} watch failed: {e.status} {e.reason}")
                stop_event.wait(WATCH_ERROR_BACKOFF)
            except urllib3.exceptions.HTTPError as e:
                logger.error(f"{kind.value} watch connection failed: {e}")
                stop_event.wait(WATCH_ERROR_BACKOFF)
