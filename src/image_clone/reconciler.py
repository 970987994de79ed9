"""
Reconcile orchestrator.

One reconcile pass takes a delivered work item through:

    namespace filter -> decode + fetch -> rewrite spec -> mirror images -> commit

and returns a ReconcileOutcome. The pass keeps no state between calls, so a
redelivered item simply starts over: the rewrite is recomputed from the current
object, and images that already point at the backup registry are skipped.
Retries are never performed here; RETRY outcomes tell the delivery layer when
to try again.
"""

from __future__ import annotations

import logging

from image_clone.config import Settings
from image_clone.context import ExecutionContext
from image_clone.exceptions import (
    MalformedKey,
    MirrorError,
    ObjectFetchError,
    ObjectUpdateError,
    UnsupportedKind,
)
from image_clone.mirror import MirrorExecutor
from image_clone.outcome import ReconcileOutcome
from image_clone.registry import RegistryClient
from image_clone.store import ObjectStore
from image_clone.workitem import WorkItem, ref_from_item
from image_clone.workloads import rewrite_images

logger = logging.getLogger(__name__)


class Reconciler:
    """Reconciles Deployments and DaemonSets onto the backup registry."""

    def __init__(self, settings: Settings, store: ObjectStore, registry: RegistryClient):
        self.settings = settings
        self.store = store
        self.mirror = MirrorExecutor(registry, settings.credentials)

    def reconcile(self, namespace: str, key: str, ctx: ExecutionContext) -> ReconcileOutcome:
        """
        Run one reconcile pass for a work item.

        Args:
            namespace: Namespace delivered alongside the key
            key: Work-item key produced by ``encode_key``
            ctx: Cancellation context for every blocking call

        Returns:
            SKIPPED for ignored namespaces and unfetchable objects, SUCCESS when
            nothing is left to do, RETRY after registry or commit failures,
            FATAL for requests that cannot succeed as-is

        Raises:
            Cancelled: If the context is cancelled; never turned into an outcome
        """
        if namespace in self.settings.ignore_namespaces:
            logger.debug(f"Ignoring {key} in namespace {namespace}")
            return ReconcileOutcome.skipped("ignored namespace")

        try:
            ref = ref_from_item(WorkItem(namespace=namespace, key=key))
            workload = self.store.get(ref, ctx)
        except (MalformedKey, ObjectFetchError) as e:
            logger.error(f"Could not fetch object for {namespace}/{key}: {e}")
            return ReconcileOutcome.skipped("fetch error")

        try:
            mappings = rewrite_images(workload, self.settings.backup_registry)
        except UnsupportedKind as e:
            logger.error(f"Could not update images in {ref}: {e}")
            return ReconcileOutcome.fatal(e)

        if not mappings:
            logger.info(f"{ref} already reconciled")
            return ReconcileOutcome.success("already reconciled")

        logger.info(f"{ref}: processing {len(mappings)} image(s)")
        try:
            self.mirror.mirror(ctx, mappings)
        except MirrorError as e:
            if not e.retryable:
                logger.error(f"{ref}: {e}")
                return ReconcileOutcome.fatal(e)
            after = self.settings.mirror_retry_seconds
            logger.warning(f"{ref}: could not push images to backup registry (requeue in {after}s): {e}")
            return ReconcileOutcome.retry(after, e)

        try:
            self.store.update(workload, ctx)
        except ObjectUpdateError as e:
            if not e.retryable:
                logger.error(f"{ref}: could not write object: {e}")
                return ReconcileOutcome.fatal(e)
            after = self.settings.commit_retry_seconds
            logger.warning(f"{ref}: could not write object (requeue in {after}s): {e}")
            return ReconcileOutcome.retry(after, e)

        logger.info(f"{ref} now uses images from {self.settings.backup_registry}")
        return ReconcileOutcome.success()
