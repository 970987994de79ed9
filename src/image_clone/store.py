"""Object store access for Deployments and DaemonSets."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from image_clone.context import ExecutionContext
from image_clone.exceptions import ObjectConflict, ObjectFetchError, ObjectNotFound, ObjectUpdateError
from image_clone.workitem import WorkloadKind, WorkloadRef
from image_clone.workloads import Workload

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


class ObjectStore(Protocol):
    """Read and write workload objects."""

    def get(self, ref: WorkloadRef, ctx: ExecutionContext) -> Workload:
        """
        Fetch a workload.

        Raises:
            ObjectNotFound: If the object does not exist.
            ObjectFetchError: On any other failure.
        """
        ...

    def update(self, workload: Workload, ctx: ExecutionContext) -> None:
        """
        Write a workload back.

        Raises:
            ObjectConflict: If the object changed since it was read.
            ObjectUpdateError: On any other failure.
        """
        ...


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        config.load_kube_config()
        logger.debug("Loaded Kubernetes configuration from kubeconfig")


class KubernetesObjectStore:
    """ObjectStore backed by the Kubernetes apps/v1 API."""

    def __init__(self, apps_api: client.AppsV1Api | None = None):
        self.apps = apps_api or client.AppsV1Api()
        self._readers: dict[WorkloadKind, Callable[..., Any]] = {
            WorkloadKind.DEPLOYMENT: self.apps.read_namespaced_deployment,
            WorkloadKind.DAEMONSET: self.apps.read_namespaced_daemon_set,
        }
        self._writers: dict[WorkloadKind, Callable[..., Any]] = {
            WorkloadKind.DEPLOYMENT: self.apps.replace_namespaced_deployment,
            WorkloadKind.DAEMONSET: self.apps.replace_namespaced_daemon_set,
        }

    def get(self, ref: WorkloadRef, ctx: ExecutionContext) -> Workload:
        ctx.check_cancelled()
        read = self._readers.get(ref.kind)
        if read is None:
            raise ObjectFetchError(f"no reader for kind {ref.kind!r}")

        try:
            obj = read(ref.name, ref.namespace, _request_timeout=ctx.remaining())
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                raise ObjectNotFound(f"could not find {ref}") from e
            raise ObjectFetchError(f"could not fetch {ref}: {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise ObjectFetchError(f"could not fetch {ref}: {e}") from e

        return Workload(ref=ref, obj=obj)

    def update(self, workload: Workload, ctx: ExecutionContext) -> None:
        ctx.check_cancelled()
        ref = workload.ref
        write = self._writers.get(ref.kind)
        if write is None:
            raise ObjectUpdateError(f"no writer for kind {ref.kind!r}")

        # The body carries the resourceVersion it was read at, so a stale
        # write is rejected with 409
        try:
            write(ref.name, ref.namespace, workload.obj, _request_timeout=ctx.remaining())
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                raise ObjectConflict(f"could not write {ref}: object was modified") from e
            raise ObjectUpdateError(f"could not write {ref}: {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise ObjectUpdateError(f"could not write {ref}: {e}") from e
