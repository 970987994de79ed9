"""
Workload objects and the container image rewriter.

Deployments and DaemonSets share the same pod template shape, so the rewriter
only talks to the ``Workload`` wrapper and never inspects the concrete
Kubernetes model type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator

from image_clone.exceptions import UnsupportedKind
from image_clone.image_utils import references_registry, translate_image
from image_clone.workitem import WorkloadKind, WorkloadRef

logger = logging.getLogger(__name__)

SUPPORTED_KINDS = frozenset(WorkloadKind)


@dataclass(frozen=True)
class MirrorMapping:
    """A source image and the backup registry address it is mirrored to."""

    source: str
    destination: str


@dataclass
class Workload:
    """A fetched workload object together with the reference it was fetched by.

    Attributes:
        ref: Identity of the workload.
        obj: The Kubernetes model (V1Deployment or V1DaemonSet). Mutated in place
             by the rewriter and written back by the object store.
    """

    ref: WorkloadRef
    obj: Any

    @property
    def kind(self) -> WorkloadKind:
        return self.ref.kind

    @property
    def pod_spec(self) -> Any:
        """The pod spec inside the workload's pod template."""
        spec = getattr(self.obj, "spec", None)
        template = getattr(spec, "template", None)
        pod_spec = getattr(template, "spec", None)
        if pod_spec is None:
            raise UnsupportedKind(f"{self.ref} has no pod template")
        return pod_spec

    def iter_containers(self) -> Iterator[Any]:
        """Yield main containers, then init containers, in spec order."""
        pod_spec = self.pod_spec
        yield from pod_spec.containers or []
        yield from pod_spec.init_containers or []


def rewrite_images(workload: Workload, backup_registry: str) -> list[MirrorMapping]:
    """
    Point every container of a workload at the backup registry.

    Containers whose image already contains the backup registry address are
    left alone. All others get their image replaced with the translated
    destination address.

    Args:
        workload: Workload to rewrite (mutated in place)
        backup_registry: Backup registry address

    Returns:
        Mappings for the images that still need mirroring, in container order.
        A source image used by several containers appears once.

    Raises:
        UnsupportedKind: If the workload kind is not reconcilable
    """
    if workload.kind not in SUPPORTED_KINDS:
        raise UnsupportedKind(f"unsupported workload kind {workload.kind!r}")

    mappings: list[MirrorMapping] = []
    seen: set[str] = set()

    for container in workload.iter_containers():
        source = container.image
        if not source or references_registry(source, backup_registry):
            continue

        destination = translate_image(source, backup_registry)
        container.image = destination
        logger.debug(f"{workload.ref}: container {container.name} {source} -> {destination}")

        if source not in seen:
            seen.add(source)
            mappings.append(MirrorMapping(source=source, destination=destination))

    return mappings
