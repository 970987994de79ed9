"""
Work-item keys carried by the delivery queue.

The queue only knows about (namespace, name), so the workload kind is folded
into the name as ``<Kind>:<name>``. Colons are not legal in Kubernetes object
names, which keeps decoding lossless.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from image_clone.exceptions import MalformedKey

KEY_SEPARATOR = ":"


class WorkloadKind(str, Enum):
    """Workload kinds the controller reconciles."""

    DEPLOYMENT = "Deployment"
    DAEMONSET = "DaemonSet"


@dataclass(frozen=True)
class WorkloadRef:
    """Identifies one reconcilable workload."""

    kind: WorkloadKind
    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


@dataclass(frozen=True)
class WorkItem:
    """One unit of delivery: an encoded key plus the namespace it lives in."""

    namespace: str
    key: str


def encode_key(kind: WorkloadKind, name: str) -> str:
    """Fold a workload kind into a queue key.

    Examples:
        >>> encode_key(WorkloadKind.DEPLOYMENT, "server")
        'Deployment:server'
    """
    return f"{WorkloadKind(kind).value}{KEY_SEPARATOR}{name}"


def decode_key(key: str) -> tuple[WorkloadKind, str]:
    """Recover (kind, name) from a key produced by encode_key.

    Raises:
        MalformedKey: If the separator is missing or the kind is unknown.
    """
    kind_tag, sep, name = key.partition(KEY_SEPARATOR)
    if not sep or not name:
        raise MalformedKey(f"could not parse kind and name from key {key!r}")
    try:
        kind = WorkloadKind(kind_tag)
    except ValueError:
        raise MalformedKey(f"unknown workload kind {kind_tag!r} in key {key!r}") from None
    return kind, name


def ref_from_item(item: WorkItem) -> WorkloadRef:
    """Build a WorkloadRef from a delivered work item."""
    kind, name = decode_key(item.key)
    return WorkloadRef(kind=kind, name=name, namespace=item.namespace)
