"""
Parsing and translation of container image references.

Source images are mapped into the backup registry by flattening their
repository path into a single repository-less tag:

    docker.io/service/platform/nginx:v2  ->  <backup>:service_platform_nginx_v2

The backup registry may not support nested repositories, so every source image
becomes a tag of the single backup repository. The mapping is a pure function
of its inputs; re-reconciliation relies on that to recognise images it already
mirrored.
"""

import re
from dataclasses import dataclass
from typing import Optional

from image_clone.exceptions import InvalidReference

DEFAULT_REGISTRY = "docker.io"
"""Registry assumed when an image reference has no registry host."""

DEFAULT_TAG = "latest"
"""Tag assumed when an image reference has no tag."""

# Reference grammar used by registries (distribution/reference).
_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|[-]+)[a-z0-9]+)*"
_HOST = r"(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*(?::[0-9]+)?"
_REPOSITORY_RE = re.compile(rf"^{_COMPONENT}(?:/{_COMPONENT})*$")
_HOST_RE = re.compile(rf"^{_HOST}$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")


def _looks_like_registry(segment: str) -> bool:
    """A leading path segment is a registry host if it has a dot, a port or is localhost."""
    return "." in segment or ":" in segment or segment == "localhost"


@dataclass(frozen=True)
class ImageReference:
    """
    Parsed container image reference.

    ``registry`` is empty when the reference relies on the implicit default
    registry, and ``tag`` is empty when it relies on the implicit default tag.
    """

    registry: str
    """Registry hostname (with optional port), or "" for the default registry."""

    repository: str
    """Repository path without registry, tag or digest."""

    tag: str
    """Image tag, or "" if none was given."""

    digest: Optional[str] = None
    """Content digest (e.g. 'sha256:abc...') when the reference is pinned."""

    @classmethod
    def parse(cls, image: str) -> "ImageReference":
        """
        Split a raw image string into registry, repository, tag and digest.

        Parsing is lenient and never raises; use ``validate_reference`` to
        check that the result is addressable.

        Examples:
            nginx                          -> registry="", repository="nginx", tag=""
            library/nginx:1.25             -> registry="", repository="library/nginx", tag="1.25"
            localhost:5000/app:dev         -> registry="localhost:5000", repository="app", tag="dev"
            gcr.io/project/app@sha256:...  -> registry="gcr.io", repository="project/app", digest=...
        """
        digest = None
        if "@" in image:
            image, digest = image.rsplit("@", 1)

        registry = ""
        remainder = image
        first, sep, rest = image.partition("/")
        if sep and _looks_like_registry(first):
            registry = first
            remainder = rest

        repository, tag = remainder, ""
        if ":" in remainder:
            repository, tag = remainder.rsplit(":", 1)

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @property
    def effective_registry(self) -> str:
        """Registry host, falling back to the default registry."""
        return self.registry or DEFAULT_REGISTRY

    @property
    def name(self) -> str:
        """Registry and repository without tag or digest."""
        if self.registry:
            return f"{self.registry}/{self.repository}"
        return self.repository

    def pinned(self, digest: str) -> str:
        """Return ``name@digest``, addressing exactly one piece of content."""
        return f"{self.name}@{digest}"


def translate_image(source: str, backup_registry: str) -> str:
    """
    Render the backup registry address for a source image.

    The repository path is flattened (``/`` -> ``_``) and joined with the
    original tag by ``_`` to form the destination tag. Different sources can
    collide (``foo/bar:v1`` and ``foo_bar:v1`` both map to ``foo_bar_v1``).
    Digest-pinned sources are not supported: ``nginx@sha256:<hex>`` becomes
    ``<backup>:nginx@sha256_<hex>``, which fails reference validation before
    anything is mirrored.

    Args:
        source: Source image reference as written in the pod spec
        backup_registry: Backup registry address (e.g. "quay.io/my_backup")

    Returns:
        Destination image reference in the backup registry

    Examples:
        >>> translate_image("docker.io/service/platform/nginx:v2", "backup.local/ns")
        'backup.local/ns:service_platform_nginx_v2'
        >>> translate_image("nginx", "backup.local/ns")
        'backup.local/ns:nginx_latest'
    """
    first, sep, rest = source.partition("/")
    if sep and _looks_like_registry(first):
        path = rest
    else:
        path = source

    repository, _, tag = path.rpartition(":")
    if not repository:
        repository, tag = path, DEFAULT_TAG

    flattened = repository.replace("/", "_")
    return f"{backup_registry}:{flattened}_{tag}"


def references_registry(image: str, registry: str) -> bool:
    """Check whether an image address already points at the given registry."""
    return registry in image


def validate_reference(image: str) -> ImageReference:
    """
    Parse an image address and check it is addressable in a registry.

    Args:
        image: Image reference to validate

    Returns:
        Parsed ImageReference

    Raises:
        InvalidReference: If any component violates the reference grammar
    """
    if not image or not image.strip():
        raise InvalidReference(image, "empty reference")
    if image != image.strip():
        raise InvalidReference(image, "surrounding whitespace")

    ref = ImageReference.parse(image)

    if ref.registry and not _HOST_RE.match(ref.registry):
        raise InvalidReference(image, f"bad registry {ref.registry!r}")
    if not ref.repository or not _REPOSITORY_RE.match(ref.repository):
        raise InvalidReference(image, f"bad repository {ref.repository!r}")
    if ref.tag and not _TAG_RE.match(ref.tag):
        raise InvalidReference(image, f"bad tag {ref.tag!r}")
    if ref.digest is not None and not _DIGEST_RE.match(ref.digest):
        raise InvalidReference(image, f"bad digest {ref.digest!r}")

    return ref
