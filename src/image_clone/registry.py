"""
Registry transport.

The reconciler only needs three capabilities from a registry: resolve a
reference to a content handle, write a handle under a new reference, and report
a handle's digest. ``CraneRegistry`` provides them by driving the ``crane``
CLI, with credentials passed through an isolated docker config directory so
that nothing from the host's docker login leaks into a call.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from image_clone.context import ExecutionContext
from image_clone.error_patterns import classify_error_type
from image_clone.image_utils import DEFAULT_REGISTRY, ImageReference

logger = logging.getLogger(__name__)

DOCKER_HUB_AUTH_KEY = "https://index.docker.io/v1/"
"""Key docker config files use for Docker Hub credentials."""

DEFAULT_POLL_INTERVAL = 0.2
"""Seconds between cancellation checks while a registry command runs."""


@dataclass(frozen=True)
class Credentials:
    """Registry credentials. Empty username or password means anonymous."""

    username: str = ""
    password: str = ""

    @classmethod
    def anonymous(cls) -> Credentials:
        return cls()

    @property
    def is_anonymous(self) -> bool:
        return not self.username or not self.password

    def __repr__(self) -> str:
        if self.is_anonymous:
            return "Credentials(anonymous)"
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class ImageHandle:
    """Content fetched from a registry: where it came from and its digest."""

    reference: str
    digest: str


class RegistryCommandError(Exception):
    """A registry operation failed.

    Attributes:
        error_type: Classification of the failure (auth, not_found, ...).
    """

    def __init__(self, message: str, error_type: str = "unknown"):
        super().__init__(message)
        self.error_type = error_type


@runtime_checkable
class RegistryClient(Protocol):
    """Capabilities the mirror executor needs from a registry."""

    def fetch(self, reference: str, credentials: Credentials, ctx: ExecutionContext) -> ImageHandle:
        """Resolve a reference to a content handle.

        Raises:
            RegistryCommandError: On transport errors or if the image does not exist.
            Cancelled: If the context is cancelled while waiting.
        """
        ...

    def write(
        self,
        reference: str,
        handle: ImageHandle,
        credentials: Credentials,
        ctx: ExecutionContext,
    ) -> None:
        """Make ``reference`` hold the content behind ``handle``."""
        ...

    def digest(self, handle: ImageHandle) -> str:
        """Content digest of a handle."""
        ...


class CraneRegistry:
    """RegistryClient backed by the ``crane`` CLI."""

    def __init__(self, binary: str = "crane", poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.binary = binary
        self.poll_interval = poll_interval

    def ensure_available(self) -> None:
        """
        Check that the crane binary is on PATH.

        Raises:
            RuntimeError: If crane is not installed.
        """
        if shutil.which(self.binary) is None:
            raise RuntimeError(
                f"{self.binary} is not installed. "
                "Install from https://github.com/google/go-containerregistry/tree/main/cmd/crane"
            )

    def fetch(self, reference: str, credentials: Credentials, ctx: ExecutionContext) -> ImageHandle:
        with self._docker_config(reference, credentials) as env:
            stdout = self._run(["digest", reference], env, ctx)
        digest = stdout.strip()
        if not digest:
            raise RegistryCommandError(f"{self.binary} digest returned nothing for {reference}")
        return ImageHandle(reference=reference, digest=digest)

    def write(
        self,
        reference: str,
        handle: ImageHandle,
        credentials: Credentials,
        ctx: ExecutionContext,
    ) -> None:
        # Copy by digest so the destination gets exactly the content that was fetched
        source = ImageReference.parse(handle.reference).pinned(handle.digest)
        with self._docker_config(reference, credentials) as env:
            self._run(["copy", source, reference], env, ctx)

    def digest(self, handle: ImageHandle) -> str:
        return handle.digest

    @contextmanager
    def _docker_config(self, reference: str, credentials: Credentials) -> Iterator[dict[str, str]]:
        """
        Yield an environment whose DOCKER_CONFIG holds only the given credentials.

        Anonymous credentials yield an empty config, so crane falls back to
        anonymous access for every registry.
        """
        with tempfile.TemporaryDirectory(prefix="image-clone-") as config_dir:
            auths = {}
            if not credentials.is_anonymous:
                registry = ImageReference.parse(reference).effective_registry
                key = DOCKER_HUB_AUTH_KEY if registry == DEFAULT_REGISTRY else registry
                token = base64.b64encode(
                    f"{credentials.username}:{credentials.password}".encode()
                ).decode()
                auths[key] = {"auth": token}

            config_path = Path(config_dir) / "config.json"
            config_path.write_text(json.dumps({"auths": auths}), encoding="utf-8")
            os.chmod(config_path, 0o600)

            env = dict(os.environ)
            env["DOCKER_CONFIG"] = config_dir
            yield env

    def _run(self, args: list[str], env: dict[str, str], ctx: ExecutionContext) -> str:
        """
        Run a crane command, polling the context while it executes.

        Returns:
            Captured stdout

        Raises:
            RegistryCommandError: If crane is missing or exits non-zero
            Cancelled: If the context is cancelled; the process is killed first
        """
        ctx.check_cancelled()

        cmd = [self.binary, *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
            )
        except FileNotFoundError as e:
            raise RegistryCommandError(f"{self.binary} is not installed") from e

        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if ctx.is_cancelled:
                    proc.kill()
                    proc.communicate()
                    logger.debug(f"Killed {' '.join(cmd)} after cancellation")
                    ctx.check_cancelled()

        if proc.returncode != 0:
            stderr = (stderr or "").strip()
            error_type = classify_error_type(stderr)
            raise RegistryCommandError(
                f"{self.binary} {args[0]} failed ({error_type}): {stderr}", error_type
            )

        return stdout or ""
