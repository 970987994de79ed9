"""
Mirror executor.

Copies every source image of a mapping into the backup registry, skipping
pairs whose destination already holds the same digest. The first failing pair
aborts the batch: a workload is only committed once all of its images mirrored.
"""

import logging
from typing import Iterable

from image_clone.context import ExecutionContext
from image_clone.exceptions import DestinationWriteError, SourceFetchError
from image_clone.image_utils import validate_reference
from image_clone.registry import Credentials, RegistryClient, RegistryCommandError
from image_clone.workloads import MirrorMapping

logger = logging.getLogger(__name__)


class MirrorExecutor:
    """
    Ensures destination images exist in the backup registry.

    Source images are always read anonymously. The destination is checked and
    written with the backup registry credentials, or anonymously when none are
    configured.
    """

    def __init__(self, registry: RegistryClient, credentials: Credentials):
        self.registry = registry
        self.credentials = credentials

    def mirror(self, ctx: ExecutionContext, mappings: Iterable[MirrorMapping]) -> int:
        """
        Mirror every mapping, in order.

        Args:
            ctx: Cancellation context checked before every registry call
            mappings: Source/destination pairs from rewrite_images

        Returns:
            Number of images written (pairs already present are not counted)

        Raises:
            InvalidReference: If a source or destination does not parse
            SourceFetchError: If a source image cannot be fetched
            DestinationWriteError: If writing to the backup registry fails
            Cancelled: If the context is cancelled
        """
        written = 0
        for mapping in mappings:
            if self._mirror_one(ctx, mapping):
                written += 1
        return written

    def _mirror_one(self, ctx: ExecutionContext, mapping: MirrorMapping) -> bool:
        source, destination = mapping.source, mapping.destination
        validate_reference(source)
        validate_reference(destination)

        ctx.check_cancelled()
        try:
            src_handle = self.registry.fetch(source, Credentials.anonymous(), ctx)
        except RegistryCommandError as e:
            raise SourceFetchError(
                f"could not get image {source!r} from registry: {e}", source, e.error_type
            ) from e

        if self._already_mirrored(ctx, mapping, self.registry.digest(src_handle)):
            logger.info(f"Source image {source} is already in backup registry as {destination}")
            return False

        ctx.check_cancelled()
        logger.info(f"Pushing image {source} to {destination}")
        try:
            self.registry.write(destination, src_handle, self.credentials, ctx)
        except RegistryCommandError as e:
            raise DestinationWriteError(
                f"could not push image {destination!r} to registry: {e}", destination, e.error_type
            ) from e
        return True

    def _already_mirrored(self, ctx: ExecutionContext, mapping: MirrorMapping, src_digest: str) -> bool:
        """Check whether the destination already holds content with the source digest."""
        ctx.check_cancelled()
        try:
            dst_handle = self.registry.fetch(mapping.destination, self.credentials, ctx)
        except RegistryCommandError as e:
            # Absent or unreadable destination: fall through to a write
            logger.debug(f"Destination {mapping.destination} not available ({e.error_type})")
            return False
        return self.registry.digest(dst_handle) == src_digest
