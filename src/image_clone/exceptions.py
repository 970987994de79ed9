"""
Error taxonomy for the image clone controller.

Every error carries a ``retryable`` flag. Parsing and decoding errors can never
succeed as-is; registry and object store I/O errors are worth another attempt.
"""

from typing import Optional


class ImageCloneError(Exception):
    """Base class for all controller errors."""

    retryable = False


class MalformedKey(ImageCloneError):
    """A work-item key could not be decoded into (kind, name)."""


class UnsupportedKind(ImageCloneError):
    """The workload kind is not one the controller knows how to rewrite."""


class MirrorError(ImageCloneError):
    """Base class for failures while mirroring an image."""

    def __init__(self, message: str, image: str, error_type: str = "unknown"):
        super().__init__(message)
        self.image = image
        self.error_type = error_type


class InvalidReference(MirrorError):
    """An image address is not a valid registry reference."""

    def __init__(self, image: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"invalid image reference {image!r}{detail}", image, "invalid")


class SourceFetchError(MirrorError):
    """The source image could not be fetched from its registry."""

    retryable = True


class DestinationWriteError(MirrorError):
    """The image could not be written to the backup registry."""

    retryable = True


class ObjectFetchError(ImageCloneError):
    """The workload object could not be read from the object store."""


class ObjectNotFound(ObjectFetchError):
    """The workload object no longer exists."""


class ObjectUpdateError(ImageCloneError):
    """The workload object could not be written back."""

    retryable = True


class ObjectConflict(ObjectUpdateError):
    """The write was rejected because the object changed since it was read."""


class Cancelled(ImageCloneError):
    """The caller cancelled the operation or its deadline passed."""

    def __init__(self, message: str = "operation cancelled", cause: Optional[str] = None):
        super().__init__(message)
        self.cause = cause
