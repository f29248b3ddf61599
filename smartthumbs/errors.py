"""
Errors - Failure taxonomy for thumbnail resolution and generation.
"""

from typing import Optional


class ThumbnailError(Exception):
    """
    Base class for every failure raised by smartthumbs.

    Attributes:
        kind: Stable machine-readable name of the failure
    """

    kind = 'Unknown'

    def __init__(self, message: str = '', **context):
        super().__init__(message)
        self.context = context

    @classmethod
    def wrap(cls, exc: BaseException) -> 'ThumbnailError':
        """Return exc unchanged if it already belongs to the taxonomy, else wrap it."""
        if isinstance(exc, ThumbnailError):
            return exc
        wrapped = UnknownError(f"{type(exc).__name__}: {exc}")
        wrapped.__cause__ = exc
        return wrapped


class ConfigNotFound(ThumbnailError):
    """Raised when a preset name is not configured."""
    kind = 'ConfigNotFound'

    def __init__(self, preset: str):
        super().__init__(f"Thumbnail configuration '{preset}' not found", preset=preset)
        self.preset = preset


class InvalidDimensions(ThumbnailError):
    """Raised for non-positive or unparsable target sizes."""
    kind = 'InvalidDimensions'


class SourceNotFound(ThumbnailError):
    kind = 'SourceNotFound'

    def __init__(self, path: str):
        super().__init__(f"Source image not found: {path}", path=path)
        self.path = path


class SourceEmpty(ThumbnailError):
    kind = 'SourceEmpty'

    def __init__(self, path: str):
        super().__init__(f"Source image is empty: {path}", path=path)
        self.path = path


class UnsupportedExtension(ThumbnailError):
    kind = 'UnsupportedExtension'

    def __init__(self, extension: str):
        super().__init__(f"File extension '{extension}' not allowed", extension=extension)
        self.extension = extension


class SourceTooLarge(ThumbnailError):
    kind = 'SourceTooLarge'

    def __init__(self, path: str, size: int, limit: int):
        super().__init__(
            f"Source image {path} is {size} bytes (limit {limit})",
            path=path, size=size, limit=limit,
        )


class DiskUnavailable(ThumbnailError):
    """Raised when a named disk is not configured or cannot be reached."""
    kind = 'DiskUnavailable'

    def __init__(self, disk: str, reason: Optional[str] = None):
        message = f"Disk '{disk}' is not available"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, disk=disk)
        self.disk = disk


class DirectoryCreateFailed(ThumbnailError):
    kind = 'DirectoryCreateFailed'


class EncodeFailed(ThumbnailError):
    kind = 'EncodeFailed'


class UnknownError(ThumbnailError):
    kind = 'Unknown'


class LeaseTimeout(ThumbnailError):
    """Raised when another worker holds the generation lease for too long."""
    kind = 'LeaseTimeout'


class GenerationTimeout(ThumbnailError):
    """Raised when a background generation attempt exceeds its timeout."""
    kind = 'Timeout'
