"""
Storage back-ends ("disks") for source images and derived files.
"""

from .blob_store import BlobStore
from .local_store import LocalConfig, LocalBlobStore
from .s3_config import S3Config
from .s3_store import S3BlobStore
from .registry import DiskRegistry

__all__ = [
    "BlobStore",
    "LocalConfig",
    "LocalBlobStore",
    "S3Config",
    "S3BlobStore",
    "DiskRegistry",
]
