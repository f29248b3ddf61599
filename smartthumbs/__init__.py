"""
Smart thumbnail cache.

Resolves (source image, preset, variant) to the URL of a cropped, resized
and re-encoded derived file, generating it on first use:
    1. Derive a deterministic sharded path for the derived file
    2. Serve it from the URL/existence cache or the destination disk
    3. Otherwise crop (top-biased), resize, encode and write it

Supports both S3 and local filesystem storage.
"""

__version__ = "1.1.0"

from .errors import ThumbnailError
from .crop_geometry import CropRect, calculate_crop
from .presets import EffectiveConfig, Preset, PresetRegistry
from .settings import Settings, ThumbnailConfig, load_config
from .storage import DiskRegistry, LocalBlobStore, LocalConfig, S3BlobStore, S3Config
from .kv_cache import KeyValueCache, MemoryCache
from .thumbnail_generator import ThumbnailGenerator
from .service import ResolveMode, SourceAsset, ThumbnailService
from .jobs import GenerateThumbnailJob, JobResult
from .maintenance import ThumbnailMaintenance
from .pregenerator import Pregenerator
from .reporter import Reporter

__all__ = [
    "ThumbnailError",
    "CropRect",
    "calculate_crop",
    "EffectiveConfig",
    "Preset",
    "PresetRegistry",
    "Settings",
    "ThumbnailConfig",
    "load_config",
    "DiskRegistry",
    "LocalBlobStore",
    "LocalConfig",
    "S3BlobStore",
    "S3Config",
    "KeyValueCache",
    "MemoryCache",
    "ThumbnailGenerator",
    "ResolveMode",
    "SourceAsset",
    "ThumbnailService",
    "GenerateThumbnailJob",
    "JobResult",
    "ThumbnailMaintenance",
    "Pregenerator",
    "Reporter",
]
