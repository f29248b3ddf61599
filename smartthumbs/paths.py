"""
Paths - Deterministic identity, storage path and cache keys for derived files.
"""

import os
import re
import zlib
from dataclasses import dataclass
from typing import Optional

from .presets import OUTPUT_FORMATS, EffectiveConfig
from .sharding import Clock, shard_for

MAX_FILENAME_LENGTH = 100

URL_KEY_PREFIX = 'thumb_url:'
EXISTS_KEY_PREFIX = 'thumb_exists:'
LEASE_KEY_PREFIX = 'thumb_lease:'
FALLBACK_KEY_PREFIX = 'thumb_fallback:'
URL_EPOCH_KEY_PREFIX = 'thumb_epoch:'

DERIVED_EXTENSIONS = OUTPUT_FORMATS

_UNSAFE_CHARS_RE = re.compile(r'[^A-Za-z0-9_\-]')
_DERIVED_FILE_RE = re.compile(
    r'^.*_\d+_\d+(_\w+)?\.(' + '|'.join(DERIVED_EXTENSIONS) + r')$',
    re.IGNORECASE
)


def sanitize_filename(filename: str) -> str:
    """Keep only [A-Za-z0-9_-] and cap the result at 100 characters."""
    return _UNSAFE_CHARS_RE.sub('', filename)[:MAX_FILENAME_LENGTH]


def source_stem(source_path: str) -> str:
    """Filename of a source path without directory and last extension."""
    return os.path.splitext(os.path.basename(source_path))[0]


@dataclass(frozen=True)
class DerivedAssetIdentity:
    """
    Everything that determines where a derived file lives.

    Attributes:
        filename: Sanitized source filename stem
        width: Target width
        height: Target height
        format: Output extension
        variant: Variant name, None for the main size
    """
    filename: str
    width: int
    height: int
    format: str
    variant: Optional[str] = None

    @property
    def suffix(self) -> str:
        """Dimension suffix such as '130_130' or '80_80_mobile'."""
        suffix = f"{self.width}_{self.height}"
        if self.variant:
            suffix += f"_{self.variant}"
        return suffix

    @property
    def basename(self) -> str:
        return f"{self.filename}_{self.suffix}.{self.format}"


def derive_identity(
    source_path: str,
    config: EffectiveConfig,
    variant: Optional[str] = None
) -> DerivedAssetIdentity:
    """Build the identity of a derived file from its source and configuration."""
    return DerivedAssetIdentity(
        filename=sanitize_filename(source_stem(source_path)),
        width=config.target_width,
        height=config.target_height,
        format=config.format,
        variant=variant,
    )


def derive_path(
    source_path: str,
    config: EffectiveConfig,
    variant: Optional[str] = None,
    clock: Optional[Clock] = None
) -> str:
    """
    Compute the storage path of a derived file.

    The result is destination path + shard + '<name>_<w>_<h>[_variant].<format>'.
    Identical arguments always give the same path; only the date_based
    strategy reads the clock.

    Args:
        source_path: Path of the source image on its disk
        config: Effective preset configuration
        variant: Optional variant name
        clock: Optional clock for date_based sharding

    Returns:
        Path relative to the destination disk root
    """
    identity = derive_identity(source_path, config, variant)
    shard = shard_for(identity.filename, config.sharding_strategy, clock)
    return f"{config.destination_path}{shard}{identity.basename}"


def flat_path(config: EffectiveConfig, derived_path: str) -> str:
    """Same file placed directly under the destination path, without shard directories."""
    return f"{config.destination_path}{os.path.basename(derived_path)}"


def _crc32(value: str) -> str:
    return str(zlib.crc32(value.encode('utf-8')))


def url_cache_key(preset: str, source_path: str, variant: Optional[str] = None) -> str:
    return URL_KEY_PREFIX + _crc32(f"{preset}:{source_path}:{variant or 'main'}")


def fallback_cache_key(preset: str, source_path: str, variant: Optional[str] = None) -> str:
    return FALLBACK_KEY_PREFIX + _crc32(f"{preset}:{source_path}:{variant or 'main'}")


def url_epoch_key(preset: str) -> str:
    return URL_EPOCH_KEY_PREFIX + preset


def exists_cache_key(disk: str, path: str) -> str:
    return EXISTS_KEY_PREFIX + _crc32(f"{disk}:{path}")


def lease_key(disk: str, path: str) -> str:
    return LEASE_KEY_PREFIX + _crc32(f"{disk}:{path}")


def is_derived_file(path: str) -> bool:
    """True if the basename looks like '<name>_<int>_<int>[_variant].<ext>'."""
    return bool(_DERIVED_FILE_RE.match(os.path.basename(path)))
