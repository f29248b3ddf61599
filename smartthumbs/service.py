"""
ThumbnailService - Get-or-generate orchestration for derived thumbnails.

resolve() checks the URL cache, then the existence cache and the destination
disk, and only generates (decode, crop, resize, encode, write) when the
derived file is truly missing. Failures either propagate (strict mode) or are
turned into a fallback URL (silent mode).
"""

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Union

from .asset_cache import AssetCache
from .batch_stats import BatchStats
from .errors import (
    DirectoryCreateFailed,
    LeaseTimeout,
    SourceEmpty,
    SourceNotFound,
    SourceTooLarge,
    ThumbnailError,
    UnsupportedExtension,
)
from .fallback import FallbackChain, FallbackRequest
from .kv_cache import KeyValueCache, MemoryCache
from .lease import GenerationLease
from .paths import derive_identity, derive_path, exists_cache_key, fallback_cache_key, flat_path, lease_key
from .presets import EffectiveConfig
from .settings import ThumbnailConfig
from .sharding import Clock, shard_for
from .storage.blob_store import BlobStore
from .storage.registry import DiskRegistry
from .thumbnail_generator import ThumbnailGenerator

DEFAULT_SOURCE_DISK = 'public'


class ResolveMode(str, Enum):
    """How resolve() reports failures."""
    STRICT = 'strict'
    SILENT = 'silent'


@dataclass(frozen=True)
class SourceAsset:
    """
    An immutable source image.

    Attributes:
        path: Path of the image on its disk
        disk: Name of the disk holding it
    """
    path: str
    disk: str = DEFAULT_SOURCE_DISK


SourceLike = Union[SourceAsset, str]


def _as_source(source: SourceLike) -> SourceAsset:
    if isinstance(source, SourceAsset):
        return source
    return SourceAsset(str(source))


class ThumbnailService:
    """
    Resolves (source, preset, variant) triples to thumbnail URLs.

    The service holds no per-request state; the resolve mode is passed with
    each call, so one instance can serve many threads.
    """

    def __init__(
        self,
        config: ThumbnailConfig,
        cache: Optional[KeyValueCache] = None,
        disks: Optional[DiskRegistry] = None,
        generator: Optional[ThumbnailGenerator] = None,
        lease: Optional[GenerationLease] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the service.

        Args:
            config: Settings, presets and disk definitions
            cache: Shared key-value cache (in-process MemoryCache by default)
            disks: Disk registry (built from config.disks by default)
            generator: Image generator (built from settings by default)
            lease: Generation lease (built on the cache by default)
            clock: Clock used by the date_based sharding strategy
            logger: Optional logger instance
        """
        self.config = config
        self.settings = config.settings
        self.presets = config.presets
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

        self.cache = cache if cache is not None else MemoryCache()
        self.disks = disks or DiskRegistry(config.disks, logger=self.logger)
        self.assets = AssetCache(
            self.cache,
            url_ttl=self.settings.cache_ttl,
            exists_ttl=self.settings.exists_ttl,
            fallback_ttl=self.settings.fallback_ttl,
            cache_urls=self.settings.cache_urls,
            logger=self.logger,
        )
        self.generator = generator or ThumbnailGenerator(
            vertical_bias=self.settings.vertical_bias,
            webp_lossless=self.settings.webp_lossless,
            png_compression=self.settings.png_compression,
            max_analysis_size=self.settings.max_smart_crop_analysis_size,
            logger=self.logger,
        )
        self.lease = lease or GenerationLease(
            self.cache,
            ttl=self.settings.lease_ttl,
            wait=self.settings.lease_wait,
            poll_interval=self.settings.lease_poll_interval,
            logger=self.logger,
        )
        self.fallbacks = FallbackChain.from_settings(self.settings, self.disks, self.logger)

    # ------------------------------------------------------------------
    # Configuration helpers
    # ------------------------------------------------------------------

    def effective_config(self, preset: str, variant: Optional[str] = None) -> EffectiveConfig:
        """Merge a preset with one of its variants (ConfigNotFound / InvalidDimensions)."""
        return self.presets.get(preset).effective_config(
            variant,
            default_format=self.settings.default_format,
            default_quality=self.settings.default_quality,
            default_smart_crop=self.settings.enable_smart_crop,
            default_strategy=self.settings.default_subdirectory_strategy,
        )

    def derived_path(self, source_path: str, config: EffectiveConfig, variant: Optional[str] = None) -> str:
        return derive_path(source_path, config, variant, self.clock)

    def get_variants(self, preset: str) -> dict:
        if preset not in self.presets:
            return {}
        return self.presets.get(preset).variants

    def _mode_for(self, preset: str, mode: Optional[ResolveMode]) -> ResolveMode:
        if mode is not None:
            return ResolveMode(mode)
        if preset in self.presets:
            preset_silent = self.presets.get(preset).data.get('silent_mode')
            if preset_silent is not None:
                return ResolveMode.SILENT if preset_silent else ResolveMode.STRICT
        return ResolveMode.SILENT if self.settings.silent_mode_default else ResolveMode.STRICT

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        source: SourceLike,
        preset: str,
        variant: Optional[str] = None,
        mode: Optional[ResolveMode] = None
    ) -> str:
        """
        Return the URL of a thumbnail, generating it if needed.

        Args:
            source: Source image (SourceAsset, or a path on the default disk)
            preset: Preset name
            variant: Optional variant name
            mode: STRICT raises, SILENT returns a fallback URL; None uses the
                preset's silent_mode or the global default

        Returns:
            URL of the derived file, or a fallback URL in silent mode

        Raises:
            ThumbnailError: In strict mode, with the failure's kind
        """
        source = _as_source(source)
        mode = self._mode_for(preset, mode)
        start = time.monotonic()

        try:
            url, outcome = self._resolve(source, preset, variant, mode)
        except Exception as e:
            error = ThumbnailError.wrap(e)
            if mode is ResolveMode.STRICT:
                if error is e:
                    raise
                raise error from e
            return self._fallback(source, preset, variant, error)

        self._log_time(start, outcome, preset, variant)
        return url

    def url(self, source: SourceLike, preset: str, variant: Optional[str] = None) -> str:
        """Resolve with the configured default mode."""
        return self.resolve(source, preset, variant)

    def url_safe(self, source: SourceLike, preset: str, variant: Optional[str] = None) -> str:
        """Resolve in silent mode; never raises."""
        return self.resolve(source, preset, variant, mode=ResolveMode.SILENT)

    def _resolve(self, source: SourceAsset, preset: str, variant: Optional[str], mode: ResolveMode):
        config = self.effective_config(preset, variant)
        key = self.assets.url_key(preset, source.path, variant)
        fallback_key = fallback_cache_key(preset, source.path, variant)

        cached = self.assets.get_url(key)
        if cached:
            self.logger.debug(f"URL cache hit: {key}")
            return cached, 'cache_hit'

        if mode is ResolveMode.SILENT:
            fallback = self.assets.get_fallback_url(fallback_key)
            if fallback:
                self.logger.debug(f"Fallback cache hit: {fallback_key}")
                return fallback, 'fallback_cached'

        path = self.derived_path(source.path, config, variant)
        disk = self.disks.get(config.destination_disk)

        existing = self._find_existing(disk, config, path)
        if existing:
            url = disk.url(existing)
            self.assets.put_url(key, url)
            self.assets.forget_url(fallback_key)
            return url, 'file_exists'

        path = self._generate_guarded(source, config, path, variant, disk)
        url = disk.url(path)
        self.assets.put_exists(disk.name, path, True)
        self.assets.put_url(key, url)
        self.assets.forget_url(fallback_key)
        return url, 'generated'

    def _find_existing(self, disk: BlobStore, config: EffectiveConfig, path: str) -> Optional[str]:
        """The sharded path if it exists, else the flat fallback path if that exists."""
        if self.assets.exists(disk, path):
            return path
        flat = flat_path(config, path)
        if flat != path and self.assets.exists(disk, flat):
            return flat
        return None

    def _generate_guarded(
        self,
        source: SourceAsset,
        config: EffectiveConfig,
        path: str,
        variant: Optional[str],
        disk: BlobStore
    ) -> str:
        """Generate under the lease so only one worker writes a given path."""
        key = lease_key(disk.name, path)
        token = self.lease.acquire(key)

        if token is None:
            self.logger.debug(f"Waiting for concurrent generation of {disk.name}:{path}")
            if self.lease.wait_for(key, lambda: disk.exists(path)):
                return path
            token = self.lease.acquire(key)
            if token is None:
                raise LeaseTimeout(
                    f"Generation of {disk.name}:{path} still in progress after {self.lease.wait}s",
                    path=path,
                )

        try:
            return self.generate(source.path, source.disk, config.preset, config, path, variant)
        finally:
            self.lease.release(key, token)

    def _fallback(self, source: SourceAsset, preset: str, variant: Optional[str], error: ThumbnailError) -> str:
        if self.settings.log_errors:
            self.logger.warning(
                f"Thumbnail failed, using fallback: [{error.kind}] {error} "
                f"(preset={preset}, source={source.disk}:{source.path}, variant={variant or 'main'})"
            )

        width = height = None
        try:
            config = self.effective_config(preset, variant)
            width, height = config.target_width, config.target_height
        except ThumbnailError:
            pass

        url = self.fallbacks.resolve(FallbackRequest(source.path, source.disk, width, height))
        self.assets.put_fallback_url(fallback_cache_key(preset, source.path, variant), url)
        return url

    def _log_time(self, start: float, outcome: str, preset: str, variant: Optional[str]) -> None:
        if self.settings.log_generation_time:
            elapsed_ms = (time.monotonic() - start) * 1000
            self.logger.info(
                f"Thumbnail {outcome}: preset={preset} variant={variant or 'main'} ({elapsed_ms:.2f}ms)"
            )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(
        self,
        source_path: str,
        source_disk: str,
        preset_name: str,
        effective_config: EffectiveConfig,
        derived_path: str,
        variant: Optional[str] = None
    ) -> str:
        """
        Generate one derived file and write it to the destination disk.

        Used both by resolve() and by background jobs.

        Args:
            source_path: Source image path
            source_disk: Source disk name
            preset_name: Preset name (for logging)
            effective_config: Configuration to generate with
            derived_path: Path to write to
            variant: Optional variant name (for logging)

        Returns:
            Path actually written; the flat fallback path if the shard
            directories could not be created

        Raises:
            ThumbnailError: On any failure
        """
        start = time.monotonic()
        try:
            data = self._read_source(source_path, source_disk)
            thumb_data, content_type = self.generator.generate(data, effective_config)

            disk = self.disks.get(effective_config.destination_disk)
            path = self._prepare_destination(disk, effective_config, derived_path)
            disk.put(path, thumb_data, content_type)
            self._publish(disk, path)
        except Exception as e:
            if self.settings.log_errors:
                self.logger.error(
                    f"Thumbnail generation failed: {e} "
                    f"(preset={preset_name}, variant={variant or 'main'}, "
                    f"source={source_disk}:{source_path}, destination={derived_path})"
                )
            if isinstance(e, ThumbnailError):
                raise
            raise ThumbnailError.wrap(e) from e

        elapsed_ms = (time.monotonic() - start) * 1000
        self.logger.info(
            f"Generated: {disk.name}:{path} ({len(thumb_data)} bytes, {elapsed_ms:.0f}ms)"
        )
        return path

    def _read_source(self, source_path: str, source_disk: str) -> bytes:
        """Validate and read a source image."""
        if self.settings.validate_image_content:
            extension = os.path.splitext(source_path)[1].lower().lstrip('.')
            if extension not in self.settings.allowed_extensions:
                raise UnsupportedExtension(extension or '(none)')

        disk = self.disks.get(source_disk)
        if not disk.exists(source_path):
            raise SourceNotFound(source_path)

        limit = self.settings.max_source_bytes
        if limit:
            size = disk.size(source_path)
            if size > limit:
                raise SourceTooLarge(source_path, size, limit)

        data = disk.get(source_path)
        if not data:
            raise SourceEmpty(source_path)
        return data

    def _prepare_destination(self, disk: BlobStore, config: EffectiveConfig, derived_path: str) -> str:
        """Create the directory for derived_path, or fall back to the flat layout."""
        try:
            self.ensure_directory(disk, os.path.dirname(derived_path))
            return derived_path
        except DirectoryCreateFailed as e:
            fallback_path = flat_path(config, derived_path)
            self.logger.warning(
                f"Directory creation failed, saving without subdirectory: "
                f"{derived_path} -> {fallback_path} ({e})"
            )
            self.ensure_directory(disk, os.path.dirname(fallback_path))
            return fallback_path

    def ensure_directory(self, disk: BlobStore, directory: str) -> None:
        """
        Create every missing segment of directory on disk.

        Raises:
            DirectoryCreateFailed: If any segment cannot be created
        """
        parts = [p for p in directory.split('/') if p]
        if not parts or not disk.has_directories:
            return

        current = ''
        try:
            if disk.exists('/'.join(parts)):
                return
            for part in parts:
                current = f"{current}/{part}" if current else part
                if not disk.exists(current):
                    disk.make_directory(current, recursive=True)
                    if self.settings.log_directory_creation:
                        self.logger.info(f"Created directory: {current} on disk: {disk.name}")
        except Exception as e:
            if self.settings.log_errors:
                self.logger.warning(f"Could not create directory: {current or directory} on disk: {disk.name}: {e}")
            raise DirectoryCreateFailed(f"Cannot create directory structure: {e}", directory=directory) from e

    def _publish(self, disk: BlobStore, path: str) -> None:
        if not disk.supports_visibility:
            return
        try:
            disk.set_visibility(path, True)
        except Exception as e:
            if self.settings.log_errors:
                self.logger.warning(f"Could not set thumbnail visibility to public: {disk.name}:{path}: {e}")

    # ------------------------------------------------------------------
    # Inspection and cache management
    # ------------------------------------------------------------------

    def exists(self, source: SourceLike, preset: str, variant: Optional[str] = None) -> bool:
        """True if the derived file exists. Never raises."""
        source = _as_source(source)
        try:
            config = self.effective_config(preset, variant)
            path = self.derived_path(source.path, config, variant)
            return self._find_existing(self.disks.get(config.destination_disk), config, path) is not None
        except Exception:
            return False

    def is_up_to_date(self, source: SourceLike, preset: str, variant: Optional[str] = None) -> bool:
        """True if the derived file exists and is not older than its source."""
        source = _as_source(source)
        try:
            config = self.effective_config(preset, variant)
            disk = self.disks.get(config.destination_disk)
            path = self._find_existing(disk, config, self.derived_path(source.path, config, variant))
            if path is None:
                return False
            source_time = self.disks.get(source.disk).last_modified(source.path)
            return disk.last_modified(path) >= source_time
        except Exception:
            return False

    def regenerate_if_needed(self, source: SourceLike, preset: str, variant: Optional[str] = None) -> str:
        """Return the current URL, regenerating first when the source is newer."""
        source = _as_source(source)
        if self.is_up_to_date(source, preset, variant):
            config = self.effective_config(preset, variant)
            disk = self.disks.get(config.destination_disk)
            path = self._find_existing(disk, config, self.derived_path(source.path, config, variant))
            return disk.url(path)

        self.logger.info(f"Regenerating stale thumbnail: preset={preset} source={source.path}")
        self.clear_cache(source, preset)
        try:
            config = self.effective_config(preset, variant)
            path = self.derived_path(source.path, config, variant)
            disk = self.disks.get(config.destination_disk)
            for stale in {path, flat_path(config, path)}:
                if disk.exists(stale):
                    disk.delete(stale)
                    self.assets.forget_exists(disk.name, stale)
        except ThumbnailError:
            pass
        return self.resolve(source, preset, variant)

    def clear_cache(self, source: SourceLike, preset: str) -> None:
        """Forget URL and existence entries for the main size and every variant."""
        source = _as_source(source)
        variants: List[Optional[str]] = [None] + list(self.get_variants(preset).keys())
        for variant in variants:
            self.assets.forget_url(self.assets.url_key(preset, source.path, variant))
            self.assets.forget_url(fallback_cache_key(preset, source.path, variant))
            try:
                config = self.effective_config(preset, variant)
                self.assets.forget_exists(
                    config.destination_disk,
                    self.derived_path(source.path, config, variant),
                )
            except ThumbnailError as e:
                self.logger.error(f"Error during cache clear for {preset}/{variant or 'main'}: {e}")

    def warm_up_cache(
        self,
        sources: Iterable[SourceLike],
        preset: str,
        variants: Iterable[str] = ()
    ) -> BatchStats:
        """
        Cache URLs of derived files that already exist. Nothing is generated.

        Returns:
            BatchStats where processed counts warmed entries
        """
        stats = BatchStats()
        labels: List[Optional[str]] = [None] + list(variants)

        for source in sources:
            source = _as_source(source)
            for variant in labels:
                stats.total += 1
                label = variant or 'main'
                key = self.assets.url_key(preset, source.path, variant)
                try:
                    if self.assets.get_url(key):
                        stats.already_cached += 1
                        continue
                    config = self.effective_config(preset, variant)
                    path = self.derived_path(source.path, config, variant)
                    disk = self.disks.get(config.destination_disk)
                    existing = self._find_existing(disk, config, path)
                    if existing:
                        url = disk.url(existing)
                        self.assets.put_url(key, url)
                        stats.processed += 1
                        stats.details.setdefault(source.path, {})[label] = url
                except Exception as e:
                    stats.record_error(source.path, label, e)

        return stats

    def batch_generate(
        self,
        sources: Iterable[SourceLike],
        preset: str,
        variants: Iterable[str] = ()
    ) -> BatchStats:
        """
        Resolve every source (and variant) strictly, collecting results.

        Returns:
            BatchStats where processed counts resolved entries
        """
        stats = BatchStats()
        labels: List[Optional[str]] = [None] + list(variants)

        for source in sources:
            source = _as_source(source)
            for variant in labels:
                stats.total += 1
                label = variant or 'main'
                try:
                    url = self.resolve(source, preset, variant, mode=ResolveMode.STRICT)
                    stats.processed += 1
                    stats.details.setdefault(source.path, {})[label] = url
                except ThumbnailError as e:
                    stats.record_error(source.path, label, e)

        return stats

    def debug_info(self, source: SourceLike, preset: str, variant: Optional[str] = None) -> dict:
        """Describe how a thumbnail would be resolved, without generating it."""
        source = _as_source(source)
        try:
            config = self.effective_config(preset, variant)
            path = self.derived_path(source.path, config, variant)
            disk = self.disks.get(config.destination_disk)
            url_key = self.assets.url_key(preset, source.path, variant)
            source_store = self.disks.get(source.disk)

            info = {
                'preset': preset,
                'variant': variant,
                'source_path': source.path,
                'source_disk': source.disk,
                'source_exists': source_store.exists(source.path),
                'thumbnail_path': path,
                'destination_disk': config.destination_disk,
                'thumbnail_exists': disk.exists(path),
                'subdirectory_strategy': config.sharding_strategy,
                'generated_subdirectory': shard_for(
                    derive_identity(source.path, config, variant).filename,
                    config.sharding_strategy,
                    self.clock,
                ),
                'dimensions': config.dimensions,
                'format': config.format,
                'quality': config.quality,
                'smart_crop_enabled': config.smart_crop_enabled,
                'url_cache_key': url_key,
                'exists_cache_key': exists_cache_key(disk.name, path),
                'url_cached': self.assets.get_url(url_key) is not None,
                'resolve_mode': self._mode_for(preset, None).value,
            }

            if info['thumbnail_exists']:
                try:
                    info['thumbnail_url'] = disk.url(path)
                    info['thumbnail_size'] = disk.size(path)
                    info['thumbnail_last_modified'] = datetime.fromtimestamp(
                        disk.last_modified(path)
                    ).strftime('%Y-%m-%d %H:%M:%S')
                except Exception as e:
                    info['thumbnail_info_error'] = str(e)

            return info
        except Exception as e:
            return {
                'error': str(e),
                'preset': preset,
                'source_path': source.path,
            }
