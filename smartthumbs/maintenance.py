"""
ThumbnailMaintenance - Purge, deduplication and usage statistics for derived files.
"""

import hashlib
import logging
from typing import Dict, List, Optional

from .distribution_stats import DistributionStats, SystemStats, format_bytes
from .errors import ThumbnailError
from .paths import is_derived_file, sanitize_filename, source_stem
from .presets import Preset
from .sharding import STRATEGIES, shard_for
from .storage.blob_store import BlobStore


class ThumbnailMaintenance:
    """
    Operator tasks over the derived files of every configured preset.

    Only files whose names look like derived files are ever touched, so a
    preset sharing its directory with other content is safe to purge.
    """

    def __init__(self, service, logger: Optional[logging.Logger] = None):
        """
        Initialize maintenance helper.

        Args:
            service: ThumbnailService whose presets, disks and cache are used
            logger: Optional logger instance
        """
        self.service = service
        self.settings = service.settings
        self.presets = service.presets
        self.disks = service.disks
        self.logger = logger or logging.getLogger(__name__)

    def _strategy(self, preset: Preset) -> str:
        return preset.strategy(self.settings.default_subdirectory_strategy)

    def _derived_files(self, disk: BlobStore, base_path: str) -> List[str]:
        return [f for f in disk.list_files(base_path, recursive=True) if is_derived_file(f)]

    # ------------------------------------------------------------------
    # Purge
    # ------------------------------------------------------------------

    def purge(self, preset_name: Optional[str] = None) -> int:
        """
        Delete the derived files of one preset (or of all presets).

        Args:
            preset_name: Preset to purge; None purges every preset

        Returns:
            Number of files deleted

        Raises:
            ConfigNotFound: If preset_name is not configured
            ThumbnailError: If the preset's disk cannot be purged
        """
        if preset_name is None:
            return self.purge_all()

        preset = self.presets.get(preset_name)
        try:
            return self._purge_preset(preset)
        except ThumbnailError:
            raise
        except Exception as e:
            raise ThumbnailError(f"Could not purge preset '{preset_name}': {e}", preset=preset_name) from e

    def _purge_preset(self, preset: Preset) -> int:
        disk = self.disks.get(preset.destination_disk)
        base_path = preset.destination_path

        count = 0
        try:
            for path in self._derived_files(disk, base_path):
                disk.delete(path)
                self.service.assets.forget_exists(disk.name, path)
                count += 1
        finally:
            self.service.assets.invalidate_urls(preset.name)

        if self.settings.auto_cleanup_empty_dirs:
            self.clean_empty_directories(disk, base_path, self._strategy(preset))

        self.logger.info(f"Purged {count} thumbnails for preset '{preset.name}' from {disk.name}:{base_path}")
        return count

    def purge_all(self) -> int:
        """Purge every preset, then flush the whole cache. Failing presets are logged and skipped."""
        total = 0
        for preset in self.presets:
            try:
                total += self._purge_preset(preset)
            except Exception as e:
                if self.settings.log_errors:
                    self.logger.warning(
                        f"Could not purge thumbnails from "
                        f"{preset.destination_disk}:{preset.destination_path}: {e}"
                    )

        try:
            self.service.cache.flush()
        except Exception as e:
            self.logger.warning(f"Could not flush cache after purge: {e}")
        return total

    def clean_empty_directories(self, disk: BlobStore, base_path: str, strategy: str = 'hash_prefix') -> int:
        """
        Remove directories left empty under base_path, deepest first.

        Returns:
            Number of directories removed
        """
        if strategy == 'none' or not disk.has_directories:
            return 0

        removed = 0
        try:
            directories = self.find_empty_directories(disk, base_path)
        except Exception as e:
            if self.settings.log_errors:
                self.logger.warning(f"Could not clean empty directories on {disk.name}:{base_path}: {e}")
            return 0

        for directory in directories:
            try:
                disk.delete_directory(directory)
                removed += 1
            except OSError as e:
                # A concurrent resolve may have written into it since the listing
                self.logger.info(f"Keeping directory {disk.name}:{directory}: {e}")
        return removed

    def find_empty_directories(self, disk: BlobStore, base_path: str) -> List[str]:
        """
        Directories under base_path with no files and no subdirectories once
        their own empty children are gone, deepest first.
        """
        directories = disk.list_directories(base_path, recursive=True)
        directories.sort(key=lambda d: d.count('/'), reverse=True)

        removable = set()
        empty = []
        for directory in directories:
            try:
                if disk.list_files(directory):
                    continue
                children = disk.list_directories(directory)
                if all(child in removable for child in children):
                    removable.add(directory)
                    empty.append(directory)
            except Exception as e:
                self.logger.debug(f"Skipping unreadable directory {disk.name}:{directory}: {e}")
        return empty

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    def find_duplicates(self, disk: BlobStore, base_path: str) -> List[str]:
        """
        Derived files whose bytes match an earlier file under base_path.

        Files are visited in sorted path order; the first file seen for each
        MD5 digest is kept and every later one is reported.
        """
        seen: Dict[str, str] = {}
        duplicates = []
        for path in self._derived_files(disk, base_path):
            try:
                digest = hashlib.md5(disk.get(path)).hexdigest()
            except Exception as e:
                self.logger.debug(f"Could not read {disk.name}:{path}: {e}")
                continue
            if digest in seen:
                duplicates.append(path)
            else:
                seen[digest] = path
        return duplicates

    def optimize(self) -> dict:
        """
        Delete duplicate derived files and empty directories for every preset.

        Returns:
            Dict with duplicates_removed, empty_dirs_removed, space_freed and
            space_freed_human
        """
        results = {
            'duplicates_removed': 0,
            'empty_dirs_removed': 0,
            'space_freed': 0,
        }

        for preset in self.presets:
            try:
                disk = self.disks.get(preset.destination_disk)
                base_path = preset.destination_path
                removed_here = 0

                for path in self.find_duplicates(disk, base_path):
                    try:
                        size = disk.size(path)
                        disk.delete(path)
                    except Exception as e:
                        self.logger.debug(f"Could not remove duplicate {disk.name}:{path}: {e}")
                        continue
                    self.service.assets.forget_exists(disk.name, path)
                    removed_here += 1
                    results['duplicates_removed'] += 1
                    results['space_freed'] += size

                if removed_here:
                    self.service.assets.invalidate_urls(preset.name)

                if self.settings.auto_cleanup_empty_dirs:
                    results['empty_dirs_removed'] += self.clean_empty_directories(
                        disk, base_path, self._strategy(preset)
                    )
            except Exception as e:
                if self.settings.log_errors:
                    self.logger.warning(f"Could not optimize preset '{preset.name}': {e}")

        results['space_freed_human'] = format_bytes(results['space_freed'])
        return results

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def analyze_distribution(self, preset_name: str) -> DistributionStats:
        """
        Count a preset's derived files per directory and per format.

        Raises:
            ConfigNotFound: If preset_name is not configured
            ThumbnailError: If the preset's disk cannot be listed
        """
        preset = self.presets.get(preset_name)
        stats = DistributionStats(preset=preset.name, strategy=self._strategy(preset))

        try:
            disk = self.disks.get(preset.destination_disk)
            base_path = preset.destination_path
            for path in self._derived_files(disk, base_path):
                try:
                    size = disk.size(path)
                except Exception:
                    size = 0
                stats.add_file(path[len(base_path):] if path.startswith(base_path) else path, size)
        except ThumbnailError:
            raise
        except Exception as e:
            raise ThumbnailError(
                f"Could not analyze distribution for preset '{preset_name}': {e}", preset=preset_name
            ) from e

        return stats

    def get_system_stats(self) -> SystemStats:
        """Aggregate distribution stats of every preset, grouped by disk."""
        system = SystemStats()
        for preset in self.presets:
            try:
                system.add(preset.destination_disk, self.analyze_distribution(preset.name))
            except Exception as e:
                system.failed_presets.append(preset.name)
                if self.settings.log_errors:
                    self.logger.warning(f"Could not get stats for preset '{preset.name}': {e}")
        return system

    def validate_configuration(self) -> dict:
        """Check settings, disks and presets without touching any files."""
        issues = self.service.config.validate()
        return {
            'valid': not issues,
            'issues': issues,
            'presets_count': len(self.presets),
            'total_variants': self.presets.total_variants,
        }

    def test_subdirectory_strategies(self, filename: str = 'example_image') -> Dict[str, str]:
        """Show the shard each strategy would give filename."""
        stem = sanitize_filename(source_stem(filename))
        return {
            name: shard_for(stem, name, self.service.clock) or '(none)'
            for name in STRATEGIES
        }
