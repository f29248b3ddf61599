"""
Pregenerator - Fills presets ahead of time for images already on a source disk.
"""

import logging
import os
import time
from typing import Iterator, List, Optional

from .batch_stats import BatchStats
from .jobs import GenerateThumbnailJob
from .service import ResolveMode, SourceAsset


class Pregenerator:
    """
    Generates every missing derived file for a set of presets.

    Each source image is processed once per preset: the main size first,
    then each configured variant.
    """

    def __init__(
        self,
        service,
        cadence: float = 0.0,
        dry_run: bool = False,
        force: bool = False,
        use_jobs: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize pregenerator.

        Args:
            service: ThumbnailService to generate with
            cadence: Seconds to pause between source images
            dry_run: If True, only count what would be generated
            force: Regenerate derived files that already exist
            use_jobs: Run each generation as a retried job instead of a strict resolve
            logger: Optional logger instance
        """
        self.service = service
        self.cadence = cadence
        self.dry_run = dry_run
        self.force = force
        self.use_jobs = use_jobs
        self.logger = logger or logging.getLogger(__name__)
        self.stats = BatchStats()
        self._stop_requested = False

    def stop(self) -> None:
        """Request the pregenerator to stop after the current image."""
        self._stop_requested = True

    def scan_for_images(self, disk_name: str, path: str = '') -> List[str]:
        """List files under path on disk_name with an allowed image extension."""
        allowed = set(self.service.settings.allowed_extensions)
        disk = self.service.disks.get(disk_name)
        return [
            f for f in disk.list_files(path, recursive=True)
            if os.path.splitext(f)[1].lower().lstrip('.') in allowed
        ]

    def _targets(self, presets: List[str]) -> Iterator[tuple]:
        for preset in presets:
            yield preset, None
            for variant in self.service.get_variants(preset):
                yield preset, variant

    def run(
        self,
        presets: Optional[List[str]] = None,
        source_disk: str = 'public',
        scan_path: str = '',
        limit: Optional[int] = None
    ) -> BatchStats:
        """
        Generate missing derived files.

        Args:
            presets: Preset names (default: all configured presets)
            source_disk: Disk to scan for source images
            scan_path: Directory on source_disk to scan
            limit: Optional cap on the number of source images

        Returns:
            BatchStats with results

        Raises:
            ConfigNotFound: If a named preset is not configured
        """
        presets = list(presets or self.service.presets.names())
        for name in presets:
            self.service.presets.get(name)

        images = self.scan_for_images(source_disk, scan_path)
        if limit:
            images = images[:limit]

        targets = list(self._targets(presets))
        self.stats = BatchStats(total=len(images) * len(targets))

        mode_str = " [DRY RUN]" if self.dry_run else ""
        self.logger.info(
            f"Starting pre-generation: {len(images)} images x {len(targets)} sizes "
            f"from {source_disk}:{scan_path or '/'}{mode_str}"
        )

        for image in images:
            if self._stop_requested:
                self.logger.info("Stop requested, halting pre-generation")
                break

            for preset, variant in targets:
                self._process(SourceAsset(image, source_disk), preset, variant)

            if self.cadence > 0 and not self.dry_run:
                time.sleep(self.cadence)

        self.logger.info(
            f"Pre-generation complete: {self.stats.processed} generated, "
            f"{self.stats.skipped} skipped, {self.stats.errors} errors "
            f"({self.stats.elapsed_seconds:.1f}s)"
        )
        return self.stats

    def _process(self, source: SourceAsset, preset: str, variant: Optional[str]) -> None:
        label = variant or 'main'
        try:
            config = self.service.effective_config(preset, variant)
            path = self.service.derived_path(source.path, config, variant)
            disk = self.service.disks.get(config.destination_disk)

            if disk.exists(path):
                if not self.force:
                    self.stats.skipped += 1
                    return
                if not self.dry_run:
                    disk.delete(path)
                    self.service.clear_cache(source, preset)

            if self.dry_run:
                self.logger.info(f"[DRY RUN] Would generate: {disk.name}:{path}")
                self.stats.processed += 1
                return

            if self.use_jobs:
                job = GenerateThumbnailJob.for_request(
                    self.service, source.path, preset, variant, source_disk=source.disk
                )
                result = job.run(self.service)
                if not result.ok:
                    self.stats.record_error(source.path, f"{preset}/{label}", Exception(result.error))
                    return
                url = disk.url(result.path)
            else:
                url = self.service.resolve(source, preset, variant, mode=ResolveMode.STRICT)

            self.stats.processed += 1
            self.stats.details.setdefault(source.path, {})[f"{preset}/{label}"] = url
        except Exception as e:
            self.logger.error(f"Error processing {source.path} for {preset}/{label}: {e}")
            self.stats.record_error(source.path, f"{preset}/{label}", e)
