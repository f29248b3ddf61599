"""
Reporter - Generates human-readable reports from maintenance results.
"""

import logging
import sys
from typing import Dict, Optional, TextIO

from .batch_stats import BatchStats
from .distribution_stats import DistributionStats, SystemStats


class Reporter:
    """
    Generates human-readable reports for the command line.
    """

    def __init__(
        self,
        output: Optional[TextIO] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize reporter.

        Args:
            output: Output stream (default: stdout)
            logger: Optional logger instance
        """
        self.output = output or sys.stdout
        self.logger = logger or logging.getLogger(__name__)

    def _print(self, text: str = "") -> None:
        """Print to output stream."""
        print(text, file=self.output)

    def _format_bytes(self, bytes_val: float) -> str:
        """Format bytes as human-readable string."""
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if bytes_val < 1024:
                return f"{bytes_val:.1f} {unit}"
            bytes_val /= 1024
        return f"{bytes_val:.1f} PB"

    def _format_duration(self, seconds: float) -> str:
        """Format duration as human-readable string."""
        if seconds < 60:
            return f"{seconds:.1f} seconds"
        elif seconds < 3600:
            return f"{seconds / 60:.1f} minutes"
        else:
            return f"{seconds / 3600:.1f} hours"

    def report_distribution(self, stats: DistributionStats, top: int = 10) -> None:
        """Report how one preset's files are spread over directories and formats."""
        self._print("=" * 70)
        self._print(f"DISTRIBUTION: {stats.preset}")
        self._print("=" * 70)
        self._print()

        self._print(f"  Strategy:              {stats.strategy}")
        self._print(f"  Total Files:           {stats.total_files:>12,}")
        self._print(f"  Total Size:            {self._format_bytes(stats.total_size):>12}")
        self._print(f"  Directories:           {stats.directories_count:>12,}")
        self._print(f"  Average per Directory: {stats.average_per_directory:>12.2f}")
        self._print()

        if stats.by_format:
            self._print("  By Format:")
            self._print(f"    {'Format':<10} {'Files':>12}")
            self._print(f"    {'-'*10} {'-'*12}")
            for fmt in sorted(stats.by_format):
                self._print(f"    {fmt:<10} {stats.by_format[fmt]:>12,}")
            self._print()

        largest = stats.largest_directories(top)
        if largest:
            self._print(f"  Largest Directories (top {top}):")
            self._print(f"    {'Directory':<40} {'Files':>12}")
            self._print(f"    {'-'*40} {'-'*12}")
            for directory, count in largest.items():
                self._print(f"    {directory:<40} {count:>12,}")
            self._print()

    def report_system(self, stats: SystemStats) -> None:
        """Report totals across every preset, grouped by disk."""
        self._print("=" * 70)
        self._print("THUMBNAIL SYSTEM STATISTICS")
        self._print("=" * 70)
        self._print()

        self._print(f"  Presets:     {stats.presets:,}")
        self._print(f"  Total Files: {stats.total_files:,}")
        self._print(f"  Total Size:  {self._format_bytes(stats.total_size)}")
        self._print()

        self._print("Disk Usage:")
        self._print("-" * 70)
        self._print(f"{'Disk':<20} {'Files':>12} {'Size':>14}  Presets")
        self._print("-" * 70)
        for name in sorted(stats.disk_usage):
            usage = stats.disk_usage[name]
            self._print(
                f"{name:<20} {usage.files:>12,} {self._format_bytes(usage.size):>14}  "
                f"{', '.join(usage.presets)}"
            )
        self._print("-" * 70)

        if stats.failed_presets:
            self._print()
            self._print(f"⚠️  Could not analyze: {', '.join(stats.failed_presets)}")
        self._print()

    def report_validation(self, result: Dict) -> None:
        """Report the outcome of a configuration check."""
        self._print("=" * 70)
        self._print("CONFIGURATION VALIDATION")
        self._print("=" * 70)
        self._print()
        self._print(f"  Presets:  {result['presets_count']}")
        self._print(f"  Variants: {result['total_variants']}")
        self._print()

        if result['valid']:
            self._print("✓ Configuration is valid")
        else:
            self._print(f"⚠️  {len(result['issues'])} issue(s) found:")
            for issue in result['issues']:
                self._print(f"  - {issue}")
        self._print()

    def report_optimize(self, result: Dict) -> None:
        """Report what an optimize run removed."""
        self._print("Optimization Results:")
        self._print(f"  Duplicates Removed:   {result['duplicates_removed']:,}")
        self._print(f"  Empty Dirs Removed:   {result['empty_dirs_removed']:,}")
        self._print(f"  Space Freed:          {self._format_bytes(result['space_freed'])}")
        self._print()

    def report_batch(self, stats: BatchStats, title: str = "BATCH RESULTS", error_limit: int = 20) -> None:
        """Report counters and the first errors of a batch run."""
        self._print("=" * 70)
        self._print(title)
        self._print("=" * 70)
        self._print()
        self._print(f"  Total:           {stats.total:>10,}")
        self._print(f"  Generated:       {stats.processed:>10,}")
        self._print(f"  Skipped:         {stats.skipped:>10,}")
        self._print(f"  Already Cached:  {stats.already_cached:>10,}")
        self._print(f"  Errors:          {stats.errors:>10,}")
        self._print(f"  Elapsed:         {self._format_duration(stats.elapsed_seconds)}")
        if stats.processed:
            self._print(f"  Rate:            {stats.rate_per_minute:.1f}/min")
        self._print()

        if stats.error_details:
            self._print("Errors:")
            for message in stats.error_details[:error_limit]:
                self._print(f"  {message}")
            remaining = len(stats.error_details) - error_limit
            if remaining > 0:
                self._print(f"  ... and {remaining:,} more")
            self._print()

    def report_debug(self, info: Dict) -> None:
        """Print debug_info() output as aligned key/value lines."""
        width = max((len(k) for k in info), default=0)
        for key, value in info.items():
            self._print(f"  {key:<{width}}  {value}")

    def report_strategies(self, filename: str, shards: Dict[str, str]) -> None:
        self._print(f"Subdirectory strategies for '{filename}':")
        for name, shard in shards.items():
            self._print(f"  {name:<16} {shard}")
