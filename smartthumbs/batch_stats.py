"""
BatchStats - Counters for cache warm-up and batch generation runs.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class BatchStats:
    """
    Statistics for a batch run over many sources.

    Attributes:
        total: Number of (source, variant) pairs considered
        processed: Generated (batch) or warmed (warm-up) entries
        already_cached: Entries whose URL was already cached
        skipped: Entries left alone because the derived file already existed
        errors: Failed entries
        start_time: Start timestamp
        details: Per-source results, keyed by source path
        error_details: List of error messages
    """
    total: int = 0
    processed: int = 0
    already_cached: int = 0
    skipped: int = 0
    errors: int = 0
    start_time: float = field(default_factory=time.time)
    details: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error_details: List[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        """Elapsed time in seconds."""
        return time.time() - self.start_time

    @property
    def rate_per_second(self) -> float:
        """Processing rate in entries per second."""
        if self.elapsed_seconds > 0:
            return self.processed / self.elapsed_seconds
        return 0.0

    @property
    def rate_per_minute(self) -> float:
        return self.rate_per_second * 60

    @property
    def completed_count(self) -> int:
        """Total completed (processed + already cached + skipped + errors)."""
        return self.processed + self.already_cached + self.skipped + self.errors

    def record_error(self, source: str, label: str, error: Exception) -> None:
        self.errors += 1
        self.error_details.append(f"{source} [{label}]: {error}")
        self.details.setdefault(source, {}).setdefault('errors', {})[label] = str(error)

    def to_dict(self) -> dict:
        return {
            'total': self.total,
            'processed': self.processed,
            'already_cached': self.already_cached,
            'skipped': self.skipped,
            'errors': self.errors,
            'elapsed_seconds': round(self.elapsed_seconds, 3),
            'details': self.details,
        }
