"""
Jobs - Background thumbnail generation with bounded retries and a dead letter.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import List, Optional

from retrying import Retrying

from .errors import GenerationTimeout, ThumbnailError
from .presets import EffectiveConfig

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    """
    Outcome of one job run.

    Attributes:
        status: 'generated', 'skipped' or 'failed'
        path: Path written (or already present)
        attempts: Number of generation attempts made
        error: Last error message when failed
        elapsed_seconds: Wall time of the run
    """
    status: str
    path: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status != 'failed'

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GenerateThumbnailJob:
    """
    A queued request to generate one derived file.

    Instances serialize to plain dicts so any external queue can carry them.
    """
    source_path: str
    source_disk: str
    preset_name: str
    effective_config: EffectiveConfig
    derived_path: str
    variant: Optional[str] = None
    tries: int = 3
    backoff: List[float] = field(default_factory=lambda: [10, 30, 60])
    timeout: float = 120
    dead_letter_path: Optional[str] = None

    def __post_init__(self):
        self._attempts = 0

    @classmethod
    def for_request(cls, service, source_path: str, preset: str,
                    variant: Optional[str] = None, source_disk: str = 'public') -> 'GenerateThumbnailJob':
        """Build a job using the service's presets and job settings."""
        config = service.effective_config(preset, variant)
        settings = service.settings
        return cls(
            source_path=source_path,
            source_disk=source_disk,
            preset_name=preset,
            effective_config=config,
            derived_path=service.derived_path(source_path, config, variant),
            variant=variant,
            tries=settings.job_tries,
            backoff=list(settings.job_backoff),
            timeout=settings.job_timeout,
            dead_letter_path=settings.dead_letter_path,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data['effective_config'] = self.effective_config.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'GenerateThumbnailJob':
        data = dict(data)
        data['effective_config'] = EffectiveConfig.from_dict(data['effective_config'])
        return cls(**data)

    def _wait_ms(self, attempt_number: int, delay_since_first_attempt_ms: int) -> float:
        if not self.backoff:
            return 0
        index = min(attempt_number - 1, len(self.backoff) - 1)
        return self.backoff[index] * 1000

    def _attempt(self, service) -> str:
        self._attempts += 1
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(
                service.generate,
                self.source_path,
                self.source_disk,
                self.preset_name,
                self.effective_config,
                self.derived_path,
                self.variant,
            )
            try:
                return future.result(timeout=self.timeout)
            except FutureTimeout:
                raise GenerationTimeout(
                    f"Generation of {self.derived_path} exceeded {self.timeout}s",
                    path=self.derived_path,
                ) from None
        finally:
            # A timed-out attempt keeps running in its thread; don't block on it.
            executor.shutdown(wait=False)

    def run(self, service) -> JobResult:
        """
        Generate the derived file unless it already exists.

        Args:
            service: ThumbnailService providing disks and generate()

        Returns:
            JobResult; permanent failures are reported through failed()
        """
        start = time.time()
        self._attempts = 0

        try:
            disk = service.disks.get(self.effective_config.destination_disk)
            if disk.exists(self.derived_path):
                logger.debug(f"Thumbnail already exists, skipping: {self.derived_path}")
                return JobResult('skipped', self.derived_path, 0, elapsed_seconds=time.time() - start)
        except Exception as e:
            logger.warning(f"Could not check {self.derived_path} before generating: {e}")

        retrier = Retrying(
            stop_max_attempt_number=max(1, self.tries),
            wait_func=self._wait_ms,
        )
        try:
            path = retrier.call(self._attempt, service)
        except Exception as e:
            self.failed(e)
            return JobResult(
                'failed', self.derived_path, self._attempts,
                error=str(e), elapsed_seconds=time.time() - start,
            )

        return JobResult('generated', path, self._attempts, elapsed_seconds=time.time() - start)

    def failed(self, error: Exception) -> None:
        """
        Report a permanent failure after retries are exhausted.

        The record is always logged; it is also appended as one JSON line to
        dead_letter_path when one is set.
        """
        error = ThumbnailError.wrap(error)
        logger.error(
            f"Thumbnail job failed permanently after {self._attempts} attempts: "
            f"[{error.kind}] {error} (preset={self.preset_name}, source={self.source_path}, "
            f"variant={self.variant or 'main'})"
        )

        if not self.dead_letter_path:
            return

        record = {
            'failed_at': datetime.now(timezone.utc).isoformat(),
            'error_kind': error.kind,
            'error': str(error),
            'attempts': self._attempts,
            'job': self.to_dict(),
        }
        try:
            with open(self.dead_letter_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(record) + '\n')
        except OSError as e:
            logger.error(f"Could not write dead letter record to {self.dead_letter_path}: {e}")

