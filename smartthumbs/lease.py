"""
GenerationLease - Short-lived single-writer guard keyed by derived path.

The lease lives in the shared key-value cache with a TTL, so a crashed
holder blocks other writers for at most ttl seconds.
"""

import logging
import time
import uuid
from typing import Callable, Optional

from .kv_cache import KeyValueCache

# Returned when the cache is unusable; generation proceeds unguarded.
UNGUARDED = 'unguarded'


class GenerationLease:
    """
    Mutual exclusion for expensive generation work.
    """

    def __init__(
        self,
        cache: KeyValueCache,
        ttl: float = 60,
        wait: float = 10,
        poll_interval: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize lease helper.

        Args:
            cache: Shared key-value cache holding lease entries
            ttl: Seconds before an unreleased lease expires
            wait: Seconds a waiter polls before giving up
            poll_interval: Seconds between polls
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
            logger: Optional logger instance
        """
        self.cache = cache
        self.ttl = ttl
        self.wait = wait
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def acquire(self, key: str) -> Optional[str]:
        """Try to take the lease. Returns a token, or None if someone else holds it."""
        token = uuid.uuid4().hex
        try:
            if self.cache.add(key, token, self.ttl):
                return token
            return None
        except Exception as e:
            self.logger.warning(f"Lease cache unavailable for {key}, generating unguarded: {e}")
            return UNGUARDED

    def release(self, key: str, token: Optional[str]) -> None:
        """Release a lease previously returned by acquire()."""
        if not token or token == UNGUARDED:
            return
        try:
            if self.cache.get(key) == token:
                self.cache.forget(key)
        except Exception as e:
            self.logger.warning(f"Could not release lease {key}: {e}")

    def is_held(self, key: str) -> bool:
        try:
            return self.cache.get(key) is not None
        except Exception:
            return False

    def wait_for(self, key: str, ready: Callable[[], bool]) -> bool:
        """
        Wait for another holder to finish.

        Returns:
            True once ready() holds; False if the lease disappeared without
            ready() becoming true, or the wait timed out
        """
        deadline = self._clock() + self.wait
        while True:
            if ready():
                return True
            if not self.is_held(key):
                return ready()
            if self._clock() >= deadline:
                return False
            self._sleep(self.poll_interval)
