"""
Key-value cache - Contract and in-process TTL implementation.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

_MISSING = object()


class KeyValueCache(ABC):
    """
    Shared cache holding URL, existence and lease entries.

    ttl is in seconds; None keeps the entry until it is forgotten.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default when missing or expired."""

    @abstractmethod
    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value."""

    @abstractmethod
    def add(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Store a value only if the key is absent. Returns True if stored."""

    @abstractmethod
    def forget(self, key: str) -> None:
        """Remove a key."""

    @abstractmethod
    def flush(self) -> None:
        """Remove every key."""

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def remember(self, key: str, ttl: Optional[float], producer: Callable[[], Any]) -> Any:
        """Return the cached value, computing and storing it with producer on a miss."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = producer()
        self.put(key, value, ttl)
        return value


class MemoryCache(KeyValueCache):
    """
    Thread-safe in-memory cache with per-entry expiry.

    Shared between threads of one process; use a networked implementation
    of KeyValueCache to share entries between processes.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock or time.monotonic

    def _expires_at(self, ttl: Optional[float]) -> Optional[float]:
        return None if ttl is None else self._clock() + ttl

    def _live(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return _MISSING
        return value

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._live(key)
        return default if value is _MISSING else value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = (value, self._expires_at(ttl))

    def add(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        with self._lock:
            if self._live(key) is not _MISSING:
                return False
            self._entries[key] = (value, self._expires_at(ttl))
            return True

    def forget(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for key in list(self._entries) if self._live(key) is not _MISSING)
