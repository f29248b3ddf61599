"""
AssetCache - Best-effort URL and existence caching for derived files.

Every cache failure is logged and treated as a miss; losing entries only
costs a storage round trip.
"""

import logging
import uuid
from typing import Optional

from .kv_cache import KeyValueCache
from .paths import exists_cache_key, url_cache_key, url_epoch_key
from .storage.blob_store import BlobStore

DEFAULT_URL_TTL = 6 * 3600
DEFAULT_EXISTS_TTL = 3600
DEFAULT_FALLBACK_TTL = 300


class AssetCache:
    """
    URL and existence lookups in front of a key-value cache.
    """

    def __init__(
        self,
        cache: KeyValueCache,
        url_ttl: float = DEFAULT_URL_TTL,
        exists_ttl: float = DEFAULT_EXISTS_TTL,
        fallback_ttl: float = DEFAULT_FALLBACK_TTL,
        cache_urls: bool = True,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize asset cache.

        Args:
            cache: Shared key-value cache
            url_ttl: Lifetime of resolved URLs in seconds
            exists_ttl: Lifetime of existence entries in seconds
            fallback_ttl: Lifetime of cached fallback URLs in seconds
            cache_urls: Disable to skip the URL cache entirely
            logger: Optional logger instance
        """
        self.cache = cache
        self.url_ttl = url_ttl
        self.exists_ttl = exists_ttl
        self.fallback_ttl = fallback_ttl
        self.cache_urls = cache_urls
        self.logger = logger or logging.getLogger(__name__)

    def url_key(self, preset: str, source_path: str, variant: Optional[str] = None) -> str:
        """
        URL cache key for one derived file, scoped to the preset's current epoch.

        invalidate_urls() starts a new epoch; URLs cached under an older
        epoch are never read again.
        """
        key = url_cache_key(preset, source_path, variant)
        epoch = self.url_epoch(preset)
        return f"{key}:{epoch}" if epoch else key

    def url_epoch(self, preset: str) -> Optional[str]:
        try:
            return self.cache.get(url_epoch_key(preset))
        except Exception as e:
            self.logger.warning(f"URL epoch read failed for preset {preset}: {e}")
            return None

    def invalidate_urls(self, preset: str) -> None:
        """Drop every cached URL of a preset."""
        try:
            self.cache.put(url_epoch_key(preset), uuid.uuid4().hex[:12], self.url_ttl)
        except Exception as e:
            self.logger.warning(f"URL cache invalidation failed for preset {preset}: {e}")

    def get_url(self, key: str) -> Optional[str]:
        if not self.cache_urls:
            return None
        try:
            return self.cache.get(key) or None
        except Exception as e:
            self.logger.warning(f"URL cache read failed for {key}: {e}")
            return None

    def put_url(self, key: str, url: str, ttl: Optional[float] = None) -> None:
        if not self.cache_urls:
            return
        try:
            self.cache.put(key, url, self.url_ttl if ttl is None else ttl)
        except Exception as e:
            self.logger.warning(f"URL cache write failed for {key}: {e}")

    def get_fallback_url(self, key: str) -> Optional[str]:
        return self.get_url(key)

    def put_fallback_url(self, key: str, url: str) -> None:
        self.put_url(key, url, self.fallback_ttl)

    def forget_url(self, key: str) -> None:
        try:
            self.cache.forget(key)
        except Exception as e:
            self.logger.warning(f"URL cache forget failed for {key}: {e}")

    def get_exists(self, disk: str, path: str) -> Optional[bool]:
        """Cached existence flag, or None when there is no usable entry."""
        try:
            value = self.cache.get(exists_cache_key(disk, path))
        except Exception as e:
            self.logger.warning(f"Existence cache read failed for {disk}:{path}: {e}")
            return None
        return None if value is None else bool(value)

    def put_exists(self, disk: str, path: str, exists: bool) -> None:
        try:
            self.cache.put(exists_cache_key(disk, path), exists, self.exists_ttl)
        except Exception as e:
            self.logger.warning(f"Existence cache write failed for {disk}:{path}: {e}")

    def forget_exists(self, disk: str, path: str) -> None:
        try:
            self.cache.forget(exists_cache_key(disk, path))
        except Exception as e:
            self.logger.warning(f"Existence cache forget failed for {disk}:{path}: {e}")

    def exists(self, store: BlobStore, path: str) -> bool:
        """
        Check whether a derived file exists.

        A cached True is trusted. A cached False or a miss goes to the store
        and refreshes the entry. Store errors count as "missing".
        """
        if self.get_exists(store.name, path):
            self.logger.debug(f"Existence cache hit: {store.name}:{path}")
            return True

        try:
            exists = store.exists(path)
        except Exception as e:
            self.logger.warning(f"Existence check failed for {store.name}:{path}: {e}")
            return False

        self.put_exists(store.name, path, exists)
        return exists
