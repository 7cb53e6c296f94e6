"""
Durable small key-value storage.

Used by the rate limiter (attempt/backoff state, cooldowns) and by session
fingerprinting (stored baselines). Values are bytes; callers own encoding.

The production store is a Django cache alias with no expiry, so state lives
in Redis (django-redis) and survives process restarts.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from django.core.cache import caches

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal durable key-value contract."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when absent or unreadable."""

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store bytes under key. Best effort."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""


class CacheKeyValueStore(KeyValueStore):
    """
    KeyValueStore backed by a Django cache alias.

    Reads that fail are treated as missing values; writes that fail are
    logged and dropped. Keys never expire.
    """

    KEY_PREFIX = 'kv:'

    def __init__(self, alias: str = 'default'):
        self.alias = alias

    @property
    def _cache(self):
        return caches[self.alias]

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def get(self, key: str) -> Optional[bytes]:
        try:
            value = self._cache.get(self._key(key))
        except Exception as e:
            logger.warning(
                f"Key-value store read failed for {key}: {e}",
                extra={'cache_alias': self.alias}
            )
            return None

        if value is None:
            return None
        if isinstance(value, str):
            return value.encode('utf-8')
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)

        logger.warning(
            f"Key-value store holds unexpected type for {key}: {type(value).__name__}",
            extra={'cache_alias': self.alias}
        )
        return None

    def set(self, key: str, value: bytes) -> None:
        try:
            self._cache.set(self._key(key), bytes(value), timeout=None)
        except Exception as e:
            logger.error(
                f"Key-value store write failed for {key}: {e}",
                extra={'cache_alias': self.alias}
            )

    def delete(self, key: str) -> None:
        try:
            self._cache.delete(self._key(key))
        except Exception as e:
            logger.error(
                f"Key-value store delete failed for {key}: {e}",
                extra={'cache_alias': self.alias}
            )


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Used in tests and one-off tooling."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return list(self._data.keys())
