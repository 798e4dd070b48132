"""In-process TTL cache for results of expensive upstream calls.

Entries expire after their TTL and are evicted lazily when read. There is
no size bound: the key space is one entry per distinct upstream result.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from snapname.app.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class _CacheEntry:
    """Internal cache entry with TTL tracking."""

    value: Any
    stored_at: float
    ttl: float

    @property
    def expires_at(self) -> Optional[float]:
        if self.ttl <= 0:
            return None
        return self.stored_at + self.ttl

    def is_expired(self, now: float) -> bool:
        """Check if the entry has expired at ``now``."""
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return now >= expires_at


class TTLCache:
    """Thread-safe key/value store whose entries expire after a TTL.

    A single lock guards the whole store; every operation is short and
    never waits on I/O, so it is safe to call from request handlers running
    on the event loop or in worker threads.

    Example:
        >>> cache = TTLCache(default_ttl=60)
        >>> cache.set("nickname:https://img/1.png", {"nickname": "Sunny"})
        >>> cache.get("nickname:https://img/1.png")
        {'nickname': 'Sunny'}
    """

    def __init__(self, default_ttl: float = 86400, clock: Clock = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            default_ttl: TTL in seconds used when ``set`` gets none.
                0 means entries never expire.
            clock: Monotonic time source, injectable for tests.
        """
        if default_ttl < 0:
            raise ValueError("default_ttl cannot be negative")
        self.default_ttl = default_ttl
        self._clock = clock
        self._data: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key``, or ``default`` on a miss.

        An expired entry counts as a miss and is removed.
        """
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            if entry.is_expired(self._clock()):
                del self._data[key]
                return default
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` under ``key``, replacing any existing entry.

        Args:
            key: Cache key identifying the upstream result.
            value: Value to store.
            ttl: Time-to-live in seconds; ``default_ttl`` when omitted.
        """
        if ttl is None:
            ttl = self.default_ttl
        if ttl < 0:
            raise ValueError("ttl cannot be negative")
        with self._lock:
            self._data[key] = _CacheEntry(value=value, stored_at=self._clock(), ttl=ttl)

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if an entry was present."""
        with self._lock:
            return self._data.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        """Check if a live entry exists for ``key``."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._data[key]
                return False
            return True

    def clear(self) -> None:
        """Clear all entries from the cache."""
        with self._lock:
            self._data.clear()

    def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired_keys = [
                key for key, entry in self._data.items() if entry.is_expired(now)
            ]
            for key in expired_keys:
                del self._data[key]
        if expired_keys:
            logger.debug(f"Evicted {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.exists(key)


# One cache per namespace, shared by every caller of that namespace
_cache_instances: Dict[str, TTLCache] = {}
_instances_lock = threading.Lock()


def get_cache(namespace: str = "default", default_ttl: Optional[float] = None) -> TTLCache:
    """Get or create the shared cache for ``namespace``.

    Repeated calls with the same namespace return the same store; the
    ``default_ttl`` only applies when the cache is first created.

    Example:
        >>> from snapname.app.core.cache import get_cache
        >>> cache = get_cache("nickname")
        >>> cache is get_cache("nickname")
        True
    """
    with _instances_lock:
        cache = _cache_instances.get(namespace)
        if cache is None:
            if default_ttl is None:
                from snapname.app.core.config import settings
                default_ttl = settings.cache_default_ttl
            cache = TTLCache(default_ttl=default_ttl)
            _cache_instances[namespace] = cache
        return cache


def reset_cache() -> None:
    """Drop every shared cache instance.

    This is primarily useful for testing.
    """
    with _instances_lock:
        _cache_instances.clear()
