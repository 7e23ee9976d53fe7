"""
Caching utilities for the feedhub API.

One TTLCache per dataset, built once per process by state.build_services()
and handed to the handlers that need it.

Design Pattern: Cache-Aside with stale fallback
Algorithm: Dictionary-based cache with timestamp expiration
Big O: O(1) for get/set operations, O(n) for invalidate where n = cache size

Environment Variables:
    CACHE: Set to "false" to disable all caching (default: "true")
           Usage: CACHE=false uvicorn feedhub.api.main:app --port 8000
"""

import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .logging_config import get_logger, DEBUG_MODE

logger = get_logger(__name__)

# Global cache enable/disable flag (can be disabled via CACHE=false environment variable)
CACHE_ENABLED = os.environ.get("CACHE", "true").lower() not in ("false", "0", "no", "off")

if not CACHE_ENABLED:
    logger.warning("[CACHE] Caching is DISABLED (CACHE environment variable set to false)")


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float


class TTLCache:
    """
    In-memory cache with TTL and a stale-read escape hatch.

    ``get`` is the primary read: expired entries are evicted and reported as
    misses. ``get_stale`` keeps returning the last written value regardless of
    age and exists only for degraded-mode fallback when the upstream fails.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        name: str = "cache",
        clock: Callable[[], float] = time.time,
        enabled: Optional[bool] = None,
    ):
        self.default_ttl = ttl_seconds
        self.name = name
        self.enabled = CACHE_ENABLED if enabled is None else enabled
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # Last written value per key, kept after eviction for stale reads
        self._last_values: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                if DEBUG_MODE:
                    logger.debug(f"[CACHE] {self.name} MISS: {key[:50]}")
                return None

            age = self._clock() - entry.timestamp
            if age > entry.ttl:
                del self._entries[key]
                if DEBUG_MODE:
                    logger.debug(f"[CACHE] {self.name} EXPIRED: {key[:50]} (age: {age:.1f}s, ttl: {entry.ttl}s)")
                return None

            if DEBUG_MODE:
                logger.debug(f"[CACHE] {self.name} HIT: {key[:50]} (age: {age:.1f}s, ttl: {entry.ttl}s)")
            return entry.data

    def get_stale(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        with self._lock:
            return self._last_values.get(key)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if not self.enabled:
            return

        actual_ttl = ttl if ttl is not None else self.default_ttl
        with self._lock:
            self._entries[key] = CacheEntry(data=value, timestamp=self._clock(), ttl=actual_ttl)
            self._last_values[key] = value
        if DEBUG_MODE:
            logger.debug(f"[CACHE] {self.name} SET: {key[:50]} (ttl: {actual_ttl}s)")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._last_values.clear()

    def invalidate(self, key_pattern: str) -> int:
        """Drop entries whose key contains ``key_pattern``, stale copies included."""
        with self._lock:
            keys = [k for k in self._last_values if key_pattern in k]
            for k in keys:
                self._entries.pop(k, None)
                self._last_values.pop(k, None)
        if keys:
            logger.info(f"[CACHE] {self.name} invalidated {len(keys)} entries matching '{key_pattern}'")
        return len(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
