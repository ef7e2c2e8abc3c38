from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable


DEFAULT_TTL_MINUTES = 15
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_CLEANUP_INTERVAL_MINUTES = 5

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _string_hash32(value: str) -> int:
    # hash*31 + code unit over UTF-16, wrapped to signed 32 bits
    data = value.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def cache_key_for(image_url: str) -> str:
    return f"category:{_to_base36(abs(_string_hash32(image_url or '')))}"


@dataclass
class _Entry:
    result: Any
    stored_at: float
    expires_at: float


class CategoryCache:
    """In-process TTL cache for category suggestions keyed by image URL.

    Expired entries are dropped on read and by a sweep that runs at most
    once per cleanup interval, piggybacked on cache traffic.
    """

    def __init__(
        self,
        *,
        ttl_minutes: float = DEFAULT_TTL_MINUTES,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        cleanup_interval_minutes: float = DEFAULT_CLEANUP_INTERVAL_MINUTES,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = float(ttl_minutes or DEFAULT_TTL_MINUTES) * 60.0
        self.max_entries = int(max_entries or DEFAULT_MAX_ENTRIES)
        self.cleanup_interval_seconds = float(cleanup_interval_minutes or DEFAULT_CLEANUP_INTERVAL_MINUTES) * 60.0
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._hits = 0
        self._misses = 0
        self._total = 0
        self._last_cleanup = clock()

    def get(self, image_url: str):
        key = cache_key_for(image_url)
        with self._lock:
            self._maybe_cleanup_locked()
            self._total += 1
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() > entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.result

    def set(self, image_url: str, result, ttl_seconds: float | None = None) -> None:
        key = cache_key_for(image_url)
        now = self._clock()
        ttl = float(ttl_seconds) if ttl_seconds else self.ttl_seconds
        with self._lock:
            self._maybe_cleanup_locked()
            if len(self._entries) >= self.max_entries:
                # FIFO eviction of the oldest insertion
                oldest = next(iter(self._entries), None)
                if oldest is not None:
                    del self._entries[oldest]
            self._entries[key] = _Entry(result=result, stored_at=now, expires_at=now + ttl)

    def has(self, image_url: str) -> bool:
        with self._lock:
            return cache_key_for(image_url) in self._entries

    def delete(self, image_url: str) -> bool:
        with self._lock:
            return self._entries.pop(cache_key_for(image_url), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._total = 0

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def cleanup_expired(self) -> int:
        with self._lock:
            return self._cleanup_locked()

    def metrics(self) -> dict:
        with self._lock:
            hit_rate = (self._hits / self._total) * 100 if self._total else 0.0
            return {
                "hits": self._hits,
                "misses": self._misses,
                "totalRequests": self._total,
                "hitRate": round(hit_rate, 2),
                "size": len(self._entries),
            }

    def _maybe_cleanup_locked(self) -> None:
        if self._clock() - self._last_cleanup >= self.cleanup_interval_seconds:
            self._cleanup_locked()

    def _cleanup_locked(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._last_cleanup = now
        return len(expired)


category_suggest_cache = CategoryCache()


def get_cached_suggestion(image_url: str):
    return category_suggest_cache.get(image_url)


def cache_suggestion(image_url: str, result) -> None:
    category_suggest_cache.set(image_url, result)


def clear_category_cache() -> None:
    category_suggest_cache.clear()


def get_cache_metrics() -> dict:
    return category_suggest_cache.metrics()
