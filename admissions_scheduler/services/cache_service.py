# admissions_scheduler/services/cache_service.py

import itertools
import logging
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, Optional, Set, TypeVar

from admissions_scheduler.base.metrics import cache_event_counter

logger = logging.getLogger("scheduler.cache")

T = TypeVar("T")

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    last_accessed: float


def _pattern_to_regex(pattern: str) -> "re.Pattern[str]":
    # Glob where only '*' is special, anchored at both ends
    escaped = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{escaped}$")


class ReadPathCache:
    """
    Bounded in-memory cache for slot results, calendar ranges and interviewer
    listings. LRU eviction at `max_size`, TTL as a backstop; write paths call
    `invalidate()` explicitly. A load that overlaps a matching `invalidate()`
    returns its value to the caller but does not store it.

    Usage:
        cache = ReadPathCache(default_ttl=300, max_size=1000)
        slots = cache.get_or_load("slots:7:2026-03-02:20", lambda: compute(...))
        cache.invalidate("slots:7:*")
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: int = 1000,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.enabled = enabled
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._invalidations = 0
        self._loads = itertools.count()
        self._in_flight: Dict[int, str] = {}
        self._stale_loads: Set[int] = set()

    def get(self, key: str, default: Any = None) -> Any:
        if not self.enabled:
            return default
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or entry.expires_at <= now:
                if entry is not None:
                    del self._entries[key]
                self._misses += 1
                cache_event_counter.labels(event="miss").inc()
                return default
            entry.last_accessed = now
            self._entries.move_to_end(key)
            self._hits += 1
        cache_event_counter.labels(event="hit").inc()
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._store(key, value, ttl)

    def _store(self, key: str, value: Any, ttl: Optional[float]) -> None:
        # Caller holds self._lock
        now = self._clock()
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = CacheEntry(
            value=value,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            last_accessed=now,
        )
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"[Cache] Evicted LRU key {evicted}")

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate(self, pattern: str) -> int:
        regex = _pattern_to_regex(pattern)
        with self._lock:
            doomed = [key for key in self._entries if regex.match(key)]
            for key in doomed:
                del self._entries[key]
            for token, key in self._in_flight.items():
                if regex.match(key):
                    self._stale_loads.add(token)
            self._invalidations += len(doomed)
        if doomed:
            cache_event_counter.labels(event="invalidation").inc(len(doomed))
            logger.debug(f"[Cache] Invalidated {len(doomed)} keys matching {pattern}")
        return len(doomed)

    def get_or_load(self, key: str, loader: Callable[[], T], ttl: Optional[float] = None) -> T:
        # Loader errors propagate and nothing is stored
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        with self._lock:
            token = next(self._loads)
            self._in_flight[token] = key
        try:
            value = loader()
        except Exception:
            with self._lock:
                self._finish_load(token)
            raise
        with self._lock:
            if self._finish_load(token):
                logger.debug(f"[Cache] Not storing {key}: invalidated while loading")
            elif self.enabled:
                self._store(key, value, ttl)
        return value

    def _finish_load(self, token: int) -> bool:
        """Caller holds self._lock. True when an invalidation overlapped the load."""
        del self._in_flight[token]
        if token in self._stale_loads:
            self._stale_loads.discard(token)
            return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._stale_loads.update(self._in_flight)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "enabled": self.enabled,
                "size": len(self._entries),
                "maxSize": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "invalidations": self._invalidations,
                "hitRate": round(self._hits / lookups, 4) if lookups else 0.0,
            }


def invalidate_interview_views(cache: ReadPathCache, interviewer_ids: Iterable[int], dates: Iterable[date]) -> None:
    """Drop every cached view an interview write can change."""
    dates = list(dates)
    for interviewer_id in interviewer_ids:
        for on_date in dates:
            cache.invalidate(f"slots:{interviewer_id}:{on_date.isoformat()}:*")
    cache.invalidate("calendar:*")
    cache.invalidate("interviews:*")
