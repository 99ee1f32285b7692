"""
Calculation Cache

Time-boxed in-memory cache for team and company calculations, with
stale-while-revalidate reads and single-flight fetches.

Entry lifecycle: absent -> fresh -> stale -> expired -> absent (swept).
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from threading import RLock
from typing import Any, Awaitable, Callable, Hashable, Optional


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0          # 5 minutes for team/company analytics
ALERTS_TIMEOUT = 30.0            # alerts change faster
DEFAULT_STALE_THRESHOLD = 60.0
DEFAULT_SWEEP_INTERVAL = 300.0


class CacheState(Enum):
    """Where a key is in its lifecycle."""
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    expires_at: float


@dataclass
class CacheStats:
    """Counters since the cache was created."""
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    coalesced: int = 0
    background_refreshes: int = 0
    invalidations: int = 0
    swept: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) * 100 if total else 0.0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 1),
            "fetches": self.fetches,
            "coalesced": self.coalesced,
            "background_refreshes": self.background_refreshes,
            "invalidations": self.invalidations,
            "swept": self.swept,
            "size": self.size,
        }


def make_key(namespace: str, *parts: Any, **options: Any) -> str:
    """
    Build a deterministic cache key.

    Example:
        make_key("team_status", 3, date(2025, 8, 10), include_members=True)
        -> "team_status:3:2025-08-10:include_members=True"
    """
    def render(value: Any) -> str:
        if isinstance(value, date):
            return value.isoformat()
        return str(value)

    segments = [namespace] + [render(p) for p in parts]
    segments += [f"{k}={render(options[k])}" for k in sorted(options)]
    return ":".join(segments)


class CalculationCache:
    """
    In-memory cache with expiry, staleness and fetch coalescing.

    Construct one per application and pass it to the code that needs it.

    Usage:
        cache = CalculationCache(default_timeout=300, stale_threshold=60)
        status = await cache.get_or_fetch(
            make_key("team_status", team.id, today),
            lambda: resolver.team_status(team, today)
        )
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT,
        stale_threshold: float = DEFAULT_STALE_THRESHOLD,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        if default_timeout <= 0:
            raise ValueError(f"default_timeout must be positive, got {default_timeout}")
        self.default_timeout = default_timeout
        self.stale_threshold = stale_threshold
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = RLock()
        self._entries: dict[Hashable, CacheEntry] = {}
        self._in_flight: dict[Hashable, asyncio.Future] = {}
        self._background: set[asyncio.Task] = set()
        self._stats = CacheStats()

    def state(self, key: Hashable, stale_threshold: Optional[float] = None) -> CacheState:
        threshold = self.stale_threshold if stale_threshold is None else stale_threshold
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return CacheState.ABSENT
            now = self._clock()
            if now >= entry.expires_at:
                return CacheState.EXPIRED
            if now - entry.stored_at >= threshold:
                return CacheState.STALE
            return CacheState.FRESH

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() >= entry.expires_at:
                self._stats.misses += 1
                return None
            self._stats.hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any, timeout: Optional[float] = None) -> None:
        """Store ``value`` until ``timeout`` seconds from now."""
        timeout = self.default_timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=now, expires_at=now + timeout)

    def is_stale(self, key: Hashable, stale_threshold: Optional[float] = None) -> bool:
        """True when the entry is still live but older than the staleness window."""
        return self.state(key, stale_threshold) == CacheState.STALE

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            self._in_flight.pop(key, None)
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._stats.invalidations += 1
            return removed

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every string key starting with ``prefix``."""
        with self._lock:
            for k in [k for k in self._in_flight if isinstance(k, str) and k.startswith(prefix)]:
                del self._in_flight[k]
            keys = [k for k in self._entries if isinstance(k, str) and k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
            self._stats.invalidations += len(keys)
        if keys:
            logger.debug("Invalidated %d cache entries with prefix %r", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._in_flight.clear()
            self._stats.invalidations += len(self._entries)
            self._entries.clear()

    def sweep(self) -> int:
        """Remove expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in expired:
                del self._entries[k]
            self._stats.swept += len(expired)
        if expired:
            logger.debug("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            snapshot = replace(self._stats, size=len(self._entries))
        return snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get_or_fetch(
        self,
        key: Hashable,
        fetcher: Callable[[], Awaitable[Any]],
        timeout: Optional[float] = None,
        stale_threshold: Optional[float] = None,
        should_cache: Optional[Callable[[Any], bool]] = None
    ) -> Any:
        """
        Read through the cache.

        Fresh values are returned directly. Stale values are returned directly
        and one background refresh is started. Absent or expired keys are
        fetched once, with concurrent callers sharing that fetch.

        A fetched value is stored only when ``should_cache(value)`` is true
        (always when omitted) and the key was not invalidated while the fetch
        ran. Invalidating a key detaches its in-flight fetch, so later callers
        start a new one.
        """
        with self._lock:
            state = self.state(key, stale_threshold)
            if state in (CacheState.FRESH, CacheState.STALE):
                value = self._entries[key].value
                self._stats.hits += 1
                if state == CacheState.STALE:
                    self._refresh_in_background(key, fetcher, timeout, should_cache)
                return value
            self._stats.misses += 1
            future = self._start_fetch(key, fetcher, timeout, should_cache)

        return await asyncio.shield(future)

    def _start_fetch(
        self,
        key: Hashable,
        fetcher: Callable[[], Awaitable[Any]],
        timeout: Optional[float],
        should_cache: Optional[Callable[[Any], bool]]
    ) -> asyncio.Future:
        with self._lock:
            future = self._in_flight.get(key)
            if future is not None:
                self._stats.coalesced += 1
                logger.debug("Joining in-flight fetch for %r", key)
                return future

            self._stats.fetches += 1
            future = asyncio.ensure_future(self._fetch(key, fetcher, timeout, should_cache))
            self._in_flight[key] = future
            return future

    async def _fetch(
        self,
        key: Hashable,
        fetcher: Callable[[], Awaitable[Any]],
        timeout: Optional[float],
        should_cache: Optional[Callable[[Any], bool]]
    ) -> Any:
        task = asyncio.current_task()
        try:
            value = await fetcher()
            with self._lock:
                current = self._in_flight.get(key) is task
                if current and (should_cache is None or should_cache(value)):
                    self.set(key, value, timeout)
            return value
        finally:
            with self._lock:
                if self._in_flight.get(key) is task:
                    del self._in_flight[key]

    def _refresh_in_background(
        self,
        key: Hashable,
        fetcher: Callable[[], Awaitable[Any]],
        timeout: Optional[float],
        should_cache: Optional[Callable[[Any], bool]]
    ) -> None:
        with self._lock:
            if key in self._in_flight:
                return
            self._stats.background_refreshes += 1
            future = self._start_fetch(key, fetcher, timeout, should_cache)

        self._background.add(future)
        future.add_done_callback(self._background_done(key))

    def _background_done(self, key: Hashable):
        def callback(future: asyncio.Future) -> None:
            self._background.discard(future)
            if future.cancelled():
                return
            error = future.exception()
            if error is not None:
                logger.warning("Background refresh for %r failed, keeping stale value: %s", key, error)
        return callback

    async def wait_for_refreshes(self) -> None:
        """Wait until background refreshes started so far have settled."""
        pending = list(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def run_sweeper(self) -> None:
        """Sweep expired entries every ``sweep_interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()
