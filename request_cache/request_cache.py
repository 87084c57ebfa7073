"""In-Memory Request Cache for Upstream Fetches

This module provides the request cache that sits between the analysis service
and its external collaborators (postcode resolver, weather provider). It
memoizes fetch results by key, expires them after a per data class TTL, bounds
its size with least-recently-used eviction and collapses concurrent fetches of
the same key into a single upstream call.

Core Components:
- EndpointKind: Data classes with distinct default TTLs
- CacheKey: (endpoint kind, location identifier, parameter set, date range | "current")
- CacheEntry: Stored value with insertion timestamp and TTL
- CacheStats: Hit, miss, shared wait, eviction and expiration counters
- RequestCache: The cache itself

Lookup Semantics of get_or_fetch():
1. A fresh entry is returned and marked most recently used
2. An expired entry is dropped and counted as expiration
3. A fetch already in flight for the key is awaited and its outcome shared
4. Otherwise the fetcher is started, and on success its result is stored

Failed fetches are never stored. Every caller waiting on a failed fetch sees
the same exception. A caller that is cancelled while waiting does not cancel
the shared fetch for the other callers.

Default TTLs:
- HISTORICAL: 24 hours (archive data is immutable)
- GEOCODE: 24 hours
- CURRENT: 10 minutes

Usage:
    cache = RequestCache(capacity=64)
    key = CacheKey(EndpointKind.CURRENT, location.identifier)
    data = await cache.get_or_fetch(key, lambda: provider.fetch_current(lat, lon))

The clock is injected (defaults to time.monotonic) so TTL behaviour can be
tested deterministically. The cache has no on-disk format and starts empty.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Tuple


class EndpointKind(str, Enum):
    HISTORICAL = "historical"
    CURRENT = "current"
    GEOCODE = "geocode"


DEFAULT_TTLS: Dict[EndpointKind, float] = {
    EndpointKind.HISTORICAL: 24 * 60 * 60,
    EndpointKind.CURRENT: 10 * 60,
    EndpointKind.GEOCODE: 24 * 60 * 60,
}


@dataclass(frozen=True)
class CacheKey:
    """Identity of one upstream request. Parameter order is irrelevant."""

    endpoint: EndpointKind
    location: str
    parameters: Tuple[str, ...] = ()
    date_range: Tuple[date, date] | None = None

    def __post_init__(self):
        object.__setattr__(self, "parameters", tuple(sorted(self.parameters)))

    @property
    def period(self) -> str:
        if self.date_range is None:
            return "current"
        return f"{self.date_range[0]}:{self.date_range[1]}"

    def __str__(self) -> str:
        return f"{self.endpoint.value}:{self.location}:{','.join(self.parameters)}:{self.period}"


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    inserted_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.inserted_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl


@dataclass(frozen=True)
class CacheStats:
    size: int
    capacity: int
    in_flight: int
    hits: int
    misses: int
    shared: int
    evictions: int
    expirations: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses + self.shared
        return (self.hits + self.shared) / lookups if lookups else 0.0


class RequestCache:
    """Capacity-bounded LRU cache with TTL and in-flight request sharing.

    Attributes:
        capacity (int): Maximum number of stored entries.
        ttls (Dict[EndpointKind, float]): TTL in seconds per endpoint kind.
        clock (Callable[[], float]): Monotonic time source in seconds.
    """

    def __init__(
        self,
        capacity: int = 64,
        ttls: Dict[EndpointKind, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not isinstance(capacity, int) or capacity < 1:
            raise ValueError(f"Parameter capacity must be an int >0. Got {capacity}")

        self.capacity = capacity
        self.ttls = dict(DEFAULT_TTLS)
        if ttls:
            self.ttls.update(ttls)
        self.clock = clock

        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._in_flight: Dict[CacheKey, asyncio.Future] = {}

        self._hits = 0
        self._misses = 0
        self._shared = 0
        self._evictions = 0
        self._expirations = 0

        self.logger = logging.getLogger(name=self.__class__.__name__)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_fresh(self.clock())

    async def get_or_fetch(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """Return the cached value for key, fetching it at most once.

        Args:
            key (CacheKey): Request identity.
            fetcher (Callable[[], Awaitable[Any]]): Zero-argument coroutine
                function performing the upstream request.
            ttl (float | None): TTL override in seconds. Defaults to the TTL of
                the key's endpoint kind.

        Returns:
            Any: Cached or freshly fetched value.

        Raises:
            Exception: Whatever the fetcher raised. Failures are not cached.
        """
        entry = self._entries.get(key)
        if entry is not None:
            if entry.is_fresh(self.clock()):
                self._entries.move_to_end(key)
                self._hits += 1
                return entry.value

            del self._entries[key]
            self._expirations += 1
            self.logger.info(f"Cache entry expired: {key}")

        task = self._in_flight.get(key)
        if task is not None:
            self._shared += 1
            return await asyncio.shield(task)

        self._misses += 1
        task = asyncio.ensure_future(fetcher())
        self._in_flight[key] = task
        # registered before any waiter so the value is stored before waiters resume
        task.add_done_callback(
            partial(self._settle, key, ttl if ttl is not None else self.ttls[key.endpoint])
        )
        return await asyncio.shield(task)

    def _settle(self, key: CacheKey, ttl: float, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

        if task.cancelled():
            self.logger.info(f"Fetch cancelled: {key}")
            return
        if task.exception() is not None:
            self.logger.info(f"Fetch failed, not cached: {key} ({task.exception()!r})")
            return

        self._entries[key] = CacheEntry(task.result(), self.clock(), ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            self.logger.info(f"Evicted least recently used entry: {evicted}")

    def invalidate(self, key: CacheKey) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop all stored entries. Fetches in flight are unaffected."""
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop all expired entries and return how many were dropped."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        self._expirations += len(expired)
        return len(expired)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            capacity=self.capacity,
            in_flight=len(self._in_flight),
            hits=self._hits,
            misses=self._misses,
            shared=self._shared,
            evictions=self._evictions,
            expirations=self._expirations,
        )
