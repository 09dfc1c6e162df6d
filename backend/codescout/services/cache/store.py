from __future__ import annotations

"""backend/codescout/services/cache/store.py

In-memory result cache for CLI-backed operations.

Responsibilities:
- Build stable cache keys from (category, params)
- Memoize successful Results with a per-category TTL
- Never store error Results
- Bound the number of entries (oldest evicted first)
- Sweep expired entries periodically
- Track hit/miss/set counters for observability

The store is an explicit object; callers construct one and inject it
where needed. There is no module-level instance.
"""

import asyncio
import hashlib
import json
import logging
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Mapping

from codescout.services.tools.base import Result

logger = logging.getLogger(__name__)

CACHE_KEY_VERSION = "v1"
DEFAULT_CATEGORY = "default"
DEFAULT_TTL_SECONDS = 86400

_PREFIX_RE = re.compile(r"^v\d+-([^:]+):")

Producer = Callable[[], Awaitable[Result]]


def _stable(value: Any) -> Any:
    """Recursively sort mapping keys so serialization is order-independent."""
    if isinstance(value, Mapping):
        return {str(k): _stable(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [_stable(v) for v in value]
    return value


def generate_cache_key(category: str, params: Any) -> str:
    """Return ``"v1-<category>:<md5>"`` for the given params."""
    serialized = json.dumps(
        _stable(params), sort_keys=True, separators=(",", ":"), default=str
    )
    digest = hashlib.md5(serialized.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_VERSION}-{category}:{digest}"


def category_from_key(key: str) -> str:
    match = _PREFIX_RE.match(key)
    return match.group(1) if match else DEFAULT_CATEGORY


@dataclass
class CacheEntry:
    key: str
    value: Result
    inserted_at: float
    ttl_seconds: int

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl_seconds


@dataclass(frozen=True)
class CacheStats:
    """Read-only snapshot of cache counters."""

    hits: int
    misses: int
    sets: int
    total_keys: int
    last_reset: datetime

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) * 100 if total else 0.0

    @property
    def cache_size(self) -> int:
        return self.total_keys

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "total_keys": self.total_keys,
            "last_reset": self.last_reset.isoformat(),
            "hit_rate": self.hit_rate,
            "cache_size": self.cache_size,
        }


class _ProducerCancelled(Exception):
    """The caller running a shared producer was cancelled before it finished."""


class CacheStore:
    """Memoize successful Results keyed by :func:`generate_cache_key`."""

    def __init__(
        self,
        ttl_table: Mapping[str, int] | None = None,
        *,
        max_entries: int = 1000,
        sweep_interval_seconds: float = 3600,
        coalesce: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_table: Dict[str, int] = dict(ttl_table or {})
        self.max_entries = max_entries
        self.sweep_interval_seconds = sweep_interval_seconds
        self.coalesce = coalesce
        self._clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._inflight: Dict[str, asyncio.Future[Result]] = {}
        self._sweeper: asyncio.Task[None] | None = None

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._last_reset = datetime.utcnow()

    @classmethod
    def from_settings(cls, settings: Any) -> "CacheStore":
        return cls(
            settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
            sweep_interval_seconds=settings.cache_sweep_interval_seconds,
            coalesce=settings.cache_coalesce_inflight,
        )

    # ---- TTL policy ----

    def ttl_for_key(self, key: str) -> int:
        category = category_from_key(key)
        if category in self.ttl_table:
            return self.ttl_table[category]
        return self.ttl_table.get(DEFAULT_CATEGORY, DEFAULT_TTL_SECONDS)

    # ---- Raw access ----

    def get(self, key: str) -> Result | None:
        """Return the live value for ``key`` without touching counters."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Result, ttl: int | None = None) -> bool:
        """Store ``value`` unless it is an error Result."""
        if value.is_error:
            return False
        ttl_seconds = ttl if ttl is not None else self.ttl_for_key(key)
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=self._clock(),
                ttl_seconds=ttl_seconds,
            )
            self._sets += 1
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted)
        return True

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ---- Memoization ----

    async def wrap(
        self,
        key: str,
        producer: Producer,
        *,
        ttl: int | None = None,
        force_refresh: bool = False,
        skip_cache: bool = False,
    ) -> Result:
        if skip_cache:
            return await producer()

        if not force_refresh:
            cached = self.get(key)
            if cached is not None:
                with self._lock:
                    self._hits += 1
                return cached

        with self._lock:
            self._misses += 1

        if self.coalesce:
            return await self._produce_coalesced(key, producer, ttl)

        result = await producer()
        self.set(key, result, ttl)
        return result

    async def _produce_coalesced(
        self, key: str, producer: Producer, ttl: int | None
    ) -> Result:
        pending = self._inflight.get(key)
        while pending is not None:
            try:
                return await asyncio.shield(pending)
            except _ProducerCancelled:
                # Owner went away; the first waiter to resume runs the producer.
                pending = self._inflight.get(key)

        future: asyncio.Future[Result] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await producer()
        except asyncio.CancelledError:
            self._fail_waiters(future, _ProducerCancelled(key))
            raise
        except Exception as exc:
            self._fail_waiters(future, exc)
            raise
        else:
            self.set(key, result, ttl)
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    @staticmethod
    def _fail_waiters(future: asyncio.Future[Result], exc: BaseException) -> None:
        future.set_exception(exc)
        # Mark retrieved so an unawaited future does not log a warning.
        future.exception()

    # ---- Maintenance ----

    def sweep_expired(self) -> int:
        """Drop every expired entry; return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep_expired()

    def start_sweeper(self) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    def clear_all(self) -> None:
        """Flush every entry and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._sets = 0
            self._last_reset = datetime.utcnow()
        logger.info("Cache flushed")

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                total_keys=len(self._entries),
                last_reset=self._last_reset,
            )
