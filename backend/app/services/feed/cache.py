"""
In-memory read-through cache with stale-while-revalidate.

Per key, by age of the stored entry:
- Empty:   get() calls the fetcher synchronously; errors propagate.
- Fresh:   age < ttl, served without calling the fetcher.
- Stale:   ttl <= age < stale_time, served immediately; one background revalidation is queued
           (never more than one in flight per key). A failed revalidation keeps the old entry.
- Expired: age >= stale_time, get() fetches synchronously; on failure the old entry is served
           as a last resort.

invalidate() bumps a per-key epoch and invalidate_all() a cache-wide generation; a fetch that
started before either cannot store its (older) result afterwards.
"""
import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable

from app.core.constants import (
    CACHE_KEY_FEED,
    CACHE_KEY_PRICES,
    FEED_CACHE_STALE_SECONDS,
    FEED_CACHE_TTL_SECONDS,
    PRICES_CACHE_STALE_SECONDS,
    PRICES_CACHE_TTL_SECONDS,
)
from app.services.feed.snapshot import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachePolicy:
    ttl: float
    stale_time: float


FEED_POLICY = CachePolicy(ttl=FEED_CACHE_TTL_SECONDS, stale_time=FEED_CACHE_STALE_SECONDS)
PRICES_POLICY = CachePolicy(ttl=PRICES_CACHE_TTL_SECONDS, stale_time=PRICES_CACHE_STALE_SECONDS)


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float
    stale_time: float


class JsonCache:
    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        executor: Executor | None = None,
    ) -> None:
        self._clock = clock
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="json-cache")
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._epochs: dict[str, int] = {}
        self._generation = 0
        self._revalidating: set[str] = set()

    def get(
        self,
        key: str,
        fetcher: Callable[[], Any],
        ttl: float = FEED_CACHE_TTL_SECONDS,
        stale_time: float = FEED_CACHE_STALE_SECONDS,
        stale_while_revalidate: bool = True,
    ) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            epoch = self._epoch(key)
        if entry is None:
            return self._fetch_and_store(key, fetcher, ttl, stale_time, epoch)

        age = self._clock() - entry.stored_at
        if age < ttl:
            return entry.value
        if age < stale_time and stale_while_revalidate:
            self._schedule_revalidation(key, fetcher, ttl, stale_time, epoch)
            return entry.value
        try:
            return self._fetch_and_store(key, fetcher, ttl, stale_time, epoch)
        except Exception as e:
            logger.warning("Cache %s: refresh failed, serving entry aged %.0fs: %s", key, age, e)
            return entry.value

    def _fetch_and_store(self, key: str, fetcher: Callable[[], Any], ttl: float, stale_time: float, epoch: tuple[int, int]) -> Any:
        value = fetcher()
        self._store(key, value, ttl, stale_time, epoch)
        return value

    def _epoch(self, key: str) -> tuple[int, int]:
        # caller holds self._lock
        return self._generation, self._epochs.get(key, 0)

    def _store(self, key: str, value: Any, ttl: float, stale_time: float, epoch: tuple[int, int]) -> bool:
        with self._lock:
            if self._epoch(key) != epoch:
                logger.debug("Cache %s: dropping result fetched before invalidation", key)
                return False
            self._entries[key] = CacheEntry(value, self._clock(), ttl, stale_time)
            return True

    def _schedule_revalidation(self, key: str, fetcher: Callable[[], Any], ttl: float, stale_time: float, epoch: tuple[int, int]) -> None:
        with self._lock:
            if key in self._revalidating:
                return
            self._revalidating.add(key)
        try:
            self._executor.submit(self._revalidate, key, fetcher, ttl, stale_time, epoch)
        except RuntimeError as e:
            # executor shut down (app stopping): keep serving the stale entry
            logger.debug("Cache %s: revalidation not scheduled: %s", key, e)
            with self._lock:
                self._revalidating.discard(key)

    def _revalidate(self, key: str, fetcher: Callable[[], Any], ttl: float, stale_time: float, epoch: tuple[int, int]) -> None:
        try:
            self._fetch_and_store(key, fetcher, ttl, stale_time, epoch)
            logger.debug("Cache %s: revalidated", key)
        except Exception as e:
            logger.warning("Cache %s: background revalidation failed, keeping stale entry: %s", key, e)
        finally:
            with self._lock:
                self._revalidating.discard(key)

    def set(self, key: str, value: Any, ttl: float = FEED_CACHE_TTL_SECONDS, stale_time: float = FEED_CACHE_STALE_SECONDS) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock(), ttl, stale_time)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._epochs[key] = self._epochs.get(key, 0) + 1

    def invalidate_all(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()

    def status(self, key: str) -> dict[str, Any]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return {"exists": False, "age": None, "isStale": False}
        age = self._clock() - entry.stored_at
        return {"exists": True, "age": round(age, 3), "isStale": age >= entry.ttl}

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)


def get_cached_feed(cache: JsonCache, store: SnapshotStore, policy: CachePolicy = FEED_POLICY) -> dict:
    return cache.get(CACHE_KEY_FEED, store.load, ttl=policy.ttl, stale_time=policy.stale_time)


def get_cached_prices(cache: JsonCache, store: SnapshotStore, policy: CachePolicy = PRICES_POLICY) -> dict:
    return cache.get(
        CACHE_KEY_PRICES,
        lambda: store.load().get("prices") or {},
        ttl=policy.ttl,
        stale_time=policy.stale_time,
    )
