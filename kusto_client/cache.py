"""Time-bounded memoization for directory lookups and endpoint resolution."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLUSTERS_NAMESPACE = "kusto_clusters"
CLUSTER_URI_NAMESPACE = "kusto_cluster_uri"


def cache_key(namespace: str, *parts: str | None) -> tuple[str, ...]:
    """
    Build a cache key from a namespace tag and scope parts.

    Absent parts (None or empty) are skipped, so a lookup without a tenant
    and one scoped to a tenant always land on different keys.
    """
    return (namespace, *(p for p in parts if p))


@dataclass
class ResolutionCache:
    """
    In-process cache with absolute expiry, checked on read.

    There is no eviction thread: expired entries are dropped the next time
    they are read. Misses are never stored.
    """
    clock: Callable[[], float] = time.monotonic

    _entries: dict[Hashable, tuple[Any, float]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def get(self, key: Hashable) -> Any | None:
        """Return the live value for ``key``, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any, ttl: float) -> None:
        """Store ``value`` until now + ``ttl`` seconds. A ttl <= 0 disables caching."""
        if ttl <= 0 or value is None:
            return
        with self._lock:
            self._entries[key] = (value, self.clock() + ttl)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def memoize(
    cache: ResolutionCache,
    key_of: Callable[..., Hashable],
    ttl: float,
    fetch: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """
    Wrap an async ``fetch`` so results are served from ``cache`` while live.

    Concurrent misses on the same key share one in-flight ``fetch``: every
    waiter gets its result, or its error.
    """
    in_flight: dict[Hashable, asyncio.Task] = {}

    async def load(key: Hashable, *args: Any, **kwargs: Any) -> T:
        value = await fetch(*args, **kwargs)
        cache.set(key, value, ttl)
        return value

    def forget(key: Hashable, task: asyncio.Task) -> None:
        if in_flight.get(key) is task:
            del in_flight[key]

    async def wrapper(*args: Any, **kwargs: Any) -> T:
        key = key_of(*args, **kwargs)
        cached = cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        task = in_flight.get(key)
        if task is None:
            task = asyncio.create_task(load(key, *args, **kwargs))
            in_flight[key] = task
            task.add_done_callback(lambda done, key=key: forget(key, done))
        else:
            logger.debug(f"Joining in-flight fetch for {key}")
        return await asyncio.shield(task)

    wrapper.__wrapped__ = fetch  # type: ignore[attr-defined]
    return wrapper
