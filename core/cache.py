"""
Single-flight TTL cache

Key -> value store with per-entry expiry. Concurrent loads of the same key
share one in-flight task. Used by the market and token resolvers.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TtlCache(Generic[T]):
    """
    TTL cache with in-flight request coalescing.

    None is a legal cached value (negative result); use MISSING as the
    default of get() to tell it apart from an absent key.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._store: Dict[str, CacheEntry[T]] = {}
        self._inflight: Dict[str, "asyncio.Task[T]"] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default if absent or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return default
            if entry.expires_at <= self._clock():
                del self._store[key]
                return default
            return entry.value

    def set(self, key: str, value: T, ttl: float) -> T:
        expires_at = self._clock() + max(0.0, ttl)
        with self._lock:
            self._store[key] = CacheEntry(value=value, expires_at=expires_at)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def cleanup(self) -> int:
        """Purge expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._store.items() if e.expires_at <= now]
            for key in expired:
                del self._store[key]
        return len(expired)

    def __len__(self) -> int:
        self.cleanup()
        return len(self._store)

    def is_loading(self, key: str) -> bool:
        return key in self._inflight

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: float,
        negative_ttl: Optional[float] = None,
    ) -> T:
        """
        Return the cached value or run loader once for all concurrent callers.

        Args:
            key: Cache key
            loader: Coroutine factory producing the value
            ttl: Seconds to keep a found value
            negative_ttl: Seconds to keep a None result (defaults to ttl)

        Raises:
            Whatever loader raises. Nothing is cached and the in-flight
            marker is cleared, so the next call retries.
        """
        cached = self.get(key, MISSING)
        if cached is not MISSING:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader, ttl, negative_ttl))
            task.add_done_callback(_consume_exception)
            self._inflight[key] = task

        return await asyncio.shield(task)

    async def _load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: float,
        negative_ttl: Optional[float],
    ) -> T:
        try:
            value = await loader()
        finally:
            self._inflight.pop(key, None)

        effective_ttl = negative_ttl if value is None and negative_ttl is not None else ttl
        self.set(key, value, effective_ttl)
        return value


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # every waiter may have been cancelled; keep asyncio from warning about it
    if not task.cancelled():
        task.exception()
