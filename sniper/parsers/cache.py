"""Bounded LRU cache with per-entry TTL, plus in-flight request coalescing.

One class serves three key spaces in the sniper:
- event dedup ids (txHash:logIndex:address, ~30 min)
- social lookup results (address / username / handle, 10 min found, 1 min not-found)
- spam-counted token addresses (24h window)
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """LRU cache where every entry also carries its own expiry.

    Both get() and set() move a key to the most-recently-used end.
    Expired entries are evicted lazily on access, or eagerly via prune().
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_sec: float = 3600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._data: OrderedDict[K, _Entry[V]] = OrderedDict()
        self._max_size = max_size
        self._ttl_sec = ttl_sec
        self._clock = clock

    def get(self, key: K, default: V | None = None) -> V | None:
        entry = self._data.get(key)
        if entry is None:
            return default
        if self._clock() >= entry.expires_at:
            del self._data[key]
            return default
        self._data.move_to_end(key)
        return entry.value

    def lookup(self, key: K) -> tuple[bool, V | None]:
        """Like get(), but distinguishes a cached None from a miss."""
        value = self.get(key, _MISSING)  # type: ignore[arg-type]
        if value is _MISSING:
            return False, None
        return True, value

    def set(self, key: K, value: V, ttl_sec: float | None = None) -> None:
        if key in self._data:
            del self._data[key]
        while len(self._data) >= self._max_size:
            self._data.popitem(last=False)
        ttl = self._ttl_sec if ttl_sec is None else ttl_sec
        self._data[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    def has(self, key: K) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        if self._clock() >= entry.expires_at:
            del self._data[key]
            return False
        return True

    def delete(self, key: K) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> None:
        self._data.clear()

    def prune(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._data.items() if now >= e.expires_at]
        for key in expired:
            del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._data.keys()))

    def stats(self) -> dict[str, float]:
        return {"size": len(self._data), "max_size": self._max_size, "ttl_sec": self._ttl_sec}


class InFlight(Generic[K, V]):
    """Coalesces concurrent lookups for the same key onto one task.

    The task is dropped from the map as soon as it completes, so no TTL is
    needed. Callers that time out keep the shared task running (shield),
    which still populates whatever cache the fetch function writes to.
    """

    def __init__(self) -> None:
        self._tasks: dict[K, asyncio.Task[V]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def get_or_start(self, key: K, factory: Callable[[], Awaitable[V]]) -> asyncio.Task[V]:
        task = self._tasks.get(key)
        if task is not None:
            return task

        async def _run() -> V:
            return await factory()

        task = asyncio.ensure_future(_run())
        self._tasks[key] = task
        task.add_done_callback(lambda _t, k=key: self._tasks.pop(k, None))
        return task

    async def run(
        self,
        key: K,
        factory: Callable[[], Awaitable[V]],
        *,
        timeout: float | None = None,
        on_timeout: V | None = None,
    ) -> V | None:
        task = self.get_or_start(key, factory)
        if timeout is None or timeout <= 0:
            return await asyncio.shield(task)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError:
            return on_timeout
