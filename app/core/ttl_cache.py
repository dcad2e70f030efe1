from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from time import monotonic
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Process-wide read cache with an injectable clock.

    Entries are served for at most ``ttl_seconds``. Concurrent misses for the
    same key compute once; a failing compute leaves the cache untouched.
    """

    def __init__(self, *, ttl_seconds: float, clock: Callable[[], float] = monotonic) -> None:
        self._ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, V]] = {}
        self._lock = asyncio.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def _lookup(self, key: Hashable) -> tuple[bool, V | None]:
        cached = self._entries.get(key)
        if cached is None:
            return False, None
        stored_at, value = cached
        if self._clock() - stored_at >= self._ttl_seconds:
            return False, None
        return True, value

    def get(self, key: Hashable) -> V | None:
        _, value = self._lookup(key)
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable | None = None) -> None:
        if key is None:
            self._entries.clear()
            return
        self._entries.pop(key, None)

    async def get_or_compute(self, key: Hashable, compute: Callable[[], Awaitable[V]]) -> V:
        hit, value = self._lookup(key)
        if hit:
            return value  # type: ignore[return-value]

        async with self._lock:
            hit, value = self._lookup(key)
            if hit:
                return value  # type: ignore[return-value]
            computed = await compute()
            self.set(key, computed)
            return computed
