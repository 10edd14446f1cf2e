"""In-process request budgets per provider key."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from concertsync.utils.time import epoch_ms

Clock = Callable[[], int]


@dataclass(slots=True)
class RateLimitWindow:
    count: int
    reset_at_ms: int


class RateLimitStore(Protocol):
    async def increment_if_below(
        self, key: str, max_requests: int, window_ms: int, now_ms: int
    ) -> bool: ...


class InMemoryRateLimitStore:
    """Lock-guarded window map holding at most ``max_keys`` windows.

    A new key arriving at capacity first drops expired windows, then the window
    closest to its reset.
    """

    def __init__(self, *, max_keys: int = 10_000) -> None:
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = asyncio.Lock()
        self._max_keys = max(1, max_keys)

    async def increment_if_below(
        self, key: str, max_requests: int, window_ms: int, now_ms: int
    ) -> bool:
        async with self._lock:
            window = self._windows.get(key)
            if window is None or now_ms > window.reset_at_ms:
                if window is None and len(self._windows) >= self._max_keys:
                    self._evict_expired(now_ms)
                    if len(self._windows) >= self._max_keys:
                        self._evict_soonest_reset()
                self._windows[key] = RateLimitWindow(count=1, reset_at_ms=now_ms + window_ms)
                return True
            if window.count >= max_requests:
                return False
            window.count += 1
            return True

    async def peek(self, key: str) -> RateLimitWindow | None:
        async with self._lock:
            window = self._windows.get(key)
            if window is None:
                return None
            return RateLimitWindow(count=window.count, reset_at_ms=window.reset_at_ms)

    def _evict_expired(self, now_ms: int) -> None:
        expired = [key for key, window in self._windows.items() if now_ms > window.reset_at_ms]
        for key in expired:
            del self._windows[key]

    def _evict_soonest_reset(self) -> None:
        key = min(self._windows, key=lambda name: self._windows[name].reset_at_ms)
        del self._windows[key]


class RateLimiter:
    """Best-effort throttle; not a distributed limiter."""

    def __init__(
        self,
        *,
        store: RateLimitStore | None = None,
        clock: Clock = epoch_ms,
    ) -> None:
        self._store: RateLimitStore = store or InMemoryRateLimitStore()
        self._clock = clock

    async def check_limit(self, key: str, max_requests: int, window_ms: int) -> bool:
        """Consume one request from ``key``'s budget, returning False when exhausted."""

        return await self._store.increment_if_below(
            key, max(1, int(max_requests)), max(1, int(window_ms)), self._clock()
        )

    async def delay(self, ms: int) -> None:
        if ms > 0:
            await asyncio.sleep(ms / 1000.0)


__all__ = ["InMemoryRateLimitStore", "RateLimitStore", "RateLimitWindow", "RateLimiter"]
