from __future__ import annotations

import pytest

from concertsync.utils.rate_limiter import InMemoryRateLimitStore, RateLimiter


class _Clock:
    def __init__(self) -> None:
        self.now = 10_000

    def __call__(self) -> int:
        return self.now


@pytest.mark.asyncio
async def test_first_max_calls_are_allowed_then_rejected() -> None:
    limiter = RateLimiter(clock=_Clock())

    results = [await limiter.check_limit("provider:setlistfm", 2, 1_000) for _ in range(4)]

    assert results == [True, True, False, False]


@pytest.mark.asyncio
async def test_window_resets_after_expiry() -> None:
    clock = _Clock()
    limiter = RateLimiter(clock=clock)
    assert await limiter.check_limit("key", 1, 1_000)
    assert not await limiter.check_limit("key", 1, 1_000)

    clock.now += 1_001

    assert await limiter.check_limit("key", 1, 1_000)


@pytest.mark.asyncio
async def test_keys_have_independent_budgets() -> None:
    store = InMemoryRateLimitStore()
    limiter = RateLimiter(store=store, clock=_Clock())

    assert await limiter.check_limit("provider:spotify", 1, 60_000)
    assert await limiter.check_limit("provider:ticketmaster", 1, 60_000)
    assert not await limiter.check_limit("provider:spotify", 1, 60_000)

    window = await store.peek("provider:spotify")
    assert window is not None
    assert window.count == 1


@pytest.mark.asyncio
async def test_expired_windows_are_evicted_when_store_is_full() -> None:
    clock = _Clock()
    store = InMemoryRateLimitStore(max_keys=1)
    limiter = RateLimiter(store=store, clock=clock)
    await limiter.check_limit("old", 1, 10)
    clock.now += 100

    assert await limiter.check_limit("new", 1, 10)
    assert await store.peek("old") is None


@pytest.mark.asyncio
async def test_live_windows_never_exceed_max_keys() -> None:
    clock = _Clock()
    store = InMemoryRateLimitStore(max_keys=2)
    limiter = RateLimiter(store=store, clock=clock)
    await limiter.check_limit("first", 1, 60_000)
    clock.now += 10
    await limiter.check_limit("second", 1, 60_000)
    clock.now += 10

    assert await limiter.check_limit("third", 1, 60_000)

    assert await store.peek("first") is None
    assert await store.peek("second") is not None
    assert await store.peek("third") is not None
