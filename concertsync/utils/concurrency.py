"""Bounded fan-out used by batch imports, ingest folds and score writes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

__all__ = ["Settled", "gather_bounded"]

I = TypeVar("I")
T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Settled(Generic[I, T]):
    """Outcome of one task in a bounded batch."""

    item: I
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_bounded(
    items: Sequence[I],
    func: Callable[[I], Awaitable[T]],
    *,
    limit: int,
) -> list[Settled[I, T]]:
    """Run ``func`` for every item with at most ``limit`` in flight.

    All tasks are joined; the returned list holds one entry per input item in
    input order, each carrying either the value or the raised exception.
    """

    semaphore = asyncio.Semaphore(max(1, int(limit)))

    async def _run(item: I) -> T:
        async with semaphore:
            return await func(item)

    gathered = await asyncio.gather(*(_run(item) for item in items), return_exceptions=True)
    results: list[Settled[I, T]] = []
    for item, outcome in zip(items, gathered):
        if isinstance(outcome, Exception):
            results.append(Settled(item=item, error=outcome))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results.append(Settled(item=item, value=outcome))
    return results
