"""Timeout and backoff helpers for outbound provider requests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import random
from typing import Awaitable, Callable, TypeVar

from concertsync.config import ExternalCallPolicy

T = TypeVar("T")


@dataclass(frozen=True)
class RetryDirective:
    """Instruction returned from ``classify_err`` for ``with_retry``."""

    retry: bool
    delay_override_ms: int | None = None
    error: Exception | None = None


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    attempts: int
    base_ms: int
    jitter_pct: int
    timeout_ms: int | None

    @classmethod
    def from_external(cls, policy: ExternalCallPolicy) -> RetryPolicy:
        return cls(
            attempts=max(1, policy.retry_max + 1),
            base_ms=max(1, policy.backoff_base_ms),
            jitter_pct=max(0, policy.jitter_pct),
            timeout_ms=max(100, policy.timeout_ms),
        )


AsyncFactory = Callable[[], Awaitable[T]]
Classifier = Callable[[Exception], RetryDirective | bool]


def exp_backoff_delays(base_ms: int, max_attempts: int) -> list[int]:
    """Return the nominal exponential backoff delays in milliseconds."""

    base = max(1, int(base_ms))
    return [base * (2**index) for index in range(max(0, int(max_attempts)))]


def _resolve_directive(result: RetryDirective | bool, error: Exception) -> RetryDirective:
    if isinstance(result, RetryDirective):
        return RetryDirective(
            retry=bool(result.retry),
            delay_override_ms=(
                max(0, int(result.delay_override_ms))
                if result.delay_override_ms is not None
                else None
            ),
            error=result.error if result.error is not None else error,
        )
    if isinstance(result, bool):
        return RetryDirective(retry=result, error=error)
    raise TypeError("classify_err must return a boolean or RetryDirective")


def _jitter_delay_ms(delay_ms: int, jitter_pct: int) -> float:
    delay = max(0, int(delay_ms))
    pct = max(0, int(jitter_pct))
    if delay <= 0 or pct <= 0:
        return float(delay)
    jitter = delay * pct / 100.0
    return random.uniform(max(0.0, delay - jitter), delay + jitter)


async def with_retry(
    async_fn: AsyncFactory[T],
    *,
    policy: RetryPolicy,
    classify_err: Classifier,
) -> T:
    """Run ``async_fn`` under a per-attempt timeout, retrying classified errors.

    Each attempt is bounded by ``policy.timeout_ms`` so a hung request cannot
    stall a whole import batch. ``classify_err`` decides whether an error is
    retried and may substitute a normalised exception.
    """

    attempts = max(1, int(policy.attempts))
    delays = exp_backoff_delays(policy.base_ms, attempts)
    timeout = policy.timeout_ms

    for attempt in range(1, attempts + 1):
        try:
            call = async_fn()
            if timeout is not None and timeout > 0:
                return await asyncio.wait_for(call, timeout / 1000.0)
            return await call
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            directive = _resolve_directive(classify_err(exc), exc)
            if not (directive.retry and attempt < attempts):
                if directive.error is exc:
                    raise
                raise directive.error from exc

            delay_ms = directive.delay_override_ms
            if delay_ms is None:
                delay_ms = delays[attempt - 1]
            jittered_ms = _jitter_delay_ms(delay_ms, policy.jitter_pct)
            if jittered_ms > 0:
                await asyncio.sleep(jittered_ms / 1000.0)
    raise RuntimeError("Retry loop exited unexpectedly")


__all__ = [
    "RetryDirective",
    "RetryPolicy",
    "exp_backoff_delays",
    "with_retry",
]
