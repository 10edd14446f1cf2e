"""Wrap every outbound provider call in its rate budget and circuit breaker."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from time import perf_counter
from typing import TypeVar

from concertsync.config import RateLimitPolicy, Settings
from concertsync.integrations.contracts import (
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitedError,
    ProviderValidationError,
)
from concertsync.logging import get_logger
from concertsync.logging_events import log_event
from concertsync.utils.circuit_breaker import (
    CircuitBreakerMetrics,
    CircuitBreakerRegistry,
    CircuitOpenError,
)
from concertsync.utils.metrics import counter, histogram
from concertsync.utils.rate_limiter import RateLimiter

logger = get_logger(__name__)

T = TypeVar("T")

_COMPONENT = "integrations.provider_guard"


def trips_breaker(exc: Exception) -> bool:
    """Only dependency-side failures count towards opening a breaker."""

    return not isinstance(exc, (ProviderNotFoundError, ProviderValidationError))


class ProviderGuard:
    """Apply the request budget, then the breaker, to one provider operation."""

    def __init__(
        self,
        *,
        breakers: CircuitBreakerRegistry,
        limiter: RateLimiter,
        rate_limits: Mapping[str, RateLimitPolicy] | None = None,
    ) -> None:
        self._breakers = breakers
        self._limiter = limiter
        self._rate_limits = {name.lower(): policy for name, policy in (rate_limits or {}).items()}

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    async def call(
        self,
        provider: str,
        operation: str,
        func: Callable[[], Awaitable[T]],
        *,
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        name = provider.lower()
        policy = self._rate_limits.get(name)
        if policy is not None:
            allowed = await self._limiter.check_limit(
                f"provider:{name}", policy.max_requests, policy.window_ms
            )
            if not allowed:
                self._record(name, operation, "throttled", 0)
                raise ProviderRateLimitedError(
                    name,
                    f"{name} request budget exhausted",
                    retry_after_ms=policy.window_ms,
                )

        breaker = self._breakers.get(name)
        started = perf_counter()
        try:
            result = await breaker.execute(func, fallback)
        except CircuitOpenError:
            self._record(name, operation, "rejected", 0)
            raise
        except ProviderError as exc:
            self._record(
                name,
                operation,
                "error",
                int((perf_counter() - started) * 1000),
                error=type(exc).__name__,
                status_code=exc.status_code,
            )
            raise
        self._record(name, operation, "ok", int((perf_counter() - started) * 1000))
        return result

    async def delay(self, ms: int) -> None:
        await self._limiter.delay(ms)

    async def metrics(self) -> list[CircuitBreakerMetrics]:
        return await self._breakers.metrics()

    def _record(
        self,
        provider: str,
        operation: str,
        status: str,
        duration_ms: int,
        *,
        error: str | None = None,
        status_code: int | None = None,
    ) -> None:
        counter(
            "concertsync_provider_calls_total",
            "Outbound provider calls by outcome",
            label_names=("provider", "operation", "status"),
        ).labels(provider=provider, operation=operation, status=status).inc()
        if status in {"ok", "error"}:
            histogram(
                "concertsync_provider_call_seconds",
                "Outbound provider call latency",
                label_names=("provider",),
            ).labels(provider=provider).observe(duration_ms / 1000.0)
        fields: dict[str, object] = {
            "component": _COMPONENT,
            "dependency": provider,
            "operation": operation,
            "status": status,
            "duration_ms": duration_ms,
        }
        if error is not None:
            fields["error"] = error
        if status_code is not None:
            fields["status_code"] = status_code
        log_event(logger, "provider.call", **fields)


def build_provider_guard(settings: Settings) -> ProviderGuard:
    registry = CircuitBreakerRegistry(settings.breakers, is_failure=trips_breaker)
    return ProviderGuard(
        breakers=registry,
        limiter=RateLimiter(),
        rate_limits=settings.rate_limits,
    )


__all__ = ["ProviderGuard", "build_provider_guard", "trips_breaker"]
