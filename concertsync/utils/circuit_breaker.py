"""Per-dependency circuit breakers guarding outbound provider calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol, TypeVar

from concertsync.config import BreakerPolicy
from concertsync.logging import get_logger
from concertsync.logging_events import log_event
from concertsync.utils.metrics import counter, gauge
from concertsync.utils.time import epoch_ms

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Clock = Callable[[], int]
FailurePredicate = Callable[[Exception], bool]


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


_STATE_VALUES = {CircuitState.CLOSED: 0, CircuitState.HALF_OPEN: 1, CircuitState.OPEN: 2}


class CircuitOpenError(RuntimeError):
    """Raised when a call is rejected because the breaker is open."""

    def __init__(self, name: str, *, retry_after_ms: int | None = None) -> None:
        super().__init__(f"Circuit breaker {name} is OPEN")
        self.name = name
        self.provider = name
        self.retry_after_ms = retry_after_ms


@dataclass(slots=True)
class BreakerRecord:
    """Mutable counters for one dependency; only touched inside a store transaction."""

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    window_started_ms: int = 0
    opened_at_ms: int | None = None
    half_open_inflight: int = 0
    half_open_successes: int = 0


@dataclass(slots=True, frozen=True)
class CircuitBreakerMetrics:
    name: str
    state: CircuitState
    failure_count: int
    half_open_count: int
    open_since: int | None

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failureCount": self.failure_count,
            "halfOpenCount": self.half_open_count,
            "openSince": self.open_since,
        }


class BreakerStateStore(Protocol):
    async def transact(self, name: str, mutate: Callable[[BreakerRecord], R]) -> R: ...

    async def snapshot(self, name: str) -> BreakerRecord: ...


class InMemoryBreakerStore:
    """Lock-guarded map of breaker records for a single process."""

    def __init__(self) -> None:
        self._records: dict[str, BreakerRecord] = {}
        self._lock = asyncio.Lock()

    async def transact(self, name: str, mutate: Callable[[BreakerRecord], R]) -> R:
        async with self._lock:
            record = self._records.get(name)
            if record is None:
                record = BreakerRecord()
                self._records[name] = record
            return mutate(record)

    async def snapshot(self, name: str) -> BreakerRecord:
        async with self._lock:
            record = self._records.get(name)
            return replace(record) if record is not None else BreakerRecord()


def _trip_on_any(exc: Exception) -> bool:
    return True


class _Admission(Enum):
    NORMAL = "normal"
    TRIAL = "trial"
    REJECT = "reject"


class CircuitBreaker:
    """CLOSED/OPEN/HALF_OPEN state machine for one named dependency.

    The breaker only decides whether a call may run; it never retries.
    ``policy.half_open_requests`` bounds the trial calls admitted while
    HALF_OPEN and is also the number of trial successes that close it.
    """

    def __init__(
        self,
        name: str,
        policy: BreakerPolicy,
        *,
        store: BreakerStateStore | None = None,
        clock: Clock = epoch_ms,
        is_failure: FailurePredicate = _trip_on_any,
    ) -> None:
        self.name = name
        self.policy = policy
        self._store: BreakerStateStore = store or InMemoryBreakerStore()
        self._clock = clock
        self._is_failure = is_failure

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        now = self._clock()
        admission, retry_after_ms = await self._store.transact(
            self.name, lambda record: self._admit(record, now)
        )
        if admission is _Admission.REJECT:
            if fallback is not None:
                return await fallback()
            raise CircuitOpenError(self.name, retry_after_ms=retry_after_ms)

        trial = admission is _Admission.TRIAL
        try:
            result = await operation()
        except asyncio.CancelledError:
            if trial:
                await self._store.transact(self.name, self._release_trial)
            raise
        except Exception as exc:
            if self._is_failure(exc):
                failed_at = self._clock()
                await self._store.transact(
                    self.name, lambda record: self._on_failure(record, failed_at, trial)
                )
            elif trial:
                await self._store.transact(self.name, self._release_trial)
            raise
        await self._store.transact(self.name, lambda record: self._on_success(record, trial))
        return result

    async def metrics(self) -> CircuitBreakerMetrics:
        record = await self._store.snapshot(self.name)
        return CircuitBreakerMetrics(
            name=self.name,
            state=record.state,
            failure_count=record.failure_count,
            half_open_count=record.half_open_inflight + record.half_open_successes,
            open_since=record.opened_at_ms,
        )

    async def state(self) -> CircuitState:
        return (await self._store.snapshot(self.name)).state

    def _admit(self, record: BreakerRecord, now: int) -> tuple[_Admission, int | None]:
        if record.state is CircuitState.OPEN:
            opened_at = record.opened_at_ms if record.opened_at_ms is not None else now
            elapsed = now - opened_at
            if elapsed < self.policy.reset_timeout_ms:
                return _Admission.REJECT, self.policy.reset_timeout_ms - elapsed
            self._transition(record, CircuitState.HALF_OPEN)
            record.half_open_inflight = 0
            record.half_open_successes = 0

        if record.state is CircuitState.HALF_OPEN:
            admitted = record.half_open_inflight + record.half_open_successes
            if admitted >= self.policy.half_open_requests:
                return _Admission.REJECT, None
            record.half_open_inflight += 1
            return _Admission.TRIAL, None

        return _Admission.NORMAL, None

    def _on_success(self, record: BreakerRecord, trial: bool) -> None:
        if trial and record.state is CircuitState.HALF_OPEN:
            record.half_open_inflight = max(0, record.half_open_inflight - 1)
            record.half_open_successes += 1
            if record.half_open_successes >= self.policy.half_open_requests:
                self._transition(record, CircuitState.CLOSED)
                record.failure_count = 0
                record.window_started_ms = 0
                record.opened_at_ms = None
                record.half_open_inflight = 0
                record.half_open_successes = 0
            return
        if record.state is CircuitState.CLOSED:
            record.failure_count = 0
            record.window_started_ms = 0

    def _on_failure(self, record: BreakerRecord, now: int, trial: bool) -> None:
        if trial and record.state is CircuitState.HALF_OPEN:
            self._open(record, now)
            return
        if record.state is not CircuitState.CLOSED:
            return
        window_expired = now - record.window_started_ms >= self.policy.monitoring_period_ms
        if record.failure_count == 0 or window_expired:
            record.failure_count = 1
            record.window_started_ms = now
        else:
            record.failure_count += 1
        if record.failure_count >= self.policy.failure_threshold:
            self._open(record, now)

    def _release_trial(self, record: BreakerRecord) -> None:
        if record.state is CircuitState.HALF_OPEN:
            record.half_open_inflight = max(0, record.half_open_inflight - 1)

    def _open(self, record: BreakerRecord, now: int) -> None:
        self._transition(record, CircuitState.OPEN)
        record.opened_at_ms = now
        record.half_open_inflight = 0
        record.half_open_successes = 0

    def _transition(self, record: BreakerRecord, target: CircuitState) -> None:
        previous = record.state
        record.state = target
        if previous is target:
            return
        counter(
            "concertsync_circuit_transitions_total",
            "Circuit breaker state transitions",
            label_names=("name", "state"),
        ).labels(name=self.name, state=target.value).inc()
        gauge(
            "concertsync_circuit_state",
            "Circuit breaker state (0 closed, 1 half-open, 2 open)",
            label_names=("name",),
        ).labels(name=self.name).set(_STATE_VALUES[target])
        log_event(
            logger,
            "circuit.transition",
            component="utils.circuit_breaker",
            dependency=self.name,
            status="error" if target is CircuitState.OPEN else "ok",
            from_state=previous.value,
            to_state=target.value,
            failure_count=record.failure_count,
        )


class CircuitBreakerRegistry:
    """Hands out one breaker per dependency name, sharing a single state store."""

    def __init__(
        self,
        policies: Mapping[str, BreakerPolicy] | None = None,
        *,
        store: BreakerStateStore | None = None,
        clock: Clock = epoch_ms,
        is_failure: FailurePredicate = _trip_on_any,
    ) -> None:
        self._policies = dict(policies or {})
        self._store: BreakerStateStore = store or InMemoryBreakerStore()
        self._clock = clock
        self._is_failure = is_failure
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        key = name.lower()
        breaker = self._breakers.get(key)
        if breaker is None:
            policy = self._policies.get(key) or BreakerPolicy.defaults_for(key)
            breaker = CircuitBreaker(
                key,
                policy,
                store=self._store,
                clock=self._clock,
                is_failure=self._is_failure,
            )
            self._breakers[key] = breaker
        return breaker

    async def metrics(self) -> list[CircuitBreakerMetrics]:
        names = sorted(set(self._policies) | set(self._breakers))
        return [await self.get(name).metrics() for name in names]


__all__ = [
    "BreakerRecord",
    "BreakerStateStore",
    "CircuitBreaker",
    "CircuitBreakerMetrics",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "InMemoryBreakerStore",
]
