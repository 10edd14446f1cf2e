"""Fold per-record outcomes of an ingest batch into a single tally."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from functools import reduce
from typing import Any

from concertsync.utils.concurrency import Settled


@dataclass(slots=True, frozen=True)
class IngestError:
    type: str
    message: str
    item_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.item_id is not None:
            payload["itemId"] = self.item_id
        return payload


@dataclass(slots=True, frozen=True)
class IngestTally:
    succeeded: int = 0
    failed: int = 0
    errors: tuple[IngestError, ...] = ()

    def record_success(self) -> IngestTally:
        return replace(self, succeeded=self.succeeded + 1)

    def record_failure(self, error: IngestError) -> IngestTally:
        return replace(self, failed=self.failed + 1, errors=self.errors + (error,))

    def merge(self, other: IngestTally) -> IngestTally:
        return IngestTally(
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            errors=self.errors + other.errors,
        )


def fold_settled(
    results: Iterable[Settled[Any, Any]],
    *,
    error_type: str,
    item_id: Callable[[Any], str | None],
) -> IngestTally:
    """Reduce bounded-batch outcomes; a failed record never aborts the fold."""

    def _step(tally: IngestTally, outcome: Settled[Any, Any]) -> IngestTally:
        if outcome.ok:
            return tally.record_success()
        return tally.record_failure(
            IngestError(
                type=error_type,
                message=str(outcome.error) or type(outcome.error).__name__,
                item_id=item_id(outcome.item),
            )
        )

    return reduce(_step, results, IngestTally())


__all__ = ["IngestError", "IngestTally", "fold_settled"]
