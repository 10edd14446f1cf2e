"""In-process progress records for running artist imports."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from concertsync.utils.time import now_utc, to_iso


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


STEP_NAMES: tuple[str, ...] = ("artist", "albums", "songs", "shows", "setlists")
DEFAULT_RETENTION = timedelta(hours=1)


@dataclass(slots=True, frozen=True)
class StepProgress:
    status: SyncStatus = SyncStatus.PENDING
    count: int | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status.value}
        if self.count is not None:
            payload["count"] = self.count
        if self.message is not None:
            payload["message"] = self.message
        return payload


def derive_status(steps: dict[str, StepProgress], *, error: str | None = None) -> SyncStatus:
    """Overall status implied by the step statuses and any terminal error."""

    statuses = [step.status for step in steps.values()]
    if error is not None or SyncStatus.FAILED in statuses:
        return SyncStatus.FAILED
    if statuses and all(status is SyncStatus.COMPLETED for status in statuses):
        return SyncStatus.COMPLETED
    if SyncStatus.SYNCING in statuses or SyncStatus.COMPLETED in statuses:
        return SyncStatus.SYNCING
    return SyncStatus.PENDING


@dataclass(slots=True, frozen=True)
class SyncProgress:
    artist_id: str
    artist_name: str
    started_at: datetime
    steps: dict[str, StepProgress] = field(
        default_factory=lambda: {name: StepProgress() for name in STEP_NAMES}
    )
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def status(self) -> SyncStatus:
        return derive_status(self.steps, error=self.error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "artistId": self.artist_id,
            "artistName": self.artist_name,
            "status": self.status.value,
            "startedAt": to_iso(self.started_at),
            "completedAt": to_iso(self.completed_at),
            "steps": {name: step.to_dict() for name, step in self.steps.items()},
            "error": self.error,
        }


class SyncProgressTracker:
    """Holds one progress record per artist; records are replaced, never mutated.

    Finished records stay readable for ``retention`` after completion and are
    evicted when the next import starts or the active list is read.
    """

    def __init__(
        self,
        *,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._progress: dict[str, SyncProgress] = {}
        self._retention = retention
        self._clock = clock

    def start_sync(self, artist_id: str, artist_name: str) -> SyncProgress:
        self._evict_finished()
        progress = SyncProgress(
            artist_id=artist_id, artist_name=artist_name, started_at=self._clock()
        )
        self._progress[artist_id] = progress
        return progress

    def update_step_status(
        self,
        artist_id: str,
        step: str,
        status: SyncStatus,
        *,
        count: int | None = None,
        message: str | None = None,
    ) -> SyncProgress | None:
        if step not in STEP_NAMES:
            raise ValueError(f"Unknown sync step: {step}")
        progress = self._progress.get(artist_id)
        if progress is None:
            return None
        steps = dict(progress.steps)
        steps[step] = StepProgress(status=status, count=count, message=message)
        updated = replace(progress, steps=steps)
        self._progress[artist_id] = updated
        return updated

    def set_error(self, artist_id: str, error: str) -> SyncProgress | None:
        progress = self._progress.get(artist_id)
        if progress is None:
            return None
        updated = replace(progress, error=error)
        self._progress[artist_id] = updated
        return updated

    def complete_sync(self, artist_id: str) -> SyncProgress | None:
        progress = self._progress.get(artist_id)
        if progress is None:
            return None
        updated = replace(progress, completed_at=self._clock())
        self._progress[artist_id] = updated
        return updated

    def get_progress(self, artist_id: str) -> SyncProgress | None:
        return self._progress.get(artist_id)

    def clear_progress(self, artist_id: str) -> bool:
        return self._progress.pop(artist_id, None) is not None

    def active(self) -> list[SyncProgress]:
        self._evict_finished()
        return [progress for progress in self._progress.values() if progress.completed_at is None]

    def _evict_finished(self) -> None:
        cutoff = self._clock() - self._retention
        expired = [
            artist_id
            for artist_id, progress in self._progress.items()
            if progress.completed_at is not None and progress.completed_at <= cutoff
        ]
        for artist_id in expired:
            del self._progress[artist_id]


__all__ = [
    "DEFAULT_RETENTION",
    "STEP_NAMES",
    "StepProgress",
    "SyncProgress",
    "SyncProgressTracker",
    "SyncStatus",
    "derive_status",
]
