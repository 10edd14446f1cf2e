"""Import orchestration and job dispatch."""

from .artist_import import (
    ArtistImportOrchestrator,
    BatchImportResult,
    ImportHandle,
    ImportOutcome,
)
from .bootstrap import EngineRuntime, bootstrap_engine
from .jobs import JobContext, JobPriority, JobProcessor, JobResult, JobType

__all__ = [
    "ArtistImportOrchestrator",
    "BatchImportResult",
    "EngineRuntime",
    "ImportHandle",
    "ImportOutcome",
    "JobContext",
    "JobPriority",
    "JobProcessor",
    "JobResult",
    "JobType",
    "bootstrap_engine",
]
