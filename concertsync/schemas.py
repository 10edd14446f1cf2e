"""Job payload and trigger response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _either(snake: str, camel: str) -> AliasChoices:
    return AliasChoices(snake, camel)


class JobPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class ArtistImportPayload(JobPayload):
    provider_attraction_id: str = Field(
        min_length=1,
        validation_alias=_either("provider_attraction_id", "providerAttractionId"),
    )
    config: dict[str, Any] | None = None

    @field_validator("provider_attraction_id")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("value must not be empty")
        return stripped


class BatchImportPayload(JobPayload):
    provider_attraction_ids: list[str] = Field(
        min_length=1,
        validation_alias=_either("provider_attraction_ids", "providerAttractionIds"),
    )
    batch_size: int | None = Field(
        default=None, ge=1, validation_alias=_either("batch_size", "batchSize")
    )
    config: dict[str, Any] | None = None

    @field_validator("provider_attraction_ids")
    @classmethod
    def _drop_blank(cls, values: list[str]) -> list[str]:
        cleaned = [value.strip() for value in values if value and value.strip()]
        if not cleaned:
            raise ValueError("at least one attraction id is required")
        return cleaned


class ProviderSyncPayload(JobPayload):
    artist_id: str = Field(min_length=1, validation_alias=_either("artist_id", "artistId"))
    provider_external_id: str = Field(
        min_length=1,
        validation_alias=_either("provider_external_id", "providerExternalId"),
    )
    config: dict[str, Any] | None = None


class TrendingPayload(JobPayload):
    entity_ids: list[str] | None = Field(
        default=None, validation_alias=_either("entity_ids", "entityIds")
    )
    force_recalculate: bool = Field(
        default=False, validation_alias=_either("force_recalculate", "forceRecalculate")
    )


class CleanupPayload(JobPayload):
    older_than_days: int = Field(
        default=30, ge=1, validation_alias=_either("older_than_days", "olderThanDays")
    )


class HealthCheckPayload(JobPayload):
    pass


class CronRunResult(BaseModel):
    job: str
    success: bool
    message: str
    duration: int = Field(ge=0)
    data: Any | None = None
    error: str | None = None


class CronResponse(BaseModel):
    success: bool
    timestamp: str
    results: list[CronRunResult] = Field(default_factory=list)
    totalDuration: int = Field(ge=0)


__all__ = [
    "ArtistImportPayload",
    "BatchImportPayload",
    "CleanupPayload",
    "CronResponse",
    "CronRunResult",
    "HealthCheckPayload",
    "JobPayload",
    "ProviderSyncPayload",
    "TrendingPayload",
]
