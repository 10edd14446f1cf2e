"""Runtime configuration for the ingestion and trending engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

from concertsync.logging import get_logger

logger = get_logger(__name__)

PROVIDER_SPOTIFY = "spotify"
PROVIDER_TICKETMASTER = "ticketmaster"
PROVIDER_SETLISTFM = "setlistfm"
PROVIDERS: tuple[str, ...] = (PROVIDER_SPOTIFY, PROVIDER_TICKETMASTER, PROVIDER_SETLISTFM)

DEFAULT_DB_URL = "sqlite:///./concertsync.db"
DEFAULT_LOG_LEVEL = "INFO"

DEFAULT_EXTERNAL_TIMEOUT_MS = 10_000
DEFAULT_EXTERNAL_RETRY_MAX = 2
DEFAULT_EXTERNAL_BACKOFF_BASE_MS = 250
DEFAULT_EXTERNAL_JITTER_PCT = 20

DEFAULT_IMPORT_BATCH_SIZE = 50
DEFAULT_SHOW_CONCURRENCY = 5
DEFAULT_CATALOG_CONCURRENCY = 8
DEFAULT_SHOW_PAGE_SIZE = 100
DEFAULT_SHOW_MAX_PAGES = 20
DEFAULT_SHOW_HORIZON_DAYS = 730
DEFAULT_PAGE_DELAY_MS = 500
DEFAULT_CATALOG_PAGE_DELAY_MS = 100
DEFAULT_SYNC_INTERVAL_HOURS = 24
DEFAULT_ARTISTS_PER_RUN = 50

DEFAULT_TRENDING_RECENT_HOURS = 24
DEFAULT_TRENDING_WEEK_DAYS = 7
DEFAULT_TRENDING_WRITE_CONCURRENCY = 50

# (failure_threshold, reset_timeout_ms, monitoring_period_ms)
_BREAKER_DEFAULTS: dict[str, tuple[int, int, int]] = {
    PROVIDER_SPOTIFY: (5, 30_000, 60_000),
    PROVIDER_TICKETMASTER: (3, 60_000, 300_000),
    PROVIDER_SETLISTFM: (3, 30_000, 120_000),
}

# (max_requests, window_ms)
_RATE_LIMIT_DEFAULTS: dict[str, tuple[int, int]] = {
    PROVIDER_SPOTIFY: (180, 60_000),
    PROVIDER_TICKETMASTER: (5_000, 86_400_000),
    PROVIDER_SETLISTFM: (2, 1_000),
}

_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export ") :]
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load runtime environment values applying .env before explicit environment."""

    env: dict[str, str] = {}
    source = dict(base_env or os.environ)

    path = Path(env_file) if env_file is not None else Path(".env")
    if path.exists() and path.is_file():
        env.update(_load_env_file(path))

    env.update({key: str(value) for key, value in source.items() if value is not None})
    return env


def get_runtime_env() -> Mapping[str, str]:
    """Return the cached runtime environment mapping."""

    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Override the cached runtime environment (primarily for testing)."""

    global _RUNTIME_ENV_CACHE
    if runtime_env is None:
        _RUNTIME_ENV_CACHE = None
    else:
        _RUNTIME_ENV_CACHE = dict(runtime_env)


def get_env(name: str, default: str | None = None) -> str | None:
    """Return an environment variable honoring ENV > .env > defaults."""

    env = get_runtime_env()
    return env.get(name, default)


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(
    value: Any,
    *,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    resolved = _coerce_int(value, default=default)
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _optional_str(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True, frozen=True)
class DatabaseConfig:
    url: str

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> DatabaseConfig:
        return cls(url=_optional_str(env, "DATABASE_URL") or DEFAULT_DB_URL)


@dataclass(slots=True, frozen=True)
class ProviderCredentials:
    spotify_client_id: str | None
    spotify_client_secret: str | None
    ticketmaster_api_key: str | None
    setlistfm_api_key: str | None

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> ProviderCredentials:
        return cls(
            spotify_client_id=_optional_str(env, "SPOTIFY_CLIENT_ID"),
            spotify_client_secret=_optional_str(env, "SPOTIFY_CLIENT_SECRET"),
            ticketmaster_api_key=_optional_str(env, "TICKETMASTER_API_KEY"),
            setlistfm_api_key=_optional_str(env, "SETLISTFM_API_KEY"),
        )


@dataclass(slots=True, frozen=True)
class ExternalCallPolicy:
    timeout_ms: int
    retry_max: int
    backoff_base_ms: int
    jitter_pct: int

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> ExternalCallPolicy:
        return cls(
            timeout_ms=_bounded_int(
                env.get("EXTERNAL_TIMEOUT_MS"),
                default=DEFAULT_EXTERNAL_TIMEOUT_MS,
                minimum=100,
            ),
            retry_max=_bounded_int(
                env.get("EXTERNAL_RETRY_MAX"),
                default=DEFAULT_EXTERNAL_RETRY_MAX,
                minimum=0,
            ),
            backoff_base_ms=_bounded_int(
                env.get("EXTERNAL_BACKOFF_BASE_MS"),
                default=DEFAULT_EXTERNAL_BACKOFF_BASE_MS,
                minimum=1,
            ),
            jitter_pct=_bounded_int(
                env.get("EXTERNAL_JITTER_PCT"),
                default=DEFAULT_EXTERNAL_JITTER_PCT,
                minimum=0,
                maximum=100,
            ),
        )


@dataclass(slots=True, frozen=True)
class BreakerPolicy:
    """Thresholds for one provider's circuit breaker."""

    failure_threshold: int
    reset_timeout_ms: int
    monitoring_period_ms: int
    half_open_requests: int = 1

    @classmethod
    def defaults_for(cls, provider: str) -> BreakerPolicy:
        threshold, reset_ms, window_ms = _BREAKER_DEFAULTS.get(provider, (5, 60_000, 60_000))
        return cls(
            failure_threshold=threshold,
            reset_timeout_ms=reset_ms,
            monitoring_period_ms=window_ms,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, Any], provider: str) -> BreakerPolicy:
        base = cls.defaults_for(provider)
        prefix = f"BREAKER_{provider.upper()}"
        return cls(
            failure_threshold=_bounded_int(
                env.get(f"{prefix}_FAILURE_THRESHOLD"),
                default=base.failure_threshold,
                minimum=1,
            ),
            reset_timeout_ms=_bounded_int(
                env.get(f"{prefix}_RESET_TIMEOUT_MS"),
                default=base.reset_timeout_ms,
                minimum=0,
            ),
            monitoring_period_ms=_bounded_int(
                env.get(f"{prefix}_MONITORING_PERIOD_MS"),
                default=base.monitoring_period_ms,
                minimum=1,
            ),
            half_open_requests=_bounded_int(
                env.get(f"{prefix}_HALF_OPEN_REQUESTS"),
                default=base.half_open_requests,
                minimum=1,
            ),
        )


@dataclass(slots=True, frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_ms: int

    @classmethod
    def from_env(cls, env: Mapping[str, Any], provider: str) -> RateLimitPolicy:
        max_requests, window_ms = _RATE_LIMIT_DEFAULTS.get(provider, (60, 60_000))
        prefix = f"RATE_LIMIT_{provider.upper()}"
        return cls(
            max_requests=_bounded_int(
                env.get(f"{prefix}_MAX_REQUESTS"), default=max_requests, minimum=1
            ),
            window_ms=_bounded_int(env.get(f"{prefix}_WINDOW_MS"), default=window_ms, minimum=1),
        )


@dataclass(slots=True, frozen=True)
class ImportConfig:
    batch_size: int = DEFAULT_IMPORT_BATCH_SIZE
    show_concurrency: int = DEFAULT_SHOW_CONCURRENCY
    catalog_concurrency: int = DEFAULT_CATALOG_CONCURRENCY
    show_page_size: int = DEFAULT_SHOW_PAGE_SIZE
    show_max_pages: int = DEFAULT_SHOW_MAX_PAGES
    show_horizon_days: int = DEFAULT_SHOW_HORIZON_DAYS
    page_delay_ms: int = DEFAULT_PAGE_DELAY_MS
    catalog_page_delay_ms: int = DEFAULT_CATALOG_PAGE_DELAY_MS
    sync_interval_hours: int = DEFAULT_SYNC_INTERVAL_HOURS
    artists_per_run: int = DEFAULT_ARTISTS_PER_RUN

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> ImportConfig:
        return cls(
            batch_size=_bounded_int(
                env.get("IMPORT_BATCH_SIZE"), default=DEFAULT_IMPORT_BATCH_SIZE, minimum=1
            ),
            show_concurrency=_bounded_int(
                env.get("IMPORT_SHOW_CONCURRENCY"), default=DEFAULT_SHOW_CONCURRENCY, minimum=1
            ),
            catalog_concurrency=_bounded_int(
                env.get("IMPORT_CATALOG_CONCURRENCY"),
                default=DEFAULT_CATALOG_CONCURRENCY,
                minimum=1,
            ),
            show_page_size=_bounded_int(
                env.get("IMPORT_SHOW_PAGE_SIZE"),
                default=DEFAULT_SHOW_PAGE_SIZE,
                minimum=1,
                maximum=200,
            ),
            show_max_pages=_bounded_int(
                env.get("IMPORT_SHOW_MAX_PAGES"), default=DEFAULT_SHOW_MAX_PAGES, minimum=1
            ),
            show_horizon_days=_bounded_int(
                env.get("IMPORT_SHOW_HORIZON_DAYS"), default=DEFAULT_SHOW_HORIZON_DAYS, minimum=1
            ),
            page_delay_ms=_bounded_int(
                env.get("IMPORT_PAGE_DELAY_MS"), default=DEFAULT_PAGE_DELAY_MS, minimum=0
            ),
            catalog_page_delay_ms=_bounded_int(
                env.get("IMPORT_CATALOG_PAGE_DELAY_MS"),
                default=DEFAULT_CATALOG_PAGE_DELAY_MS,
                minimum=0,
            ),
            sync_interval_hours=_bounded_int(
                env.get("IMPORT_SYNC_INTERVAL_HOURS"),
                default=DEFAULT_SYNC_INTERVAL_HOURS,
                minimum=1,
            ),
            artists_per_run=_bounded_int(
                env.get("IMPORT_ARTISTS_PER_RUN"), default=DEFAULT_ARTISTS_PER_RUN, minimum=1
            ),
        )


@dataclass(slots=True, frozen=True)
class TrendingConfig:
    recent_hours: int = DEFAULT_TRENDING_RECENT_HOURS
    week_days: int = DEFAULT_TRENDING_WEEK_DAYS
    write_concurrency: int = DEFAULT_TRENDING_WRITE_CONCURRENCY

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> TrendingConfig:
        return cls(
            recent_hours=_bounded_int(
                env.get("TRENDING_RECENT_HOURS"), default=DEFAULT_TRENDING_RECENT_HOURS, minimum=1
            ),
            week_days=_bounded_int(
                env.get("TRENDING_WEEK_DAYS"), default=DEFAULT_TRENDING_WEEK_DAYS, minimum=1
            ),
            write_concurrency=_bounded_int(
                env.get("TRENDING_WRITE_CONCURRENCY"),
                default=DEFAULT_TRENDING_WRITE_CONCURRENCY,
                minimum=1,
            ),
        )


@dataclass(slots=True, frozen=True)
class CronConfig:
    secret: str | None
    allow_header_secret: bool = True

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> CronConfig:
        return cls(
            secret=_optional_str(env, "CRON_SECRET"),
            allow_header_secret=_as_bool(
                _optional_str(env, "CRON_ALLOW_HEADER_SECRET"), default=True
            ),
        )


@dataclass(slots=True, frozen=True)
class Settings:
    database: DatabaseConfig
    credentials: ProviderCredentials
    external: ExternalCallPolicy
    breakers: Mapping[str, BreakerPolicy]
    rate_limits: Mapping[str, RateLimitPolicy]
    imports: ImportConfig
    trending: TrendingConfig
    cron: CronConfig
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def load(cls, env: Mapping[str, Any] | None = None) -> Settings:
        env_map: dict[str, Any] = dict(env if env is not None else get_runtime_env())
        breakers = {name: BreakerPolicy.from_env(env_map, name) for name in PROVIDERS}
        rate_limits = {name: RateLimitPolicy.from_env(env_map, name) for name in PROVIDERS}
        cron = CronConfig.from_env(env_map)
        if cron.secret is None:
            logger.warning(
                "CRON_SECRET is not configured; scheduled triggers will be rejected",
                extra={"event": "config.cron.secret_missing"},
            )
        return cls(
            database=DatabaseConfig.from_env(env_map),
            credentials=ProviderCredentials.from_env(env_map),
            external=ExternalCallPolicy.from_env(env_map),
            breakers=breakers,
            rate_limits=rate_limits,
            imports=ImportConfig.from_env(env_map),
            trending=TrendingConfig.from_env(env_map),
            cron=cron,
            log_level=str(env_map.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL),
        )


def load_settings(env: Mapping[str, Any] | None = None) -> Settings:
    return Settings.load(env)


__all__ = [
    "BreakerPolicy",
    "CronConfig",
    "DatabaseConfig",
    "ExternalCallPolicy",
    "ImportConfig",
    "PROVIDERS",
    "PROVIDER_SETLISTFM",
    "PROVIDER_SPOTIFY",
    "PROVIDER_TICKETMASTER",
    "ProviderCredentials",
    "RateLimitPolicy",
    "Settings",
    "TrendingConfig",
    "get_env",
    "get_runtime_env",
    "load_runtime_env",
    "load_settings",
    "override_runtime_env",
]
