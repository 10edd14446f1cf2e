"""Entry point for the concertsync FastAPI application."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
import uvicorn

from concertsync.api import cron_router, health_router, system_router
from concertsync.config import Settings, get_env, load_settings
from concertsync.db import init_db
from concertsync.errors import install_error_handlers
from concertsync.logging import configure_logging, get_logger
from concertsync.orchestrator.bootstrap import EngineRuntime, bootstrap_engine

logger = get_logger(__name__)

_APP_LISTEN_HOST = "0.0.0.0"
_DEFAULT_PORT = 8080


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    engine: EngineRuntime = app.state.engine
    configure_logging(engine.settings.log_level, get_env("LOG_FILE"))
    init_db()
    app.state.start_time = datetime.now(UTC)
    logger.info("concertsync application started")
    try:
        yield
    finally:
        await engine.clients.aclose()
        logger.info("concertsync application stopped")


def create_app(
    settings: Settings | None = None, *, engine: EngineRuntime | None = None
) -> FastAPI:
    app = FastAPI(title="concertsync", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine or bootstrap_engine(settings or load_settings())
    install_error_handlers(app)
    app.include_router(cron_router)
    app.include_router(health_router)
    app.include_router(system_router)
    return app


def run() -> None:
    port_raw = get_env("PORT")
    port = int(port_raw) if port_raw and port_raw.isdigit() else _DEFAULT_PORT
    uvicorn.run(create_app(), host=_APP_LISTEN_HOST, port=port)


if __name__ == "__main__":
    run()


__all__ = ["create_app", "lifespan", "run"]
