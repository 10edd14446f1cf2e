"""HTTP routers for the scheduler trigger, health checks and metrics."""

from .cron import router as cron_router
from .health import router as health_router
from .system import router as system_router

__all__ = ["cron_router", "health_router", "system_router"]
