"""
FastAPI application entry point.

TradePilot - autonomous LLM trading agents
"""

import json
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from ..core.config import get_settings
from ..db.database import close_db, init_db
from ..services.cycle_orchestrator import reset_cycle_orchestrator
from ..workers.scheduler import get_scheduler, reset_scheduler
from .routes import agents, notifications


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def _configure_logging() -> None:
    """Configure logging based on environment."""
    _settings = get_settings()

    if _settings.environment == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
        logging.root.handlers = [handler]
        logging.root.setLevel(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


_configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings = get_settings()

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"AI model: {settings.ai_model}")

    # In production the schema is managed by Alembic (alembic upgrade head)
    if settings.is_debug:
        try:
            await init_db()
            logger.info("Database: Connected and initialized")
        except Exception as e:
            logger.error(f"Database: Connection failed - {e}")

    if not settings.has_broker_credentials:
        logger.info("Broker: Alpaca credentials not set, paper agents use simulated fills")

    scheduler = None
    if settings.scheduler_enabled:
        try:
            scheduler = get_scheduler()
            await scheduler.start()
            logger.info("Scheduler: Started")
        except Exception as e:
            logger.error(f"Scheduler: Failed to start - {e}")
    else:
        logger.info("Scheduler: Disabled (set SCHEDULER_ENABLED=true to enable)")

    yield

    logger.info(f"Shutting down {settings.app_name}")

    if scheduler is not None:
        try:
            await reset_scheduler()
            logger.info("Scheduler: Stopped")
        except Exception as e:
            logger.error(f"Scheduler: Error stopping - {e}")

    await reset_cycle_orchestrator()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Autonomous LLM-driven trading agents",
        lifespan=lifespan,
        docs_url="/api/v1/docs" if settings.is_debug else None,
        redoc_url="/api/v1/redoc" if settings.is_debug else None,
        openapi_url="/api/v1/openapi.json" if settings.is_debug else None,
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    # CORS middleware - added last so it is outermost and answers preflights first
    cors_origins = settings.get_cors_origins()
    logger.info(f"CORS origins: {cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Requested-With", "X-User-Id"],
    )

    app.include_router(agents.router, prefix="/api/v1")
    app.include_router(notifications.router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        scheduler = get_scheduler()
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "scheduler_running": scheduler.is_running,
            "scheduled_agents": len(scheduler.list_agents()),
        }

    return app


# Create app instance
app = create_app()
