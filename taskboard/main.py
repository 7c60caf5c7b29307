"""taskboard - task workflow and activity audit service."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from taskboard.core.config import settings
from taskboard.core.db_client import close_connection, init_db
from taskboard.core.logging import configure_logfire, instrument_fastapi
from taskboard.interface.responses import register_exception_handlers
from taskboard.interface.tasks_router import router as tasks_router


logger = logging.getLogger(__name__)


def validate_startup_configuration() -> None:
    """Fail fast when a required credential is missing."""
    logger.info("startup_validation_begin")
    try:
        settings.require_credential("secret_key", "Token signing")
    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\nStartup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)
    logger.info("startup_validation_complete", extra={"status": "ok"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Configure logging first so validation logs are captured
    configure_logfire()
    validate_startup_configuration()

    await init_db()
    logger.info("Database initialized")
    yield
    await close_connection()


app = FastAPI(
    title="taskboard",
    description="Task workflow and activity audit service",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)
register_exception_handlers(app)

app.include_router(tasks_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
