"""FastAPI application entrypoint and router wiring for the backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi_pagination import add_pagination
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from taskflow.api.cards import router as cards_router
from taskflow.api.deps import SESSION_DEP
from taskflow.api.milestones import router as milestones_router
from taskflow.api.rules import router as rules_router
from taskflow.api.tasks import router as tasks_router
from taskflow.core.config import settings
from taskflow.core.error_handling import install_error_handling
from taskflow.core.logging import configure_logging, get_logger
from taskflow.db.session import init_db
from taskflow.schemas.errors import ErrorResponse
from taskflow.schemas.health import HealthStatusResponse
from taskflow.services.errors import StorageError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlmodel.ext.asyncio.session import AsyncSession

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": (
            "Service liveness/readiness probes used by infrastructure and runtime checks."
        ),
    },
    {
        "name": "tasks",
        "description": "Task claim, release, completion and edit operations.",
    },
    {
        "name": "milestones",
        "description": "Milestone activation and release of planned content.",
    },
    {
        "name": "cards",
        "description": "Card planning between the pool and milestones.",
    },
    {
        "name": "rules",
        "description": "Workflow rule metrics and execution history.",
    },
]


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Initialize application resources before serving requests."""
    logger.info(
        "app.lifecycle.starting environment=%s db_auto_migrate=%s",
        settings.environment,
        settings.db_auto_migrate,
    )
    await init_db()
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        logger.info("app.lifecycle.stopped")


app = FastAPI(
    title="Taskflow API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Total-Count", "X-Limit", "X-Offset", "X-Request-Id"],
    )
    logger.info("app.cors.enabled origins_count=%s", len(origins))
else:
    logger.info("app.cors.disabled")

install_error_handling(app)


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Check",
    description="Lightweight liveness probe endpoint.",
    responses={
        status.HTTP_200_OK: {
            "description": "Service is alive.",
            "content": {"application/json": {"example": {"ok": True}}},
        }
    },
)
def health() -> HealthStatusResponse:
    """Lightweight liveness probe endpoint."""
    return HealthStatusResponse(ok=True)


@app.get(
    "/healthz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Alias Check",
    description="Alias liveness probe endpoint for platform compatibility.",
)
def healthz() -> HealthStatusResponse:
    """Alias liveness probe endpoint for platform compatibility."""
    return HealthStatusResponse(ok=True)


@app.get(
    "/readyz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Readiness Check",
    description="Readiness probe: succeeds once the database answers.",
    responses={
        status.HTTP_503_SERVICE_UNAVAILABLE: {
            "model": ErrorResponse,
            "description": "Database is unreachable.",
        }
    },
)
async def readyz(session: AsyncSession = SESSION_DEP) -> HealthStatusResponse:
    """Readiness probe endpoint for service orchestration checks."""
    try:
        await session.exec(text("SELECT 1"))  # type: ignore[call-overload]
    except SQLAlchemyError as exc:
        logger.warning("app.readiness.database_unavailable", exc_info=exc)
        raise StorageError("Database unavailable") from exc
    return HealthStatusResponse(ok=True)


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(tasks_router)
api_v1.include_router(milestones_router)
api_v1.include_router(cards_router)
api_v1.include_router(rules_router)
app.include_router(api_v1)

add_pagination(app)
logger.debug("app.routes.registered count=%s", len(app.routes))
