"""HTTP interface of the sprint engine.

Endpoints:
  /sprints/...   Sprint lifecycle, story membership, metrics and comments
  GET /health    Store health check
  GET /metrics   Prometheus exposition
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from sprint_engine import __version__
from sprint_engine.config import settings
from sprint_engine.exceptions import SprintEngineError
from sprint_engine.logging_config import setup_logging
from sprint_engine.metrics import http_request_duration_seconds, http_requests_total, metrics_endpoint
from sprint_engine.middleware import current_user_id, limiter, verify_api_key
from sprint_engine.models.schemas import (
    AddStoriesRequest,
    CreateSprintCommentRequest,
    CreateSprintRequest,
    Sprint,
    SprintComment,
    SprintDetail,
    SprintMetrics,
    SprintStatus,
    UpdateSprintRequest,
)
from sprint_engine.sprints.service import SprintService
from sprint_engine.store import build_store
from sprint_engine.store.base import SprintStore
from sprint_engine.validation import validate_and_exit

logger = logging.getLogger("sprint_engine")


# ── Dependencies ──


def get_service(request: Request) -> SprintService:
    return request.app.state.service


# ── Sprint Endpoints ──

router = APIRouter(prefix="/sprints", tags=["sprints"], dependencies=[Depends(verify_api_key)])


@router.post("", response_model=SprintDetail, status_code=status.HTTP_201_CREATED)
async def create_sprint(body: CreateSprintRequest, service: SprintService = Depends(get_service)):
    return await service.create(body)


@router.get("", response_model=list[SprintDetail])
async def list_sprints(
    project_id: str | None = None,
    status: SprintStatus | None = None,
    service: SprintService = Depends(get_service),
):
    return await service.find_all(project_id, status)


@router.get("/{sprint_id}", response_model=SprintDetail)
async def get_sprint(sprint_id: str, service: SprintService = Depends(get_service)):
    return await service.find_one(sprint_id)


@router.patch("/{sprint_id}", response_model=SprintDetail)
async def update_sprint(
    sprint_id: str, body: UpdateSprintRequest, service: SprintService = Depends(get_service)
):
    return await service.update(sprint_id, body)


@router.delete("/{sprint_id}", response_model=Sprint)
async def delete_sprint(sprint_id: str, service: SprintService = Depends(get_service)):
    return await service.remove(sprint_id)


@router.post("/{sprint_id}/start", response_model=SprintDetail)
async def start_sprint(sprint_id: str, service: SprintService = Depends(get_service)):
    return await service.start_sprint(sprint_id)


@router.post("/{sprint_id}/complete", response_model=SprintDetail)
async def complete_sprint(sprint_id: str, service: SprintService = Depends(get_service)):
    return await service.complete_sprint(sprint_id)


@router.post("/{sprint_id}/stories", response_model=SprintDetail)
async def add_stories(
    sprint_id: str, body: AddStoriesRequest, service: SprintService = Depends(get_service)
):
    return await service.add_stories(sprint_id, body.story_ids)


@router.delete("/{sprint_id}/stories/{story_id}", response_model=SprintDetail)
async def remove_story(sprint_id: str, story_id: str, service: SprintService = Depends(get_service)):
    return await service.remove_story(sprint_id, story_id)


@router.get("/{sprint_id}/metrics", response_model=SprintMetrics)
async def sprint_metrics(sprint_id: str, service: SprintService = Depends(get_service)):
    return await service.get_metrics(sprint_id)


@router.post("/{sprint_id}/comments", response_model=SprintComment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    sprint_id: str,
    body: CreateSprintCommentRequest,
    author_id: str = Depends(current_user_id),
    service: SprintService = Depends(get_service),
):
    return await service.add_comment(sprint_id, body, author_id)


@router.get("/{sprint_id}/comments", response_model=list[SprintComment])
async def list_comments(sprint_id: str, service: SprintService = Depends(get_service)):
    return await service.get_comments(sprint_id)


# ── Error Handling ──


def _error_body(request: Request, status_code: int, error: str, message: str) -> dict:
    return {
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
        "method": request.method,
        "error": error,
        "message": message,
    }


async def engine_error_handler(request: Request, exc: SprintEngineError) -> JSONResponse:
    """Render engine errors with their HTTP status; these are the caller's to fix."""
    logger.warning("%s %s - %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, type(exc).__name__, exc.message),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s - unexpected error: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, 500, "InternalServerError", "Internal server error occurred"),
    )


# ── App Factory ──


def create_app(store: SprintStore | None = None) -> FastAPI:
    """Build the application around a store (the configured backend by default)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: validate config and open the store. Shutdown: release it."""
        setup_logging()
        logger.info("=" * 60)
        logger.info("  Sprint engine %s starting up...", __version__)
        logger.info("  Environment: %s", settings.environment)
        logger.info("=" * 60)
        validate_and_exit()

        await app.state.store.init_db()
        logger.info("Sprint store ready. Sprint engine is online.")

        yield

        logger.info("Sprint engine shutting down...")
        await app.state.store.disconnect()

    app = FastAPI(
        title="Sprint Engine",
        description="Sprint lifecycle, story membership and burndown metrics",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.store = store if store is not None else build_store()
    app.state.service = SprintService(app.state.store)
    app.state.limiter = limiter

    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(SprintEngineError, engine_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.middleware("http")
    async def record_http_metrics(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")
        http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(
            time.perf_counter() - start
        )
        http_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
        return response

    @app.get("/health")
    async def health_check():
        """Check the health of the sprint store."""
        store_ok = await app.state.store.health_check()
        return {
            "status": "ok" if store_ok else "degraded",
            "services": {"store": "ok" if store_ok else "down"},
            "store": type(app.state.store).__name__,
            "environment": settings.environment,
        }

    @app.get("/")
    async def root():
        """Landing page with basic info."""
        return {
            "name": "Sprint Engine",
            "version": __version__,
            "docs": "/docs",
        }

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
    app.include_router(router)
    return app


app = create_app()
