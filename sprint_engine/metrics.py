"""Prometheus metrics export for the sprint engine."""

from __future__ import annotations

import logging
import platform
import time
from functools import wraps
from typing import Callable, TypeVar

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
)

from sprint_engine import __version__
from sprint_engine.config import settings
from sprint_engine.exceptions import SprintEngineError

logger = logging.getLogger(__name__)

# ── Registry ──

registry = CollectorRegistry()


# ── HTTP Metrics ──

http_requests_total = Counter(
    "sprint_engine_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "sprint_engine_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=registry,
)


# ── Engine Metrics ──

operations_total = Counter(
    "sprint_engine_operations_total",
    "Engine operations by outcome",
    ["operation", "status"],
    registry=registry,
)

operation_duration_seconds = Histogram(
    "sprint_engine_operation_duration_seconds",
    "Engine operation duration, including the store transaction",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
    registry=registry,
)

errors_total = Counter(
    "sprint_engine_errors_total",
    "Engine errors by kind",
    ["kind"],
    registry=registry,
)

transitions_total = Counter(
    "sprint_engine_transitions_total",
    "Sprint lifecycle transitions",
    ["transition"],  # planning_to_active, active_to_completed
    registry=registry,
)

velocity_points = Histogram(
    "sprint_engine_velocity_points",
    "Velocity recorded when a sprint completes",
    buckets=(0, 5, 10, 20, 30, 40, 60, 80, 100, 150),
    registry=registry,
)


# ── System Info ──

build_info = Info(
    "sprint_engine_build_info",
    "Sprint engine build information",
    registry=registry,
)

build_info.info({
    "version": __version__,
    "environment": settings.environment,
    "python_version": platform.python_version(),
})


# ── Decorators ──

T = TypeVar("T")


def track_operation(operation: str):
    """Decorator recording outcome and latency of an async engine operation."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            start = time.perf_counter()
            status = "success"
            try:
                return await func(*args, **kwargs)
            except SprintEngineError as e:
                status = e.kind
                errors_total.labels(kind=e.kind).inc()
                raise
            except Exception:
                status = "internal"
                errors_total.labels(kind="internal").inc()
                raise
            finally:
                operation_duration_seconds.labels(operation=operation).observe(time.perf_counter() - start)
                operations_total.labels(operation=operation, status=status).inc()

        return wrapper
    return decorator


# ── Metrics Endpoint for FastAPI ──


async def metrics_endpoint() -> Response:
    """Return Prometheus metrics text format."""
    output = generate_latest(registry)
    return Response(content=output, media_type=CONTENT_TYPE_LATEST)
