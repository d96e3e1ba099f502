"""
Request logging and Prometheus metrics middleware.
"""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request
from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from electronic_api.logging import bind_context, clear_context

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# ============================================================================
# Prometheus Metrics
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"]
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method"]
)


def _endpoint_label(request: Request) -> str:
    # Route templates keep label cardinality bounded; unmatched paths share one label.
    route = request.scope.get("route")
    if route is not None and getattr(route, "path", None):
        return route.path
    return "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request, records metrics and propagates the correlation id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        clear_context()
        bind_context(correlation_id=correlation_id)
        http_requests_in_progress.labels(method=method).inc()
        start_time = time.perf_counter()

        logger.info("request_started", method=method, path=path, client_ip=client_ip)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True
            )
            raise
        finally:
            http_requests_in_progress.labels(method=method).dec()

        duration = time.perf_counter() - start_time
        endpoint = _endpoint_label(request)
        http_requests_total.labels(method=method, endpoint=endpoint, status=response.status_code).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

        logger.info(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration=f"{duration:.3f}s"
        )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
