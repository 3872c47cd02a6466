"""
Prometheus metrics for the Right-Sizing Operator.
"""

import time
from typing import Callable

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# =============================================================================
# METRICS DEFINITIONS
# =============================================================================

rs_reconciliations_total = Counter(
    "rs_reconciliations_total",
    "Total component reconciliations",
    ["component", "result"],
)

rs_reconcile_duration_seconds = Histogram(
    "rs_reconcile_duration_seconds",
    "Duration of component reconciliations in seconds",
    ["component"],
)

rs_resource_operations_total = Counter(
    "rs_resource_operations_total",
    "Derived resource writes by kind and action",
    ["kind", "action"],
)

rs_validation_errors_total = Counter(
    "rs_validation_errors_total",
    "Validation errors reported per component",
    ["component"],
)

rs_component_enabled = Gauge(
    "rs_component_enabled",
    "Committed enabled state per component (1=enabled, 0=disabled)",
    ["component"],
)

rs_info = Info(
    "rs_operator",
    "Right-Sizing Operator instance metadata",
)

# HTTP request metrics for middleware
http_requests_total = Counter(
    "rs_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "rs_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)


# =============================================================================
# MIDDLEWARE
# =============================================================================

class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts requests and times them, labelled by route template."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        # Route is resolved during call_next; unmatched paths share one label
        route = request.scope.get("route")
        path = getattr(route, "path", "unmatched")
        http_requests_total.labels(
            method=request.method, path=path, status=response.status_code
        ).inc()
        http_request_duration_seconds.labels(method=request.method, path=path).observe(duration)
        return response


def metrics_middleware(app):
    app.add_middleware(MetricsMiddleware)


# =============================================================================
# RESPONSE HELPER
# =============================================================================

def get_metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
