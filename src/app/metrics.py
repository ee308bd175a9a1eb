from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from src.app.settings import settings

REQUEST_COUNT = Counter(
    "assistant_http_requests_total",
    "HTTP requests served by the assistant",
    ["method", "route", "status"],
)
REQUEST_LATENCY = Histogram(
    "assistant_http_request_duration_seconds",
    "Time to first response byte, in seconds",
    ["method", "route"],
)
CHAT_ROUTES = Counter(
    "chat_routes_total",
    "Chat requests by classification and outcome",
    ["classification", "outcome"],
)


def _route_label(request: Request) -> str:
    # Unmatched paths share one label to keep cardinality bounded.
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled or request.url.path == "/metrics":
        return await call_next(request)
    started = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        route = _route_label(request)
        REQUEST_COUNT.labels(request.method, route, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, route).observe(time.monotonic() - started)


def record_chat_route(classification: str, outcome: str) -> None:
    """Count one routed chat request."""
    if settings.metrics_enabled:
        CHAT_ROUTES.labels(classification, outcome).inc()


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
