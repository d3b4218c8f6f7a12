import time

from fastapi import Request
from starlette.routing import Match

from src.metrics.registry import MetricsRegistry


def _endpoint_label(request: Request) -> str:
    # Label with the full route template, router prefixes included
    for route in request.app.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", None) or "unmatched"
    return "unmatched"


async def metrics_middleware(request: Request, call_next):
    metrics: MetricsRegistry | None = getattr(request.app.state, "metrics", None)
    if metrics is None:
        return await call_next(request)

    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start

    endpoint = _endpoint_label(request)
    metrics.http_requests_total.labels(
        method=request.method, endpoint=endpoint, status=str(response.status_code)
    ).inc()
    metrics.http_request_duration_seconds.labels(
        method=request.method, endpoint=endpoint
    ).observe(duration)
    return response
