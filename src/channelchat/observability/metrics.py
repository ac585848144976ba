from __future__ import annotations

"""Prometheus metrics for the channelchat FastAPI backend.

Adds an HTTP middleware that records request latency per method/path/status,
and the counters the fulfillment task reports into.
"""

import time
from typing import Awaitable, Callable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "channelchat_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

FULFILLMENT_OUTCOMES = Counter(
    "channelchat_fulfillment_total",
    "Background fulfillment tasks by branch and terminal outcome",
    labelnames=("branch", "outcome"),
)

# Generation calls are slow; buckets reach a couple of minutes.
FULFILLMENT_LATENCY = Histogram(
    "channelchat_fulfillment_seconds",
    "Time from task start to terminal write",
    labelnames=("branch",),
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0, 120.0),
)


def record_fulfillment(branch: str, outcome: str, elapsed: float) -> None:
    FULFILLMENT_OUTCOMES.labels(branch=branch, outcome=outcome).inc()
    FULFILLMENT_LATENCY.labels(branch=branch).observe(elapsed)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths (e.g., /channels/{id}) to a coarse label.

    Keeps the first segment, and the second one under the /api prefix.
    """
    if not path:
        return "/"
    segs = [s for s in path.split("?")[0].split("/") if s]
    if not segs:
        return "/"
    if segs[0] == "api" and len(segs) > 1:
        return "/api/" + segs[1]
    return "/" + segs[0]


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Avoid observing the metrics endpoint itself
        if request.url.path.endswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        REQUEST_LATENCY.labels(
            method=request.method,
            path=sanitize_path(request.url.path),
            status=str(response.status_code),
        ).observe(elapsed)
        return response

    return middleware
