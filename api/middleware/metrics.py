"""
Prometheus metrics middleware for the dealership squad API.

Exposes /metrics endpoint with request counters, latency histograms,
and business metrics for tool calls, transfers, leads and follow-ups.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "squad_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "squad_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "squad_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
TOOL_CALLS = Counter(
    "squad_tool_calls_total",
    "Tool calls handled",
    ["function", "outcome"],
)
TRANSFERS = Counter(
    "squad_agent_transfers_total",
    "Agent transfers applied",
    ["to_agent"],
)
LEAD_SCORE_HIST = Histogram(
    "squad_lead_score",
    "Lead score distribution",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)
COMMUNICATIONS_SCHEDULED = Counter(
    "squad_communications_scheduled_total",
    "Follow-up communications planned by qualification",
)
COMMUNICATIONS_DELIVERED = Counter(
    "squad_communications_delivered_total",
    "Sweep outcomes for due communications",
    ["outcome"],
)


def record_tool_call(function: str, outcome: str):
    """Record a dispatched tool call (ok, error or unsupported)."""
    TOOL_CALLS.labels(function=function or "unknown", outcome=outcome).inc()


def record_transfer(to_agent: str):
    TRANSFERS.labels(to_agent=to_agent).inc()


def record_lead_score(score: float):
    """Record a lead score."""
    LEAD_SCORE_HIST.observe(score)


def record_communications_scheduled(count: int):
    if count:
        COMMUNICATIONS_SCHEDULED.inc(count)


def record_sweep(sent: int, failed: int, retrying: int):
    """Record the outcome counts of one sweep pass."""
    for outcome, count in (("sent", sent), ("failed", failed), ("retrying", retrying)):
        if count:
            COMMUNICATIONS_DELIVERED.labels(outcome=outcome).inc(count)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
