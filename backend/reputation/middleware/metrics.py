"""
Prometheus Metrics Middleware

Provides request/response metrics for monitoring:
- HTTP request latency (p50, p95, p99)
- Request count by endpoint and status
- Active request gauge
- Reputation engine counters (job transitions, moderation outcomes,
  trust score recalculations)

Usage:
    from reputation.middleware.metrics import PrometheusMiddleware, setup_metrics

    # In main.py
    app = FastAPI()
    setup_metrics(app)

Metrics Endpoint:
    GET /metrics - Prometheus-format metrics
"""

import time
import logging
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CONTENT_TYPE_LATEST,
    generate_latest,
    REGISTRY,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

# Request latency histogram with custom buckets for sub-second monitoring
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Request counter
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

# Active requests gauge
ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
    ["method", "endpoint"]
)

# Job lifecycle metrics
JOB_STATUS_CHANGES = Counter(
    "job_status_changes_total",
    "Job status changes",
    ["status"]
)

# Review moderation metrics
REVIEW_MODERATIONS = Counter(
    "review_moderations_total",
    "Review moderation decisions",
    ["status", "actor"]  # actor: system or moderator
)

# Trust score metrics
TRUST_SCORE_LATENCY = Histogram(
    "trust_score_calculation_seconds",
    "Time to calculate and persist a trust score",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

TRUST_RECALCULATIONS = Counter(
    "trust_score_recalculations_total",
    "Dispatched trust score recalculations",
    ["event", "outcome"]  # outcome: success, failure
)

PENDING_RECALCULATIONS = Gauge(
    "trust_score_recalculations_pending",
    "Trust score recalculations scheduled but not finished"
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for Prometheus metrics collection.

    Records:
    - Request latency
    - Request count by status code
    - Active request count
    """

    def __init__(self, app: FastAPI, app_name: str = "reputation"):
        super().__init__(app)
        self.app_name = app_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        """Process request and record metrics."""
        # Use route pattern for consistency
        endpoint = self._get_endpoint(request)
        method = request.method

        if endpoint == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status = str(response.status_code)
        except Exception as e:
            status = "500"
            logger.error(f"Request error: {e}")
            raise
        finally:
            duration = time.perf_counter() - start_time

            REQUEST_LATENCY.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).observe(duration)

            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            ACTIVE_REQUESTS.labels(
                method=method,
                endpoint=endpoint
            ).dec()

        return response

    def _get_endpoint(self, request: Request) -> str:
        """
        Get normalized endpoint path from request.

        Uses route pattern (e.g., /jobs/{job_id}) instead of
        actual path to avoid high cardinality.
        """
        for route in request.app.routes:
            match, child_scope = route.matches(request.scope)
            if match == Match.FULL:
                # Included routers expose no path of their own
                matched = child_scope.get("route", route)
                path = getattr(matched, "path", None)
                if path:
                    return path
                break

        return request.url.path


def metrics_endpoint(request: Request) -> Response:
    """
    Endpoint handler for Prometheus metrics scraping.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


def setup_metrics(app: FastAPI) -> None:
    """
    Configure Prometheus metrics for FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(PrometheusMiddleware, app_name="reputation")
    app.add_route("/metrics", metrics_endpoint, methods=["GET"])

    logger.info("Prometheus metrics configured")


# ==================== Helper Functions ====================

def record_job_status_change(status: str) -> None:
    JOB_STATUS_CHANGES.labels(status=status).inc()


def record_review_moderation(status: str, actor: str) -> None:
    REVIEW_MODERATIONS.labels(status=status, actor=actor).inc()


def record_trust_score_latency(duration: float) -> None:
    """Record trust score calculation latency."""
    TRUST_SCORE_LATENCY.observe(duration)


def record_recalculation(event: str, outcome: str) -> None:
    TRUST_RECALCULATIONS.labels(event=event, outcome=outcome).inc()


def update_pending_recalculations(count: int) -> None:
    PENDING_RECALCULATIONS.set(count)
