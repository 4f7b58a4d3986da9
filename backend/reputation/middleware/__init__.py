"""
Middleware Package

Contains FastAPI middleware for:
- Prometheus metrics collection
- Reputation engine counters
"""

from reputation.middleware.metrics import (
    PrometheusMiddleware,
    setup_metrics,
    REQUEST_LATENCY,
    REQUEST_COUNT,
    ACTIVE_REQUESTS,
    TRUST_RECALCULATIONS,
    TRUST_SCORE_LATENCY,
)

__all__ = [
    "PrometheusMiddleware",
    "setup_metrics",
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "ACTIVE_REQUESTS",
    "TRUST_RECALCULATIONS",
    "TRUST_SCORE_LATENCY",
]
