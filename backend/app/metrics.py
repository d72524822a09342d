from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "cashflow_requests_total",
    "Total HTTP requests processed by the cashflow API",
    ("method", "path", "status"),
)

REQUEST_LATENCY = Histogram(
    "cashflow_request_latency_seconds",
    "HTTP request latency in seconds",
    ("method", "path"),
)

REQUEST_ERRORS = Counter(
    "cashflow_request_errors_total",
    "HTTP requests resulting in server errors",
    ("method", "path", "status"),
)

RATE_LIMIT_DECISIONS = Counter(
    "cashflow_rate_limit_decisions_total",
    "Admission decisions taken by the per-client rate limiter",
    ("decision",),
)

RATE_LIMIT_TRACKED_CLIENTS = Gauge(
    "cashflow_rate_limit_tracked_clients",
    "Client records held by the rate limiter after the last sweep",
)

TRANSACTIONS_WRITTEN = Counter(
    "cashflow_transactions_written_total",
    "Transaction write operations persisted to storage",
    ("operation",),
)

__all__ = [
    "RATE_LIMIT_DECISIONS",
    "RATE_LIMIT_TRACKED_CLIENTS",
    "REQUEST_COUNT",
    "REQUEST_ERRORS",
    "REQUEST_LATENCY",
    "TRANSACTIONS_WRITTEN",
]
