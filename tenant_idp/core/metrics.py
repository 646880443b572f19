"""Prometheus metric inventory.

All metrics live here; modules import the one they need and increment it
at the point of action.  HTTP-level metrics are fed by MetricsMiddleware,
OAuth and store metrics by the services that own the behavior.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# OAuth provider metrics
# ---------------------------------------------------------------------------

OAUTH_REQUESTS = Counter(
    "oauth_requests_total",
    "OAuth endpoint outcomes",
    # endpoint: authorize|token|userinfo
    # outcome: "ok", "login_redirect", or an OAuth error code
    ["endpoint", "outcome"],
)

STORE_OPERATIONS = Counter(
    "ephemeral_store_operations_total",
    "Ephemeral code/token store operations by result",
    ["operation", "result"],  # result: hit|miss|ok|error
)
