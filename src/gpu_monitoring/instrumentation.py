"""
Prometheus Metrics for the GPU Monitoring API

Tracks:
- HTTP request counts, latency and in-flight requests
- Upstream Prometheus query outcomes and latency
"""

from typing import Optional

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


# =============================================================================
# Request Metrics
# =============================================================================

# Labels for requests that matched no route
UNMATCHED_API_LABEL = "/api"
UNMATCHED_LABEL = "other"

HTTP_REQUESTS_TOTAL = Counter(
    "gpu_monitor_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"]
)

HTTP_REQUEST_LATENCY = Histogram(
    "gpu_monitor_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "gpu_monitor_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method"]
)


# =============================================================================
# Upstream Query Metrics
# =============================================================================

# outcome: success, transport_error, protocol_error, query_error
PROMETHEUS_QUERIES_TOTAL = Counter(
    "gpu_monitor_prometheus_queries_total",
    "Total instant queries sent to Prometheus",
    ["outcome"]
)

PROMETHEUS_QUERY_LATENCY = Histogram(
    "gpu_monitor_prometheus_query_latency_seconds",
    "Prometheus instant query latency in seconds",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)


def record_http_request(
    method: str,
    path: str,
    status_code: int,
    duration_seconds: float,
    route_path: Optional[str] = None,
):
    """Record a completed HTTP request.

    `route_path` is the template of the matched route, if any.
    """
    endpoint = _get_endpoint_label(path, route_path)
    HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
    HTTP_REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(duration_seconds)


def record_prometheus_query(outcome: str, duration_seconds: float):
    """Record one upstream instant query."""
    PROMETHEUS_QUERIES_TOTAL.labels(outcome=outcome).inc()
    PROMETHEUS_QUERY_LATENCY.observe(duration_seconds)


def _get_endpoint_label(path: str, route_path: Optional[str] = None) -> str:
    """
    Collapse a request into a low-cardinality endpoint label.

    Matched routes are labelled by their template. Unmatched paths (static
    assets, 404s) fall into one bucket for /api and one for the rest, so
    arbitrary request paths never create new series.
    """
    if route_path:
        return route_path
    if path == "/api" or path.startswith("/api/"):
        return UNMATCHED_API_LABEL
    return UNMATCHED_LABEL


async def metrics_endpoint():
    """Expose metrics in the Prometheus text format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
