"""
Prometheus metrics for the site service.

This module provides:
- HTTP request counter (method, path, status), path being the route template
- Request latency histogram (method, path)
- Tracking lookup outcome counter (result)
- Quote counter (method), order submission counter (result)
- Chat reply counter (rule)
- Open realtime subscriptions gauge

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: found, not_found, invalid, error
tracking_lookups_total = Counter(
    "tracking_lookups_total",
    "Total tracking lookups by outcome",
    labelnames=["result"]
)

quotes_total = Counter(
    "quotes_total",
    "Total quotes calculated",
    labelnames=["method"]
)

# result: created, validation_error, error
orders_total = Counter(
    "orders_total",
    "Total order submissions by outcome",
    labelnames=["result"]
)

chat_replies_total = Counter(
    "chat_replies_total",
    "Total chat replies by matching rule",
    labelnames=["rule"]
)

realtime_subscriptions_open = Gauge(
    "realtime_subscriptions_open",
    "Realtime subscriptions currently open"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, route: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        route: Route template such as /api/tracking/{session_token}/events,
            never the concrete URL path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    http_requests_total.labels(
        method=method,
        path=route,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=route
    ).observe(latency_seconds)


def record_tracking_lookup(result: str) -> None:
    tracking_lookups_total.labels(result=result).inc()


def record_quote(method: str) -> None:
    quotes_total.labels(method=method).inc()


def record_order_outcome(result: str) -> None:
    orders_total.labels(result=result).inc()


def record_chat_reply(rule: str) -> None:
    chat_replies_total.labels(rule=rule).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
