"""
Prometheus metrics for the contact-form API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- AI-improve outcome counter (result)
- Submission outcome counter (result)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: success, validation_error, not_configured, timeout, rate_limited, auth_error, error
ai_improve_requests_total = Counter(
    "ai_improve_requests_total",
    "Total AI message-improvement outcomes",
    labelnames=["result"]
)

# result: created, validation_error, error
submissions_total = Counter(
    "submissions_total",
    "Total contact-form submission outcomes",
    labelnames=["result"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Strip query strings to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_ai_improve_outcome(result: str) -> None:
    ai_improve_requests_total.labels(result=result).inc()


def record_submission_outcome(result: str) -> None:
    submissions_total.labels(result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
