"""
Prometheus metrics for the SMS console.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Webhook event counter (kind, result)
- Outbound send counter (result)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Telnyx callback outcomes
# kind: received, status, ignored, invalid
webhook_events_total = Counter(
    "webhook_events_total",
    "Total webhook events by kind and processing result",
    labelnames=["kind", "result"]
)

# Outbound send attempts
# result: sent, or the reason tag of the SendError that stopped the send
sms_send_total = Counter(
    "sms_send_total",
    "Total outbound SMS attempts by result",
    labelnames=["result"]
)

# Request latency histogram in seconds, default buckets
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
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
    # Normalize path to avoid high-cardinality labels
    # (e.g., /api/messages/+36201234567 -> /api/messages/{phone})
    normalized_path = path.split("?")[0]
    for prefix in ("/api/messages/", "/api/contact/"):
        if normalized_path.startswith(prefix):
            normalized_path = prefix + "{phone}"

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_webhook_outcome(kind: str, result: str) -> None:
    """
    Record a webhook processing outcome.

    Args:
        kind: Event variant - "received", "status", "ignored", or "invalid"
            for bodies that could not be parsed
        result: Processing result - one of:
            - "received": New inbound message stored
            - "duplicate": Inbound message already stored
            - "status_updated" / "status_unchanged": Status callback applied or replayed
            - "unknown_message" / "no_message_id": Status callback with nothing to update
            - "ignored": Event type not handled
            - "malformed_body" / "missing_phone_numbers": Rejected with 400
            - "error": Unexpected failure, answered with 500
    """
    webhook_events_total.labels(kind=kind, result=result).inc()


def record_send_outcome(result: str) -> None:
    """
    Record an outbound send attempt.

    Args:
        result: "sent", "internal_error", or a SendError reason
            (e.g. "missing_fields", "provider_rejected")
    """
    sms_send_total.labels(result=result).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string for Prometheus exposition format
    """
    return CONTENT_TYPE_LATEST
