"""
Prometheus metrics for checkout reconciliation.

Tracks:
- Gateway API calls by operation and result
- Retries issued by the idempotent executor
- Capture attempts and their outcome
- Inbound notifications per protocol
- Return-URL poll outcomes
"""
from prometheus_client import Counter, Histogram

# Gateway metrics
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total payment gateway API requests",
    ["operation", "result"],  # operation: create, capture, get; result: ok, empty, transport_error, protocol_error
)

gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Payment gateway API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, 30.0),
)

gateway_retries_total = Counter(
    "gateway_retries_total",
    "Total retried gateway attempts",
    ["operation"],
)

# Capture metrics
captures_total = Counter(
    "captures_total",
    "Total capture decisions",
    ["result"],  # captured, already_captured, not_capturable, failed
)

# Notification metrics
notifications_total = Counter(
    "notifications_total",
    "Total inbound payment notifications",
    ["protocol", "result"],  # protocol: kassa, wallet
)

# Poll metrics
return_checks_total = Counter(
    "return_checks_total",
    "Total return-URL payment checks",
    ["outcome"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_gateway_call(operation: str, result: str, duration_seconds: float) -> None:
        """Record a gateway API call."""
        gateway_requests_total.labels(operation=operation, result=result).inc()
        gateway_request_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_retry(operation: str) -> None:
        gateway_retries_total.labels(operation=operation).inc()

    @staticmethod
    def record_capture(result: str) -> None:
        captures_total.labels(result=result).inc()

    @staticmethod
    def record_notification(protocol: str, result: str) -> None:
        """Record an inbound notification and how it was answered."""
        notifications_total.labels(protocol=protocol, result=result).inc()

    @staticmethod
    def record_return_check(outcome: str) -> None:
        return_checks_total.labels(outcome=outcome).inc()


# Export singleton instance
metrics = MetricsCollector()
