"""Business metrics for the storefront admin service."""

from opentelemetry import metrics

meter = metrics.get_meter(__name__)

# HTTP Request Metrics
http_request_duration = meter.create_histogram(
    name="http_request_duration_seconds",
    description="Duration of HTTP requests in seconds",
    unit="s",
)

http_requests_total = meter.create_counter(
    name="http_requests_total",
    description="Total number of HTTP requests",
)

http_request_errors = meter.create_counter(
    name="http_request_errors_total",
    description="Total number of HTTP request errors",
)

# Soft delete / undo metrics
soft_deletes_total = meter.create_counter(
    name="soft_deletes_total",
    description="Total number of soft delete operations",
)

undo_tokens_issued_total = meter.create_counter(
    name="undo_tokens_issued_total",
    description="Total number of undo tokens minted",
)

undo_tokens_consumed_total = meter.create_counter(
    name="undo_tokens_consumed_total",
    description="Total number of successful undo operations",
)

undo_tokens_expired_total = meter.create_counter(
    name="undo_tokens_expired_total",
    description="Total number of undo tokens removed by expiry",
)

rollback_failures_total = meter.create_counter(
    name="rollback_failures_total",
    description="Total number of rollback operations that raised",
)

undo_tokens_active = meter.create_up_down_counter(
    name="undo_tokens_active",
    description="Number of undo tokens currently stored",
)


def record_http_request(method: str, endpoint: str, status_code: int, duration: float):
    """Record HTTP request metrics."""
    labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}

    http_request_duration.record(duration, labels)
    http_requests_total.add(1, labels)

    if status_code >= 400:
        http_request_errors.add(1, labels)


def record_soft_delete(entity_type: str, bulk: bool, count: int = 1):
    soft_deletes_total.add(count, {"entity_type": entity_type, "bulk": str(bulk)})


def record_undo_token_issued(entity_type: str):
    undo_tokens_issued_total.add(1, {"entity_type": entity_type})
    undo_tokens_active.add(1)


def record_undo_token_consumed(entity_type: str):
    undo_tokens_consumed_total.add(1, {"entity_type": entity_type})
    undo_tokens_active.add(-1)


def record_undo_tokens_expired(count: int, reason: str):
    """Record tokens dropped by the timer, the sweep or an active check."""
    if count:
        undo_tokens_expired_total.add(count, {"reason": reason})
        undo_tokens_active.add(-count)


def record_rollback_failure(entity_type: str):
    rollback_failures_total.add(1, {"entity_type": entity_type})


def record_undo_tokens_dropped(count: int):
    """Record live tokens discarded on shutdown without counting them expired."""
    if count:
        undo_tokens_active.add(-count)
