"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Seat ledger metrics
registration_attempts = Counter(
    'registration_attempts_total',
    'Total registration attempts',
    ['outcome']  # confirmed, sold_out, already_registered, event_not_found, ...
)

registration_latency = Histogram(
    'registration_latency_seconds',
    'Registration request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

cancellations = Counter(
    'registration_cancellations_total',
    'Registration cancellations',
    ['outcome']  # cancelled, registration_not_found, not_owner, ...
)

capacity_adjustments = Counter(
    'capacity_adjustments_total',
    'Admin capacity adjustments',
    ['outcome']  # adjusted, capacity_below_demand, ...
)

seat_release_capped = Counter(
    'seat_release_capped_total',
    'Cancellations whose seat increment was absorbed by the total_seats cap'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# Collaborator metrics
notifications = Counter(
    'notifications_total',
    'Notification dispatch attempts',
    ['type', 'result']  # registration/reminder/cancellation, sent/skipped/failed
)

change_feed_dropped = Counter(
    'change_feed_dropped_total',
    'Change notifications dropped because a subscriber queue was full'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_registration_attempt(outcome: str):
    registration_attempts.labels(outcome=outcome).inc()


def record_cancellation(outcome: str):
    cancellations.labels(outcome=outcome).inc()


def record_capacity_adjustment(outcome: str):
    capacity_adjustments.labels(outcome=outcome).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


def record_notification(notification_type: str, result: str):
    """Result: sent, skipped, failed"""
    notifications.labels(type=notification_type, result=result).inc()
