"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['outcome']  # checkout_created, duplicate, no_availability, invalid_slot, checkout_failed
)

checkout_latency = Histogram(
    'checkout_latency_seconds',
    'Latency of checkout creation at the payment provider',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

reservation_transitions = Counter(
    'reservation_transitions_total',
    'Reservation status transitions',
    ['status']  # confirmed, cancelled
)

expired_reservations = Counter(
    'expired_reservations_total',
    'Pending reservations released by the expiry sweep'
)

# Webhook metrics
webhook_events = Counter(
    'webhook_events_total',
    'Payment provider events received',
    ['kind', 'result']  # kind: checkout_completed/checkout_expired/unknown/invalid
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Transaction retries due to serialization conflicts'
)

compensation_failures = Counter(
    'compensation_failures_total',
    'Failed seat releases after checkout failure (stuck seats)'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_booking_attempt(outcome: str):
    """Record booking attempt by outcome."""
    booking_attempts.labels(outcome=outcome).inc()

def record_transition(status: str):
    reservation_transitions.labels(status=status).inc()

def record_webhook_event(kind: str, result: str):
    webhook_events.labels(kind=kind, result=result).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
