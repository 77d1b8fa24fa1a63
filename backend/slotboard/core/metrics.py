"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total slot booking attempts',
    ['status']  # success, conflict, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Slot booking latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Reminder metrics
reminders = Counter(
    'reminders_total',
    'Reminder delivery attempts',
    ['result']  # sent, failed
)

reminder_cycle_duration = Histogram(
    'reminder_cycle_seconds',
    'Duration of one reminder dispatch cycle',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0]
)

reminder_cycles_skipped = Counter(
    'reminder_cycles_skipped_total',
    'Reminder cycles skipped because another cycle was running'
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, conflict, error"""
    booking_attempts.labels(status=status).inc()


def record_reminder(sent: bool):
    result = "sent" if sent else "failed"
    reminders.labels(result=result).inc()
