"""
Prometheus metrics endpoint.

Exposes request and webhook delivery metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Webhook Delivery Metrics
# ============================================

webhook_deliveries_created = Counter(
    'webhook_deliveries_created_total',
    'Total webhook deliveries created',
    ['event']
)

webhook_attempts = Counter(
    'webhook_attempts_total',
    'Total webhook HTTP attempts',
    ['event', 'outcome']
)

webhook_deliveries_abandoned = Counter(
    'webhook_deliveries_abandoned_total',
    'Total webhook deliveries abandoned',
    ['event']
)

webhook_attempt_duration = Histogram(
    'webhook_attempt_duration_seconds',
    'Webhook HTTP attempt duration in seconds',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

webhook_sweep_processed = Counter(
    'webhook_sweep_processed_total',
    'Deliveries processed by the retry sweep',
    ['result']
)

# ============================================
# Rate Limiting Metrics
# ============================================

rate_limit_exceeded = Counter(
    'rate_limit_exceeded_total',
    'Total requests blocked by rate limiting',
    ['action']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_delivery_created(event: str):
    """Record a new delivery record."""
    webhook_deliveries_created.labels(event=event).inc()


def track_webhook_attempt(event: str, outcome: str, duration_ms: int | None):
    """Record one HTTP attempt (outcome: success, retrying, abandoned)."""
    webhook_attempts.labels(event=event, outcome=outcome).inc()
    if duration_ms is not None:
        webhook_attempt_duration.observe(duration_ms / 1000)


def track_delivery_abandoned(event: str):
    """Record a delivery reaching the abandoned state."""
    webhook_deliveries_abandoned.labels(event=event).inc()


def track_sweep_result(result: str):
    """Record one sweep item (result: succeeded, retrying, abandoned, skipped, error)."""
    webhook_sweep_processed.labels(result=result).inc()


def track_rate_limit_exceeded(action: str):
    """Record a rate limit block."""
    rate_limit_exceeded.labels(action=action).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
