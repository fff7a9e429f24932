"""Prometheus metrics for Nongki."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

router = APIRouter(tags=["monitoring"])


# Push delivery metrics
push_deliveries = Counter(
    'nongki_push_deliveries_total',
    'Total number of push deliveries by outcome',
    ['event_type', 'status', 'failure_kind']
)

push_batches = Counter(
    'nongki_push_batches_total',
    'Total number of notification dispatch batches',
    ['event_type']
)

push_batch_duration = Histogram(
    'nongki_push_batch_duration_seconds',
    'Notification batch duration in seconds',
    ['event_type'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

push_invalid_endpoints = Counter(
    'nongki_push_invalid_endpoints_total',
    'Endpoints reported permanently invalid by the gateway'
)

push_dispatch_errors = Counter(
    'nongki_push_dispatch_errors_total',
    'Dispatches that could not run',
    ['event_type', 'error_type']
)


@router.get("/metrics", response_class=Response)
async def get_metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
