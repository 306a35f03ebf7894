"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
editions_released_total = Counter(
    "editions_released_total",
    "Editions transitioned to ACTIVE by the release engine",
)

edition_release_noop_total = Counter(
    "edition_release_noop_total",
    "Release attempts that found the edition already ACTIVE/CLOSED",
)

edition_access_unlocked_total = Counter(
    "edition_access_unlocked_total",
    "Access grants promoted SCHEDULED -> ACTIVE",
)

edition_access_expired_total = Counter(
    "edition_access_expired_total",
    "Users with grants moved ACTIVE -> EXPIRED by the sweep",
)

payment_events_total = Counter(
    "payment_events_total",
    "Payment events by ledger outcome",
    ["outcome"],  # queued, duplicate, ignored, skipped, handled, failed
)

jobs_enqueued_total = Counter(
    "jobs_enqueued_total",
    "Jobs put on a queue",
    ["queue"],
)

jobs_dead_total = Counter(
    "jobs_dead_total",
    "Jobs that exhausted attempts or were non-retriable",
    ["queue"],
)

emails_sent_total = Counter(
    "emails_sent_total",
    "Outbound emails by template and status",
    ["template", "status"],
)

access_cache_writes_total = Counter(
    "access_cache_writes_total",
    "Entitlement cache writes",
    ["status"],  # success, error
)

# Histograms
email_request_duration_seconds = Histogram(
    "email_request_duration_seconds",
    "Email provider request latency",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

release_duration_seconds = Histogram(
    "release_duration_seconds",
    "Edition release transaction + fan-out duration",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)


router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
