"""
PaymentWebhookService — the ingestion edge: verify, normalise, peek at the ledger, enqueue.

The ledger row itself is written by the settlement worker; here it is only read. A replay
of a settled or in-flight event is acknowledged without touching the queue, a replay of a
FAILED one is queued again.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from editions.core.celery_app import PAYMENTS_QUEUE
from editions.core.config import settings
from editions.models.enums import LedgerStatus
from editions.schemas.jobs import JobOptions
from editions.services.ledger.service import EventLedger
from editions.services.payments.provider import StripePaymentProvider
from editions.services.queue.service import JobQueue
from editions.utils.metrics import payment_events_total

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    outcome: str  # ignored | duplicate | queued
    event_id: str | None = None
    job_id: str | None = None


class PaymentWebhookService:
    def __init__(self, db: Session, provider: StripePaymentProvider, queue: JobQueue):
        self.db = db
        self.provider = provider
        self.queue = queue
        self.ledger = EventLedger(db)

    def ingest(self, raw_body: bytes, signature: str | None) -> IngestResult:
        """Raises InvalidWebhookSignature for unverifiable input."""
        event = self.provider.verify_signature_and_parse(raw_body, signature)
        if event is None:
            payment_events_total.labels(outcome="ignored").inc()
            return IngestResult(outcome="ignored")

        record = self.ledger.get(event.event_id)
        if record is not None and record.status in (LedgerStatus.HANDLED.value, LedgerStatus.PROCESSING.value):
            payment_events_total.labels(outcome="duplicate").inc()
            logger.info(
                "webhook_event_duplicate",
                extra={"event_id": event.event_id, "event_type": event.provider_event_type, "status": record.status},
            )
            return IngestResult(outcome="duplicate", event_id=event.event_id)

        # A FAILED event goes back on the queue without the enqueue claim, which may still be
        # held from the first delivery. begin_event lets only one retry take it.
        retrying = record is not None and record.status == LedgerStatus.FAILED.value

        handle = self.queue.enqueue(
            PAYMENTS_QUEUE,
            event.job_name,
            event.model_dump(mode="json"),
            JobOptions(
                max_attempts=settings.payments_max_attempts,
                backoff_delay=settings.payments_backoff_seconds,
                dedup_key=None if retrying else event.event_id,
            ),
        )
        if handle is None:
            payment_events_total.labels(outcome="duplicate").inc()
            return IngestResult(outcome="duplicate", event_id=event.event_id)

        payment_events_total.labels(outcome="queued").inc()
        logger.info(
            "webhook_event_queued",
            extra={"event_id": event.event_id, "event_type": event.provider_event_type, "task_id": handle.id},
        )
        return IngestResult(outcome="queued", event_id=event.event_id, job_id=handle.id)
