"""
SettlementWorker — consumer of the payments queue.

Every job runs between ledger.begin_event and ledger.complete_event: a redelivered or
concurrently delivered event that finds its ledger row HANDLED or PROCESSING is skipped,
so settlement side effects happen at most once per provider event id.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from editions.core.config import get_admin_email, settings
from editions.core.errors import PreorderCompletionError, UnsupportedPaymentEventError
from editions.db.session import transaction
from editions.models.enums import LedgerStatus, OrderType
from editions.schemas.jobs import JobOptions
from editions.schemas.payments import (
    PAYMENT_FAILED_JOB,
    NormalizedPaymentEvent,
    PaymentAction,
    PreorderCompletion,
    SubscriptionRenewal,
    SubscriptionStarted,
)
from editions.services.email.types import AdminEmailType, EmailType
from editions.services.ledger.service import EventLedger
from editions.services.queue.service import JobQueue
from editions.services.settlement.preorders import PreorderSettlement
from editions.services.settlement.subscriptions import SubscriptionSettlement
from editions.utils.metrics import payment_events_total

logger = logging.getLogger(__name__)

SEND_EMAIL_JOB = "email.send"
ADMIN_EMAIL_JOB = "email.admin"


class SettlementWorker:
    def __init__(self, db: Session, queue: JobQueue):
        self.db = db
        self.queue = queue
        self.ledger = EventLedger(db)
        self.preorders = PreorderSettlement(db)
        self.subscriptions = SubscriptionSettlement(db)

    def process(self, job_name: str, payload: dict[str, Any]) -> str:
        """Returns "handled" or "skipped". Any failure marks the ledger FAILED and re-raises."""
        event = NormalizedPaymentEvent.model_validate(payload)
        record = self.ledger.begin_event(event.event_id, event.provider_event_type, event.raw_payload or None)
        if record is None:
            payment_events_total.labels(outcome="skipped").inc()
            return "skipped"

        try:
            outbound = self._dispatch(job_name, event)
        except Exception as e:
            self.db.rollback()
            self.ledger.complete_event(
                event.event_id,
                event.provider_event_type,
                LedgerStatus.FAILED,
                f"{type(e).__name__}: {e}",
            )
            payment_events_total.labels(outcome="failed").inc()
            raise

        self.ledger.complete_event(event.event_id, event.provider_event_type, LedgerStatus.HANDLED)
        payment_events_total.labels(outcome="handled").inc()
        self._send(event.event_id, outbound)
        return "handled"

    def _dispatch(self, job_name: str, event: NormalizedPaymentEvent) -> list[tuple[str, dict]]:
        if job_name == PAYMENT_FAILED_JOB or not event.success:
            raise UnsupportedPaymentEventError(
                f"Failed payment events are not handled (event_id={event.event_id}, type={event.provider_event_type})"
            )
        if event.action == PaymentAction.SUBSCRIPTION_STARTED:
            return self._subscription_started(event)
        if event.order_type == OrderType.PREORDER:
            return self._preorder(event)
        if event.order_type == OrderType.SUBSCRIPTION_RENEWAL:
            return self._renewal(event)
        raise UnsupportedPaymentEventError(
            f"No settlement for action={event.action.value} order_type={event.order_type}"
        )

    def _preorder(self, event: NormalizedPaymentEvent) -> list[tuple[str, dict]]:
        dto = PreorderCompletion(
            event_id=event.event_id,
            user_id=event.user_id,
            edition_id=event.edition_id or "",
            plan=event.plan,
            payment_link_id=event.payment_link_id or "",
            amount=event.amount,
            currency=event.currency,
            address_id=event.address_id,
        )
        try:
            with transaction(self.db):
                content = self.preorders.complete(dto)
        except PreorderCompletionError as e:
            if e.is_benign:
                logger.warning(
                    "preorder_completion_skipped",
                    extra={"event_id": event.event_id, "user_id": event.user_id, "status": e.status},
                )
                return []
            self.preorders.mark_pending_retry(event.user_id)
            raise
        except Exception:
            self.preorders.mark_pending_retry(event.user_id)
            raise

        return [
            (SEND_EMAIL_JOB, {
                "to": content["email"],
                "user_id": event.user_id,
                "template": EmailType.PREORDER_CONFIRMATION.value,
                "content": content,
            }),
            (ADMIN_EMAIL_JOB, {"template": AdminEmailType.NEW_PREORDER.value, "content": content}),
        ]

    def _renewal(self, event: NormalizedPaymentEvent) -> list[tuple[str, dict]]:
        dto = SubscriptionRenewal(
            event_id=event.event_id,
            subscription_id=event.subscription_id or "",
            subscription_plan_id=event.subscription_plan_id or "",
            provider_subscription_id=event.provider_subscription_id,
            invoice_id=event.invoice_id,
            current_period_start=event.current_period_start,
            current_period_end=event.current_period_end,
            address_id=event.address_id,
            is_new_subscription=event.is_new_subscription,
        )
        with transaction(self.db):
            content = self.subscriptions.renew(dto)
        if content is None:
            return []

        if dto.is_new_subscription:
            customer, admin = EmailType.SUBSCRIPTION_STARTED, AdminEmailType.SUBSCRIPTION_STARTED
        else:
            customer, admin = EmailType.SUBSCRIPTION_RENEWED, AdminEmailType.SUBSCRIPTION_RENEWED
        return [
            (SEND_EMAIL_JOB, {
                "to": content["email"],
                "user_id": content["user_id"],
                "template": customer.value,
                "content": content,
            }),
            (ADMIN_EMAIL_JOB, {"template": admin.value, "content": content}),
        ]

    def _subscription_started(self, event: NormalizedPaymentEvent) -> list[tuple[str, dict]]:
        dto = SubscriptionStarted(
            user_id=event.user_id,
            subscription_plan_id=event.subscription_plan_id or "",
            subscription_id=event.subscription_id,
        )
        content = self.subscriptions.acknowledge_started(dto)
        return [(ADMIN_EMAIL_JOB, {"template": AdminEmailType.SUBSCRIPTION_STARTED.value, "content": content})]

    def _send(self, event_id: str, outbound: list[tuple[str, dict]]) -> None:
        """Settlement is committed; a lost notification must not undo it."""
        for job_name, payload in outbound:
            if job_name == ADMIN_EMAIL_JOB and not get_admin_email():
                continue
            try:
                self.queue.add(
                    job_name,
                    payload,
                    JobOptions(
                        max_attempts=settings.emails_max_attempts,
                        backoff_delay=settings.emails_backoff_seconds,
                        dedup_key=f"{payload['template']}:{event_id}",
                    ),
                )
            except Exception as e:
                logger.exception(
                    "settlement_email_enqueue_failed",
                    extra={"event_id": event_id, "job_name": job_name, "error": str(e)},
                )
