"""
EventLedger — durable idempotency guard over payment-provider event ids.

Every side-effecting payment handler is wrapped by begin_event / complete_event.
The unique primary key insert is the only thing standing between at-least-once
delivery and a double settlement.
"""
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from editions.models.enums import LedgerStatus
from editions.models.payment_event import PaymentEventRecord
from editions.utils.time import utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 4000


class EventLedger:
    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> PaymentEventRecord | None:
        return self.db.get(PaymentEventRecord, event_id)

    def is_handled(self, event_id: str) -> bool:
        record = self.get(event_id)
        return record is not None and record.status == LedgerStatus.HANDLED.value

    def begin_event(
        self,
        event_id: str,
        event_type: str,
        raw_payload: str | None = None,
    ) -> PaymentEventRecord | None:
        """
        Claim an event for processing.

        Returns the PROCESSING record if the caller now owns the event, None if it must skip
        (already HANDLED, or another worker holds it in PROCESSING).
        A FAILED record is flipped back to PROCESSING (retry path).
        """
        existing = self.get(event_id)
        if existing is None:
            record = PaymentEventRecord(
                id=event_id,
                type=event_type,
                status=LedgerStatus.PROCESSING.value,
                raw_payload=raw_payload,
            )
            try:
                self.db.add(record)
                self.db.commit()
                logger.info("ledger_event_begun", extra={"event_id": event_id, "event_type": event_type})
                return record
            except IntegrityError:
                # lost the insert race to another delivery
                self.db.rollback()
            existing = self.get(event_id)

        if existing is None:
            # Conflict on insert but row gone: treat as owned elsewhere, the redelivery will retry.
            logger.warning("ledger_event_vanished", extra={"event_id": event_id})
            return None

        if existing.status == LedgerStatus.HANDLED.value:
            logger.info("ledger_event_duplicate", extra={"event_id": event_id, "status": existing.status})
            return None

        if existing.status == LedgerStatus.PROCESSING.value:
            logger.info("ledger_event_in_progress", extra={"event_id": event_id, "status": existing.status})
            return None

        # FAILED -> PROCESSING, compare-and-swap so two retries cannot both win
        result = self.db.execute(
            update(PaymentEventRecord)
            .where(
                PaymentEventRecord.id == event_id,
                PaymentEventRecord.status == LedgerStatus.FAILED.value,
            )
            .values(
                status=LedgerStatus.PROCESSING.value,
                attempts=PaymentEventRecord.attempts + 1,
                error_message=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            logger.info("ledger_event_retry_lost_race", extra={"event_id": event_id})
            return None

        self.db.refresh(existing)
        logger.info(
            "ledger_event_retry",
            extra={"event_id": event_id, "event_type": event_type, "attempt": existing.attempts},
        )
        return existing

    def complete_event(
        self,
        event_id: str,
        event_type: str,
        status: LedgerStatus,
        error_message: str | None = None,
    ) -> None:
        """Set terminal status. HANDLED stamps handled_at; FAILED keeps the error for diagnostics."""
        status = LedgerStatus(status)
        if status == LedgerStatus.PROCESSING:
            raise ValueError("complete_event requires HANDLED or FAILED")

        values: dict = {"status": status.value, "type": event_type, "updated_at": utcnow()}
        if status == LedgerStatus.HANDLED:
            values["handled_at"] = utcnow()
            values["error_message"] = None
        else:
            values["error_message"] = (error_message or "unknown error")[:MAX_ERROR_LENGTH]

        result = self.db.execute(
            update(PaymentEventRecord)
            .where(PaymentEventRecord.id == event_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            logger.warning("ledger_complete_missing_event", extra={"event_id": event_id, "status": status.value})
            return
        log = logger.info if status == LedgerStatus.HANDLED else logger.warning
        log(
            "ledger_event_completed",
            extra={"event_id": event_id, "event_type": event_type, "status": status.value, "error": error_message},
        )
