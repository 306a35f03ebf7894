"""
EmailJobHandler — consumer of the emails queue.

email.release  one batch of edition-release recipients; each delivery is logged under a
               dedup key so a retried batch only resends what failed
email.send     one templated customer message
email.admin    notification to the configured admin address
"""
import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from editions.core.config import edition_link, get_admin_email
from editions.core.errors import EditionNotFoundError, EmailDeliveryError, TransientExternalError
from editions.models.edition import Edition
from editions.models.email_log import EmailLog
from editions.services.email.client import EmailClient
from editions.services.notifications.service import RELEASE_EMAIL_JOB, Recipient

logger = logging.getLogger(__name__)


def release_dedup_key(email_type: str, edition_number: int, user_id: str) -> str:
    return f"{email_type}:{edition_number}:{user_id}"


class EmailJobHandler:
    def __init__(self, db: Session, client: EmailClient):
        self.db = db
        self.client = client

    def handle(self, job_name: str, payload: dict[str, Any]) -> dict:
        if job_name == RELEASE_EMAIL_JOB:
            return self.send_release_batch(payload)
        if job_name == "email.send":
            return self.send_one(payload)
        if job_name == "email.admin":
            return self.send_admin(payload)
        logger.warning("email_job_unknown", extra={"job_name": job_name})
        return {"status": "ignored"}

    def send_release_batch(self, payload: dict[str, Any]) -> dict:
        edition_number = int(payload["edition_number"])
        email_type = payload["email_type"]
        recipients = [Recipient.model_validate(r) for r in payload.get("recipients") or []]

        edition = self.db.query(Edition).filter(Edition.number == edition_number).one_or_none()
        if edition is None:
            raise EditionNotFoundError(edition_number)

        sent = skipped = rejected = 0
        failed: list[str] = []
        for recipient in recipients:
            dedup_key = release_dedup_key(email_type, edition_number, recipient.user_id)
            if self.db.query(EmailLog.id).filter(EmailLog.dedup_key == dedup_key).first():
                skipped += 1
                continue
            content = {
                "name": recipient.name or "Reader",
                "editionTitle": edition.title,
                "editionCode": edition.code,
                "editionLink": edition_link(edition.code),
            }
            try:
                message_id = self.client.send(recipient.email, email_type, content)
            except EmailDeliveryError as e:
                # permanent for this address; retrying the batch will not help it
                rejected += 1
                logger.error("release_email_rejected", extra={"user_id": recipient.user_id, "error": str(e)})
                continue
            except TransientExternalError as e:
                failed.append(recipient.user_id)
                logger.warning("release_email_failed", extra={"user_id": recipient.user_id, "error": str(e)})
                continue
            self._log_delivery(recipient.user_id, recipient.email, email_type, message_id, dedup_key)
            sent += 1

        logger.info(
            "release_email_batch_done",
            extra={
                "edition_number": edition_number,
                "batch_size": len(recipients),
                "status": f"sent={sent} skipped={skipped} rejected={rejected} failed={len(failed)}",
            },
        )
        if failed:
            raise TransientExternalError(
                f"{len(failed)} of {len(recipients)} release emails failed for edition {edition_number}"
            )
        return {"sent": sent, "skipped": skipped, "rejected": rejected}

    def send_one(self, payload: dict[str, Any]) -> dict:
        to = payload["to"]
        template = payload["template"]
        message_id = self.client.send(to, template, payload.get("content") or {})
        self._log_delivery(payload.get("user_id"), to, template, message_id)
        return {"sent": 1}

    def send_admin(self, payload: dict[str, Any]) -> dict:
        admin = get_admin_email()
        if not admin:
            logger.warning("admin_email_not_configured", extra={"status": payload.get("template")})
            return {"sent": 0}
        message_id = self.client.send(admin, payload["template"], payload.get("content") or {})
        self._log_delivery(None, admin, payload["template"], message_id)
        return {"sent": 1}

    def _log_delivery(
        self,
        user_id: str | None,
        to_email: str,
        template_key: str,
        message_id: str,
        dedup_key: str | None = None,
    ) -> None:
        self.db.add(
            EmailLog(
                user_id=user_id,
                to_email=to_email,
                template_key=template_key,
                dedup_key=dedup_key,
                provider_message_id=message_id or None,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # another delivery of the same batch got there first
            self.db.rollback()
            logger.info("email_log_duplicate", extra={"user_id": user_id, "status": dedup_key})
