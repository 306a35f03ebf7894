"""
NotificationFanout — split one release into bounded outbound email jobs.

One job per batch of recipients: never one job per user (queue flood), never one job for
everyone (a partial failure could not be retried as a unit). Batches are independent:
one that cannot be enqueued does not stop the rest.
"""
import logging
from dataclasses import dataclass, field

from pydantic import BaseModel

from editions.core.celery_app import EMAILS_QUEUE
from editions.core.config import settings
from editions.schemas.jobs import JobOptions
from editions.services.access.cache import chunked
from editions.services.email.types import EmailType
from editions.services.queue.service import JobQueue

logger = logging.getLogger(__name__)

RELEASE_EMAIL_JOB = "email.release"


class Recipient(BaseModel):
    user_id: str
    email: str
    name: str | None = None


@dataclass
class FanoutResult:
    batch_count: int = 0
    enqueued: int = 0
    failed_batches: list[int] = field(default_factory=list)  # zero-based batch indexes


class NotificationFanout:
    def __init__(self, queue: JobQueue, batch_size: int | None = None) -> None:
        self.queue = queue
        self.batch_size = batch_size or settings.notification_batch_size

    def send_edition_release_emails(
        self,
        edition_number: int,
        users: list[Recipient],
        email_type: EmailType = EmailType.NEW_EDITION_RELEASED,
    ) -> FanoutResult:
        """
        Enqueue one email.release job per batch. A batch that fails to enqueue is logged and
        recorded in failed_batches; the remaining batches are still enqueued.
        """
        if not users:
            logger.info("release_emails_no_recipients", extra={"edition_number": edition_number})
            return FanoutResult()

        email_type = EmailType(email_type)
        batches = chunked(users, self.batch_size)
        logger.info(
            "release_emails_fanout_started",
            extra={
                "edition_number": edition_number,
                "affected_users": len(users),
                "batch_count": len(batches),
            },
        )
        result = FanoutResult(batch_count=len(batches))
        for index, batch in enumerate(batches):
            try:
                handle = self.queue.enqueue(
                    EMAILS_QUEUE,
                    RELEASE_EMAIL_JOB,
                    {
                        "edition_number": edition_number,
                        "email_type": email_type.value,
                        "recipients": [r.model_dump() for r in batch],
                    },
                    JobOptions(
                        max_attempts=settings.emails_max_attempts,
                        backoff_delay=settings.emails_backoff_seconds,
                        dedup_key=f"{email_type.value}:{edition_number}:{index}",
                    ),
                )
            except Exception as e:
                result.failed_batches.append(index)
                logger.exception(
                    "release_emails_batch_enqueue_failed",
                    extra={
                        "edition_number": edition_number,
                        "batch_index": index + 1,
                        "batch_count": len(batches),
                        "batch_size": len(batch),
                        "error": str(e),
                    },
                )
                continue
            if handle is not None:
                result.enqueued += 1
            logger.info(
                "release_emails_batch_enqueued",
                extra={
                    "edition_number": edition_number,
                    "batch_index": index + 1,
                    "batch_count": len(batches),
                    "batch_size": len(batch),
                },
            )
        if result.failed_batches:
            logger.error(
                "release_emails_fanout_incomplete",
                extra={
                    "edition_number": edition_number,
                    "batch_count": len(batches),
                    "status": f"failed={result.failed_batches}",
                },
            )
        return result
