"""
Celery task: consume the editions queue.

edition.release_next    beat timer, release the earliest due edition
edition.release         {"edition_number": n}, release a specific edition
edition.expire_access   daily sweep of lapsed digital grants
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from editions.core.celery_app import EDITIONS_QUEUE, QUEUE_TASKS, celery_app
from editions.core.config import settings
from editions.core.errors import NonRetriableError
from editions.db.session import SessionLocal
from editions.services.access.cache import EntitlementCache
from editions.services.notifications.service import NotificationFanout
from editions.services.queue.service import JobQueue
from editions.services.releases.service import EditionReleaseService, ReleaseResult
from editions.workers.base import QueueTask

logger = logging.getLogger(__name__)


def _summary(result: ReleaseResult | None) -> dict:
    if result is None:
        return {"released": None}
    return {
        "released": result.edition.number if result.edition else None,
        "unlocked_count": result.unlocked_count,
        "affected_users": len(result.affected_users),
        "noop": result.noop,
    }


class EditionJobHandler:
    def __init__(self, db: Session, releases: EditionReleaseService):
        self.db = db
        self.releases = releases

    def handle(self, job_name: str, payload: dict[str, Any]) -> dict:
        if job_name == "edition.release_next":
            return _summary(self.releases.release_next_pending_edition())
        if job_name == "edition.release":
            number = payload.get("edition_number")
            if number is None:
                raise NonRetriableError("edition.release requires edition_number")
            return _summary(self.releases.release_edition(int(number)))
        if job_name == "edition.expire_access":
            return {"expired_users": self.releases.expire_lapsed_access()}
        logger.warning("edition_job_unknown", extra={"job_name": job_name})
        return {"status": "ignored"}


@celery_app.task(
    bind=True,
    base=QueueTask,
    name=QUEUE_TASKS[EDITIONS_QUEUE],
    queue_name=EDITIONS_QUEUE,
)
def process_edition_job(
    self,
    job_name: str,
    payload: dict | None = None,
    max_attempts: int = settings.editions_max_attempts,
    backoff_delay: int = settings.editions_backoff_seconds,
) -> dict:
    db = SessionLocal()
    try:
        releases = EditionReleaseService(db, EntitlementCache(), NotificationFanout(JobQueue()))
        handler = EditionJobHandler(db, releases)
        return self.run_job(handler.handle, job_name, payload or {}, max_attempts, backoff_delay)
    finally:
        db.close()
