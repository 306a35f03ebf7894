"""
Celery task: consume the emails queue (release batches, customer and admin messages).
"""
from editions.core.celery_app import EMAILS_QUEUE, QUEUE_TASKS, celery_app
from editions.core.config import settings
from editions.db.session import SessionLocal
from editions.services.email.client import EmailClient
from editions.services.email.handler import EmailJobHandler
from editions.workers.base import QueueTask


@celery_app.task(
    bind=True,
    base=QueueTask,
    name=QUEUE_TASKS[EMAILS_QUEUE],
    queue_name=EMAILS_QUEUE,
)
def process_email_job(
    self,
    job_name: str,
    payload: dict,
    max_attempts: int = settings.emails_max_attempts,
    backoff_delay: int = settings.emails_backoff_seconds,
) -> dict:
    db = SessionLocal()
    client = EmailClient()
    try:
        handler = EmailJobHandler(db, client)
        return self.run_job(handler.handle, job_name, payload, max_attempts, backoff_delay)
    finally:
        client.close()
        db.close()
