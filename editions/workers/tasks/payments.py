"""
Celery task: consume the payments queue (settlement of normalised payment events).
"""
from editions.core.celery_app import PAYMENTS_QUEUE, QUEUE_TASKS, celery_app
from editions.core.config import settings
from editions.db.session import SessionLocal
from editions.services.queue.service import JobQueue
from editions.services.settlement.worker import SettlementWorker
from editions.workers.base import QueueTask


@celery_app.task(
    bind=True,
    base=QueueTask,
    name=QUEUE_TASKS[PAYMENTS_QUEUE],
    queue_name=PAYMENTS_QUEUE,
)
def process_payment_job(
    self,
    job_name: str,
    payload: dict,
    max_attempts: int = settings.payments_max_attempts,
    backoff_delay: int = settings.payments_backoff_seconds,
) -> str:
    db = SessionLocal()
    try:
        worker = SettlementWorker(db, JobQueue())
        return self.run_job(worker.process, job_name, payload, max_attempts, backoff_delay)
    finally:
        db.close()
