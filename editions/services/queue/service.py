"""
JobQueue — producer side of the three durable Celery queues.

Jobs carry their own retry policy (max_attempts, exponential backoff base) in the message,
so one queue can hold jobs with different policies; the consumer side is editions.workers.base.
"""
import logging
from typing import Any
from uuid import uuid4

from celery import Celery

from editions.core.celery_app import (
    EDITIONS_QUEUE,
    EMAILS_QUEUE,
    PAYMENTS_QUEUE,
    QUEUE_TASKS,
    celery_app,
)
from editions.core.errors import FatalConfigurationError
from editions.schemas.jobs import JobHandle, JobOptions
from editions.services.idempotency import IdempotencyStore
from editions.utils.metrics import jobs_enqueued_total

logger = logging.getLogger(__name__)

JOB_PREFIX_QUEUES = {
    "payment": PAYMENTS_QUEUE,
    "email": EMAILS_QUEUE,
    "edition": EDITIONS_QUEUE,
}


class JobQueue:
    def __init__(self, app: Celery | None = None, dedup: IdempotencyStore | None = None) -> None:
        self.app = app or celery_app
        self._dedup = dedup

    @property
    def dedup(self) -> IdempotencyStore:
        if self._dedup is None:
            self._dedup = IdempotencyStore()
        return self._dedup

    def enqueue(
        self,
        queue_name: str,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions | None = None,
    ) -> JobHandle | None:
        """
        Put a job on a queue. Returns None when dedup_key was already used (job already queued).
        """
        task_name = QUEUE_TASKS.get(queue_name)
        if task_name is None:
            raise FatalConfigurationError(f"Unknown queue={queue_name}")
        options = options or JobOptions()

        dedup_claim = None
        if options.dedup_key:
            dedup_claim = f"job:{queue_name}:{job_name}:{options.dedup_key}"
            if not self.dedup.check_and_set(dedup_claim):
                logger.info(
                    "job_dedup_skipped",
                    extra={"queue": queue_name, "job_name": job_name, "status": options.dedup_key},
                )
                return None
            task_id = f"{job_name}-{options.dedup_key}"
        else:
            task_id = str(uuid4())

        try:
            self.app.send_task(
                task_name,
                kwargs={
                    "job_name": job_name,
                    "payload": payload,
                    "max_attempts": options.max_attempts,
                    "backoff_delay": options.backoff_delay,
                },
                queue=queue_name,
                task_id=task_id,
                countdown=options.delay or None,
                ignore_result=options.remove_on_complete,
            )
        except Exception:
            if dedup_claim:
                self.dedup.release(dedup_claim)
            raise

        jobs_enqueued_total.labels(queue=queue_name).inc()
        logger.info("job_enqueued", extra={"queue": queue_name, "job_name": job_name, "task_id": task_id})
        return JobHandle(id=task_id, queue=queue_name, job_name=job_name)

    def add(
        self,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions | None = None,
    ) -> JobHandle | None:
        """Route by job-name prefix: payment.* / email.* / edition.*"""
        prefix = job_name.split(".", 1)[0]
        queue_name = JOB_PREFIX_QUEUES.get(prefix)
        if queue_name is None:
            logger.warning("job_no_matching_queue", extra={"job_name": job_name})
            return None
        return self.enqueue(queue_name, job_name, payload, options)
