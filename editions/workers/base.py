"""
Consumer side of the job queues.

QueueTask.run_job dispatches a job to a handler and applies the job's own retry policy:
exponential backoff (backoff_delay * 2**retries) up to max_attempts. Jobs that run out of
attempts, or raise a non-retriable error, are written to failed_jobs and re-raised so the
result backend also shows them as FAILURE.
"""
import logging
from typing import Any, Callable

from celery import Task
from pydantic import ValidationError

from editions.core.errors import NonRetriableError
from editions.db.session import SessionLocal
from editions.models.failed_job import FailedJob
from editions.utils.metrics import jobs_dead_total

logger = logging.getLogger(__name__)

NON_RETRIABLE = (NonRetriableError, ValidationError, NotImplementedError)


def retry_countdown(backoff_delay: int, retries: int) -> int:
    return backoff_delay * (2 ** retries)


def record_failed_job(
    queue: str,
    job_name: str,
    payload: dict[str, Any],
    error: BaseException,
    attempts: int,
    task_id: str | None = None,
) -> None:
    """Persist a dead job. Failures here are logged, never raised over the original error."""
    db = SessionLocal()
    try:
        db.add(
            FailedJob(
                task_id=task_id,
                queue=queue,
                job_name=job_name,
                payload=payload,
                error=f"{type(error).__name__}: {error}",
                attempts=attempts,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("failed_job_record_error", extra={"queue": queue, "job_name": job_name})
    finally:
        db.close()
    jobs_dead_total.labels(queue=queue).inc()


class QueueTask(Task):
    queue_name: str = ""

    def run_job(
        self,
        handler: Callable[[str, dict[str, Any]], Any],
        job_name: str,
        payload: dict[str, Any],
        max_attempts: int,
        backoff_delay: int,
    ) -> Any:
        retries = self.request.retries or 0
        attempt = retries + 1
        logger.info(
            "job_started",
            extra={"queue": self.queue_name, "job_name": job_name, "task_id": self.request.id, "attempt": attempt},
        )
        try:
            result = handler(job_name, payload)
        except NON_RETRIABLE as exc:
            logger.error(
                "job_failed_non_retriable",
                extra={"queue": self.queue_name, "job_name": job_name, "task_id": self.request.id, "error": str(exc)},
            )
            record_failed_job(self.queue_name, job_name, payload, exc, attempt, self.request.id)
            raise
        except Exception as exc:
            if attempt >= max_attempts:
                logger.error(
                    "job_attempts_exhausted",
                    extra={
                        "queue": self.queue_name,
                        "job_name": job_name,
                        "task_id": self.request.id,
                        "attempt": attempt,
                        "error": str(exc),
                    },
                )
                record_failed_job(self.queue_name, job_name, payload, exc, attempt, self.request.id)
                raise
            countdown = retry_countdown(backoff_delay, retries)
            logger.warning(
                "job_retry_scheduled",
                extra={
                    "queue": self.queue_name,
                    "job_name": job_name,
                    "task_id": self.request.id,
                    "attempt": attempt,
                    "error": str(exc),
                },
            )
            raise self.retry(exc=exc, countdown=countdown, max_retries=max_attempts - 1)

        logger.info(
            "job_completed",
            extra={"queue": self.queue_name, "job_name": job_name, "task_id": self.request.id},
        )
        return result
