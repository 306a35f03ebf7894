"""
Celery application: broker and result backend from settings.
Three queues: emails (outbound messages), payments (settlement), editions (release timers).
Tasks are in editions.workers.tasks.
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from editions.core.config import settings
from editions.core.logging import configure_logging

EMAILS_QUEUE = "emails"
PAYMENTS_QUEUE = "payments"
EDITIONS_QUEUE = "editions"

QUEUE_TASKS = {
    EMAILS_QUEUE: "editions.workers.tasks.emails.process_email_job",
    PAYMENTS_QUEUE: "editions.workers.tasks.payments.process_payment_job",
    EDITIONS_QUEUE: "editions.workers.tasks.editions.process_edition_job",
}

celery_app = Celery(
    "editions",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "editions.workers.tasks.emails",
        "editions.workers.tasks.payments",
        "editions.workers.tasks.editions",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=3600,
    result_expires=None,  # failed results stay visible
    task_default_queue=EDITIONS_QUEUE,
    timezone=settings.edition_release_timezone,
    enable_utc=True,
    beat_schedule={
        "release-next-pending-edition": {
            "task": QUEUE_TASKS[EDITIONS_QUEUE],
            "schedule": crontab(**settings.release_cron_fields),
            "kwargs": {"job_name": "edition.release_next", "payload": {}},
            "options": {"queue": EDITIONS_QUEUE},
        },
        "expire-lapsed-access": {
            "task": QUEUE_TASKS[EDITIONS_QUEUE],
            "schedule": crontab(minute="15", hour="3"),
            "kwargs": {"job_name": "edition.expire_access", "payload": {}},
            "options": {"queue": EDITIONS_QUEUE},
        },
    },
)

celery_app.conf.task_routes = {task: {"queue": queue} for queue, task in QUEUE_TASKS.items()}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()
