import logging

from celery import Celery, Task
from kombu import Queue

from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.auth_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # ==================== Reliability ====================
    # Ack after completion so a crashed worker does not lose the task
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,

    # ==================== Retries ====================
    task_default_retry_delay=30,
    task_max_retries=3,
    broker_connection_retry_on_startup=True,

    # ==================== Queues ====================
    task_queues=(
        Queue('default', routing_key='default'),
        Queue('high_priority', routing_key='high'),
    ),
    task_default_queue='default',
    task_default_routing_key='default',

    # Verification emails sit in front of a waiting user
    task_routes={
        'app.tasks.auth_tasks.send_two_factor_code_email': {'queue': 'high_priority'},
    },

    # ==================== Beat ====================
    beat_schedule={
        'purge-expired-two-factor-codes': {
            'task': 'app.tasks.auth_tasks.purge_expired_two_factor_codes',
            'schedule': float(settings.TWO_FACTOR_PURGE_INTERVAL_SECONDS),
        },
    },

    worker_send_task_events=True,
    task_track_started=True,
)


class BaseTask(Task):
    """Task base with logging hooks and backoff for transient network errors"""

    autoretry_for = (ConnectionError, TimeoutError)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(
            f"Task {self.name}[{task_id}] failed: {exc}\n"
            f"Exception info: {einfo}"
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(f"Task {self.name}[{task_id}] retrying due to: {exc}")
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Task {self.name}[{task_id}] completed successfully")
        super().on_success(retval, task_id, args, kwargs)


celery_app.Task = BaseTask
