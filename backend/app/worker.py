"""
Celery entrypoint

    celery -A app.worker worker -B -Q default,high_priority
"""
from celery.signals import setup_logging

from app.core.celery_app import celery_app
from app.core.logging import init_logging
import app.tasks  # noqa: F401  register tasks


@setup_logging.connect
def configure_worker_logging(**kwargs):
    # Use the application's handlers instead of Celery's default ones
    init_logging()


__all__ = ["celery_app"]
