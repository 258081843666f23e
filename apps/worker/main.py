"""Celery worker entrypoint.

Run the worker with:  celery -A apps.worker.main:celery_app worker --loglevel=info
Run the scheduler with: celery -A apps.worker.main:celery_app beat --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in nexustech.tasks package - no autodiscovery.

Logging Convention:
- All task log entries include request_id, task_name, task_id when available
- Tasks accept `request_id: str | None = None` parameter for correlation
- Tasks call configure_task_logging() first and clear_task_context() last
"""

from celery.signals import worker_process_init

from nexustech.celery import celery_app
from nexustech.logging import configure_logging, get_logger

# Import tasks to register them with Celery
from nexustech.tasks import (  # noqa: F401
    cleanup_old_conversations_job,
    monthly_allowance_reset_job,
)


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when worker process starts.

    Worker logs use the same JSON structured format as the FastAPI
    application, with task_name and task_id bound per task.
    """
    configure_logging()
    logger = get_logger(__name__)
    logger.info("celery_worker_started", queue=celery_app.conf.task_default_queue)


__all__ = ["celery_app"]
