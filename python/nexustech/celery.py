"""Celery application configuration.

Central configuration for Celery used by the worker, the beat scheduler and
any API code that enqueues work.

Usage:
    from nexustech.celery import celery_app

    celery_app.send_task("monthly_allowance_reset")

Beat schedule:
- monthly_allowance_reset: every hour on day 1 of the month (UTC). The reset
  itself is idempotent per month, so the extra runs are no-ops once it has
  succeeded.
- cleanup_old_conversations: daily.
"""

from celery import Celery
from celery.schedules import crontab

from nexustech.config import get_settings

settings = get_settings()

celery_app = Celery("nexustech")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

celery_app.conf.task_default_queue = "default"

celery_app.conf.beat_schedule = {
    "monthly-allowance-reset": {
        "task": "monthly_allowance_reset",
        "schedule": crontab(minute=5, hour="*", day_of_month="1"),
    },
    "cleanup-old-conversations": {
        "task": "cleanup_old_conversations",
        "schedule": crontab(minute=30, hour=3),
    },
}

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False


def get_celery_app() -> Celery:
    """Get the Celery application instance."""
    return celery_app
