"""Celery tasks for Nexustech.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.

Usage (enqueue by hand, e.g. from a shell):
    from nexustech.tasks import monthly_allowance_reset_job
    monthly_allowance_reset_job.apply_async()
"""

from nexustech.tasks.cleanup_conversations import cleanup_old_conversations_job
from nexustech.tasks.monthly_allowance_reset import monthly_allowance_reset_job

__all__ = ["monthly_allowance_reset_job", "cleanup_old_conversations_job"]
