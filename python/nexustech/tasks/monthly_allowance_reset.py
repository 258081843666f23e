"""Celery task for the monthly shard allowance reset.

Scheduled by beat on day 1 of each UTC month. Safe to run any number of
times: users already reset this month are skipped.
"""

from nexustech.celery import celery_app
from nexustech.db.session import get_session_factory
from nexustech.logging import clear_task_context, configure_task_logging, get_logger
from nexustech.services.shards import monthly_allowance_reset

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="monthly_allowance_reset")
def monthly_allowance_reset_job(self, request_id: str | None = None) -> dict:
    """Grant every eligible user their allowance for the current month.

    Returns:
        Dict with the number of users processed.
    """
    configure_task_logging(
        request_id=request_id, task_name="monthly_allowance_reset", task_id=self.request.id
    )
    logger.info("monthly_allowance_reset_started")

    db = get_session_factory()()
    try:
        result = monthly_allowance_reset(db)
        return {"status": "ok", "processed": result.processed}
    except Exception as exc:
        logger.error("monthly_allowance_reset_failed", error=str(exc))
        raise
    finally:
        db.close()
        clear_task_context()
