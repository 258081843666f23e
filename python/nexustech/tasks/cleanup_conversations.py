"""Celery task that purges conversations past the retention window."""

from nexustech.celery import celery_app
from nexustech.db.session import get_session_factory
from nexustech.logging import clear_task_context, configure_task_logging, get_logger
from nexustech.services.conversations import cleanup_old_conversations

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="cleanup_old_conversations")
def cleanup_old_conversations_job(self, request_id: str | None = None) -> dict:
    """Delete conversations older than CONVERSATION_RETENTION_DAYS with their messages."""
    configure_task_logging(
        request_id=request_id, task_name="cleanup_old_conversations", task_id=self.request.id
    )

    db = get_session_factory()()
    try:
        deleted = cleanup_old_conversations(db)
        return {"status": "ok", "deleted": deleted}
    except Exception as exc:
        logger.error("cleanup_old_conversations_failed", error=str(exc))
        raise
    finally:
        db.close()
        clear_task_context()
