"""Tests for the periodic Celery jobs.

Jobs are executed in-process with apply(); no broker is involved.
"""

from sqlalchemy.orm import Session

from nexustech.celery import celery_app
from nexustech.db.models import Conversation, User
from nexustech.tasks import cleanup_old_conversations_job, monthly_allowance_reset_job
from tests.factories import create_test_conversation, create_test_user


class TestMonthlyAllowanceResetJob:
    def test_processes_due_users(self, db_session: Session):
        viewer = create_test_user(db_session)
        db_session.get(User, viewer.user_id).last_allowance_reset_at = 0
        db_session.commit()

        result = monthly_allowance_reset_job.apply().get()

        assert result == {"status": "ok", "processed": 1}
        db_session.expire_all()
        assert db_session.get(User, viewer.user_id).shard_balance == 200

    def test_nothing_due(self, db_session: Session):
        create_test_user(db_session)

        assert monthly_allowance_reset_job.apply().get() == {"status": "ok", "processed": 0}


class TestCleanupOldConversationsJob:
    def test_deletes_expired_conversations(self, db_session: Session):
        viewer = create_test_user(db_session)
        old = create_test_conversation(db_session, viewer.subject, created_at=1)
        fresh = create_test_conversation(db_session, viewer.subject)

        result = cleanup_old_conversations_job.apply().get()

        assert result == {"status": "ok", "deleted": 1}
        db_session.expire_all()
        assert db_session.get(Conversation, old) is None
        assert db_session.get(Conversation, fresh) is not None


class TestBeatSchedule:
    def test_jobs_are_registered_and_scheduled(self):
        scheduled = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}

        assert scheduled == {"monthly_allowance_reset", "cleanup_old_conversations"}
        assert scheduled <= set(celery_app.tasks)
