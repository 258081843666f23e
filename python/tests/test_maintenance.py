"""Tests for operator maintenance jobs.

Tests cover:
- repair_orphans assigns owner-less records to the given subject
- Shared nexi (public manual, guest nexi) and their contents are left alone
- Owner-less user prompt templates are assigned; system templates are not
- dry_run reports counts and writes nothing
- verify_ledger flags balances that drift from the ledger
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from nexustech.db.models import Chunk, ContentItem, Nexus, Notebook, PromptTemplate, User
from nexustech.services.maintenance import repair_orphans, verify_ledger
from tests.factories import (
    create_test_chunk,
    create_test_manual,
    create_test_nexus,
    create_test_notebook,
    create_test_prompt_template,
    create_test_user,
)

REPAIR_SUBJECT = "user_repair"


def _legacy_tree(db: Session):
    """An owner-less nexus with a notebook and a chunk, as written before ownership."""
    nexus_id = create_test_nexus(db, None, name="Legacy")
    notebook_id = create_test_notebook(db, nexus_id, None)
    chunk_id = create_test_chunk(db, notebook_id, None)
    return nexus_id, notebook_id, chunk_id


class TestRepairOrphans:
    def test_assigns_owner_to_legacy_records(self, db_session: Session):
        nexus_id, notebook_id, chunk_id = _legacy_tree(db_session)

        report = repair_orphans(db_session, REPAIR_SUBJECT)

        assert report.dry_run is False
        assert report.counts["nexi"] == 1
        assert report.counts["notebooks"] == 1
        assert report.counts["chunks"] == 1
        # notebook placement in the nexus, chunk placement in the notebook
        assert report.counts["content_items"] == 2
        assert report.total == 5

        db_session.expire_all()
        for model, key in ((Nexus, nexus_id), (Notebook, notebook_id), (Chunk, chunk_id)):
            assert db_session.get(model, key).owner_id == REPAIR_SUBJECT

    def test_shared_nexi_are_left_alone(self, db_session: Session):
        manual_id = create_test_manual(db_session)
        manual_notebook = create_test_notebook(db_session, manual_id, None)
        create_test_chunk(db_session, manual_notebook, None)
        guest_nexus = create_test_nexus(db_session, None, name="Scratch", guest_session_id="g-1")
        create_test_notebook(db_session, guest_nexus, None)

        report = repair_orphans(db_session, REPAIR_SUBJECT)

        assert report.total == 0
        db_session.expire_all()
        assert db_session.get(Nexus, manual_id).owner_id is None

    def test_owned_records_are_untouched(self, db_session: Session):
        viewer = create_test_user(db_session)
        nexus_id = create_test_nexus(db_session, viewer.subject)
        create_test_notebook(db_session, nexus_id, viewer.subject)

        report = repair_orphans(db_session, REPAIR_SUBJECT)

        assert report.total == 0
        assert db_session.get(Nexus, nexus_id).owner_id == viewer.subject

    def test_dry_run_writes_nothing(self, db_session: Session):
        nexus_id, _, _ = _legacy_tree(db_session)

        report = repair_orphans(db_session, REPAIR_SUBJECT, dry_run=True)

        assert report.dry_run is True
        assert report.total == 5
        db_session.expire_all()
        assert db_session.get(Nexus, nexus_id).owner_id is None
        assert all(item.owner_id is None for item in db_session.scalars(select(ContentItem)))

    def test_legacy_user_templates_are_assigned(self, db_session: Session):
        system_id = create_test_prompt_template(db_session, None, name="System")
        legacy = PromptTemplate(
            name="Legacy", template_content="x", is_system_defined=False, owner_id=None
        )
        db_session.add(legacy)
        db_session.commit()

        report = repair_orphans(db_session, REPAIR_SUBJECT)

        assert report.counts["prompt_templates"] == 1
        db_session.expire_all()
        assert db_session.get(PromptTemplate, legacy.id).owner_id == REPAIR_SUBJECT
        assert db_session.get(PromptTemplate, system_id).owner_id is None

    def test_second_run_finds_nothing(self, db_session: Session):
        _legacy_tree(db_session)
        repair_orphans(db_session, REPAIR_SUBJECT)

        assert repair_orphans(db_session, REPAIR_SUBJECT).total == 0


class TestVerifyLedger:
    def test_consistent_users_pass(self, db_session: Session):
        create_test_user(db_session)
        create_test_user(db_session)

        report = verify_ledger(db_session)

        assert report.checked == 2
        assert report.mismatches == []

    def test_drift_is_reported(self, db_session: Session):
        viewer = create_test_user(db_session)
        db_session.get(User, viewer.user_id).shard_balance = 42
        db_session.commit()

        report = verify_ledger(db_session)

        assert len(report.mismatches) == 1
        mismatch = report.mismatches[0]
        assert mismatch.subject == viewer.subject
        assert mismatch.shard_balance == 42
        assert mismatch.ledger_total == 100
