"""Tests for the locus content ordering engine.

Tests cover:
- Append density (new item last at position N)
- Top insertion shifts siblings and keeps their relative order
- Reorder as a total rewrite, subset reorder, idempotent reorder
- Parent groups are ordered independently
- Move appends at the destination unless a position is given
- Reads are re-sorted by position with creation-time tie-breaks
- Enrichment attaches records and drops dangling items
- Chunk placement preference through the chunk service
"""

from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from nexustech.db.models import ContentItem, ContentType, LocusType
from nexustech.errors import ApiErrorCode, NotFoundError
from nexustech.schemas.knowledge import CreateChunkRequest
from nexustech.schemas.users import UpdatePreferencesRequest
from nexustech.services import chunks as chunks_service
from nexustech.services.content_items import (
    append_content_item,
    enrich_content_items,
    insert_content_item_at_top,
    list_content_items,
    move_content_item,
    next_position,
    reorder_content_items,
)
from nexustech.services.users import update_preferences
from tests.factories import (
    create_test_chunk,
    create_test_notebook_for,
    create_test_user,
)


def _append(db: Session, locus_id: str, content_id: str, parent_id: str | None = None):
    item = append_content_item(
        db,
        locus_id=locus_id,
        locus_type=LocusType.notebook,
        content_type=ContentType.chunk,
        content_id=content_id,
        owner_id="owner",
        parent_id=parent_id,
    )
    db.commit()
    return item


def _order(db: Session, locus_id: str, parent_id: str | None = None) -> list[str]:
    return [item.content_id for item in list_content_items(db, locus_id, parent_id=parent_id)]


@pytest.fixture
def locus_id() -> str:
    return str(uuid4())


class TestAppend:
    def test_first_item_lands_at_zero(self, db_session: Session, locus_id: str):
        item = _append(db_session, locus_id, "c1")
        assert item.position == 0

    def test_append_places_new_item_last_at_position_n(self, db_session: Session, locus_id):
        for content_id in ("c1", "c2", "c3"):
            _append(db_session, locus_id, content_id)

        item = _append(db_session, locus_id, "c4")

        assert item.position == 3
        assert _order(db_session, locus_id) == ["c1", "c2", "c3", "c4"]

    def test_append_after_gap_uses_max_plus_one(self, db_session: Session, locus_id):
        _append(db_session, locus_id, "c1")
        second = _append(db_session, locus_id, "c2")
        second.position = 7
        db_session.commit()

        assert next_position(db_session, locus_id) == 8

    def test_groups_are_independent(self, db_session: Session, locus_id: str):
        _append(db_session, locus_id, "top-1")
        _append(db_session, locus_id, "top-2")

        child = _append(db_session, locus_id, "child-1", parent_id="tag-a")

        assert child.position == 0
        assert _order(db_session, locus_id) == ["top-1", "top-2"]
        assert _order(db_session, locus_id, parent_id="tag-a") == ["child-1"]


class TestInsertAtTop:
    def test_insert_at_top_shifts_siblings(self, db_session: Session, locus_id: str):
        for content_id in ("c1", "c2", "c3"):
            _append(db_session, locus_id, content_id)

        new_item = insert_content_item_at_top(
            db_session,
            locus_id=locus_id,
            locus_type=LocusType.notebook,
            content_type=ContentType.chunk,
            content_id="c0",
            owner_id="owner",
        )
        db_session.commit()

        items = list_content_items(db_session, locus_id)
        assert new_item.position == 0
        assert [(item.content_id, item.position) for item in items] == [
            ("c0", 0),
            ("c1", 1),
            ("c2", 2),
            ("c3", 3),
        ]

    def test_insert_at_top_leaves_other_groups_alone(self, db_session: Session, locus_id):
        child = _append(db_session, locus_id, "child", parent_id="tag-a")

        insert_content_item_at_top(
            db_session,
            locus_id=locus_id,
            locus_type=LocusType.notebook,
            content_type=ContentType.chunk,
            content_id="c0",
            owner_id="owner",
        )
        db_session.commit()
        db_session.refresh(child)

        assert child.position == 0


class TestReorder:
    def test_full_permutation_is_returned_verbatim(self, db_session: Session, locus_id):
        """Reorder [C3, C1, C2] in a locus ordered [C1, C2, C3]."""
        for content_id in ("C1", "C2", "C3"):
            _append(db_session, locus_id, content_id)

        rewritten = reorder_content_items(
            db_session, locus_id, ContentType.chunk, ["C3", "C1", "C2"]
        )
        db_session.commit()

        assert rewritten == 3
        assert _order(db_session, locus_id) == ["C3", "C1", "C2"]

    def test_reorder_with_current_order_is_a_no_op(self, db_session: Session, locus_id):
        for content_id in ("C1", "C2", "C3"):
            _append(db_session, locus_id, content_id)
        before = [
            (item.content_id, item.position) for item in list_content_items(db_session, locus_id)
        ]

        reorder_content_items(db_session, locus_id, ContentType.chunk, ["C1", "C2", "C3"])
        db_session.commit()

        after = [
            (item.content_id, item.position) for item in list_content_items(db_session, locus_id)
        ]
        assert after == before

    def test_subset_leaves_omitted_positions_untouched(self, db_session: Session, locus_id):
        for content_id in ("C1", "C2", "C3", "C4"):
            _append(db_session, locus_id, content_id)

        reorder_content_items(db_session, locus_id, ContentType.chunk, ["C2", "C1"])
        db_session.commit()

        positions = {
            item.content_id: item.position for item in list_content_items(db_session, locus_id)
        }
        assert positions == {"C2": 0, "C1": 1, "C3": 2, "C4": 3}

    def test_unknown_ids_are_ignored(self, db_session: Session, locus_id: str):
        _append(db_session, locus_id, "C1")

        rewritten = reorder_content_items(
            db_session, locus_id, ContentType.chunk, ["missing", "C1"]
        )

        assert rewritten == 1

    def test_reorder_only_touches_the_requested_type(self, db_session: Session, locus_id):
        _append(db_session, locus_id, "C1")
        tag_item = append_content_item(
            db_session,
            locus_id=locus_id,
            locus_type=LocusType.notebook,
            content_type=ContentType.tag,
            content_id="C1",
            owner_id="owner",
        )
        db_session.commit()

        reorder_content_items(db_session, locus_id, ContentType.chunk, ["C1"])
        db_session.commit()
        db_session.refresh(tag_item)

        assert tag_item.position == 1

    def test_reorder_is_scoped_to_parent_group(self, db_session: Session, locus_id: str):
        _append(db_session, locus_id, "T1")
        _append(db_session, locus_id, "T2")
        _append(db_session, locus_id, "A", parent_id="parent")
        _append(db_session, locus_id, "B", parent_id="parent")

        reorder_content_items(
            db_session, locus_id, ContentType.chunk, ["B", "A"], parent_id="parent"
        )
        db_session.commit()

        assert _order(db_session, locus_id) == ["T1", "T2"]
        assert _order(db_session, locus_id, parent_id="parent") == ["B", "A"]


class TestMove:
    def test_move_without_position_appends(self, db_session: Session):
        source, target = str(uuid4()), str(uuid4())
        item = _append(db_session, source, "C1")
        _append(db_session, target, "T1")
        _append(db_session, target, "T2")

        moved = move_content_item(db_session, item.id, target, LocusType.notebook)
        db_session.commit()

        assert moved.locus_id == target
        assert moved.position == 2
        assert _order(db_session, source) == []
        assert _order(db_session, target) == ["T1", "T2", "C1"]

    def test_move_to_explicit_position_and_parent(self, db_session: Session, locus_id):
        item = _append(db_session, locus_id, "C1")

        moved = move_content_item(
            db_session, item.id, locus_id, LocusType.notebook, new_parent_id="p", new_position=5
        )

        assert moved.parent_id == "p"
        assert moved.position == 5

    def test_move_missing_item_raises_not_found(self, db_session: Session, locus_id):
        with pytest.raises(NotFoundError) as exc_info:
            move_content_item(db_session, uuid4(), locus_id, LocusType.notebook)
        assert exc_info.value.code == ApiErrorCode.E_CONTENT_ITEM_NOT_FOUND


class TestListAndEnrich:
    def test_ties_are_broken_by_creation_time(self, db_session: Session, locus_id: str):
        for content_id, created_at in (("late", 2000), ("early", 1000)):
            db_session.add(
                ContentItem(
                    locus_id=locus_id,
                    locus_type=LocusType.notebook.value,
                    content_type=ContentType.chunk.value,
                    content_id=content_id,
                    position=0,
                    created_at=created_at,
                    updated_at=created_at,
                )
            )
        db_session.commit()

        assert _order(db_session, locus_id) == ["early", "late"]

    def test_enrich_attaches_records_and_drops_dangling(self, db_session: Session):
        viewer = create_test_user(db_session)
        _, notebook_id = create_test_notebook_for(db_session, viewer)
        chunk_id = create_test_chunk(db_session, notebook_id, viewer.subject, text="hello")
        _append(db_session, str(notebook_id), str(uuid4()))

        items = list_content_items(db_session, str(notebook_id))
        enriched = enrich_content_items(db_session, items)

        assert len(items) == 2
        assert [entry.item.content_id for entry in enriched] == [str(chunk_id)]
        assert enriched[0].content.original_text == "hello"


class TestChunkPlacement:
    def _create(self, db_session, viewer, notebook_id, text, hint="add"):
        return chunks_service.create_chunk(
            db_session,
            viewer,
            notebook_id,
            CreateChunkRequest(original_text=text, placement_hint=hint),
        )

    def test_top_preference_inserts_new_chunks_first(self, db_session: Session):
        """C1 at 0; C2 created with the same hint lands at 0 and C1 shifts to 1."""
        viewer = create_test_user(db_session)
        update_preferences(
            db_session, viewer.subject, UpdatePreferencesRequest(add_chunk_placement="top")
        )
        _, notebook_id = create_test_notebook_for(db_session, viewer)

        c1 = self._create(db_session, viewer, notebook_id, "first")
        c2 = self._create(db_session, viewer, notebook_id, "second")

        positions = {
            item.content_id: item.position
            for item in list_content_items(db_session, str(notebook_id))
        }
        assert positions == {str(c2.id): 0, str(c1.id): 1}

    def test_bottom_preference_appends(self, db_session: Session):
        viewer = create_test_user(db_session)
        update_preferences(
            db_session, viewer.subject, UpdatePreferencesRequest(import_chunk_placement="bottom")
        )
        _, notebook_id = create_test_notebook_for(db_session, viewer)

        c1 = self._create(db_session, viewer, notebook_id, "first", hint="import")
        c2 = self._create(db_session, viewer, notebook_id, "second", hint="import")

        assert _order(db_session, str(notebook_id)) == [str(c1.id), str(c2.id)]

    def test_unset_preference_defaults_to_top(self, db_session: Session):
        viewer = create_test_user(db_session)
        _, notebook_id = create_test_notebook_for(db_session, viewer)

        c1 = self._create(db_session, viewer, notebook_id, "first", hint="research")
        c2 = self._create(db_session, viewer, notebook_id, "second", hint="research")

        assert _order(db_session, str(notebook_id)) == [str(c2.id), str(c1.id)]
