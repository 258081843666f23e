"""Viewer-scoped record lookups.

Each get_*_for_viewer_or_404 loads a record, walks up to its nexus, and
applies the ownership predicates from nexustech.auth.permissions:

- missing and invisible records raise the same NotFoundError (no existence leak)
- write=True additionally requires write access to the containing nexus;
  a visible but read-only record (the public manual) raises ForbiddenError
"""

from uuid import UUID

from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.auth.permissions import (
    can_read_nexus,
    can_write_nexus,
    is_shared_nexus,
    is_visible,
)
from nexustech.config import get_settings
from nexustech.db.models import Chunk, ContentItem, LocusType, Nexus, Notebook, Tag
from nexustech.errors import ApiErrorCode, ForbiddenError, NotFoundError


def _manual_name() -> str:
    return get_settings().shared_manual_nexus_name


def _parse_id(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(value)
    except (ValueError, TypeError):
        return None


def _require_write(nexus: Nexus, viewer: Viewer) -> None:
    if not can_write_nexus(nexus, viewer.subject, viewer.guest_session_id):
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "This nexus is read-only")


def nexus_is_shared_for(nexus: Nexus, viewer: Viewer) -> bool:
    return is_shared_nexus(nexus, viewer.guest_session_id, _manual_name())


def get_nexus_for_viewer_or_404(
    db: Session, viewer: Viewer, nexus_id: UUID, write: bool = False
) -> Nexus:
    """Load a nexus the viewer can see.

    Raises:
        NotFoundError(E_NEXUS_NOT_FOUND): Missing or not visible.
        ForbiddenError(E_FORBIDDEN): write=True on a read-only nexus.
    """
    nexus = db.get(Nexus, nexus_id)
    if nexus is None or not can_read_nexus(
        nexus, viewer.subject, viewer.guest_session_id, _manual_name()
    ):
        raise NotFoundError(ApiErrorCode.E_NEXUS_NOT_FOUND, "Nexus not found")
    if write:
        _require_write(nexus, viewer)
    return nexus


def _check_contained(
    db: Session,
    viewer: Viewer,
    owner_id: str | None,
    nexus_id: UUID,
    write: bool,
    not_found: NotFoundError,
) -> Nexus:
    nexus = db.get(Nexus, nexus_id)
    if nexus is None or not is_visible(
        owner_id, viewer.subject, nexus_is_shared_for(nexus, viewer)
    ):
        raise not_found
    if write:
        _require_write(nexus, viewer)
    return nexus


def get_notebook_for_viewer_or_404(
    db: Session, viewer: Viewer, notebook_id: UUID, write: bool = False
) -> Notebook:
    """Load a notebook the viewer can see (write=True: and modify)."""
    not_found = NotFoundError(ApiErrorCode.E_NOTEBOOK_NOT_FOUND, "Notebook not found")
    notebook = db.get(Notebook, notebook_id)
    if notebook is None:
        raise not_found
    _check_contained(db, viewer, notebook.owner_id, notebook.nexus_id, write, not_found)
    return notebook


def get_chunk_for_viewer_or_404(
    db: Session, viewer: Viewer, chunk_id: UUID, write: bool = False
) -> Chunk:
    """Load a chunk the viewer can see (write=True: and modify)."""
    not_found = NotFoundError(ApiErrorCode.E_CHUNK_NOT_FOUND, "Chunk not found")
    chunk = db.get(Chunk, chunk_id)
    if chunk is None:
        raise not_found
    notebook = db.get(Notebook, chunk.notebook_id)
    if notebook is None:
        raise not_found
    _check_contained(db, viewer, chunk.owner_id, notebook.nexus_id, write, not_found)
    return chunk


def get_tag_for_viewer_or_404(
    db: Session, viewer: Viewer, tag_id: UUID, write: bool = False
) -> Tag:
    """Load a tag the viewer can see (write=True: and modify)."""
    not_found = NotFoundError(ApiErrorCode.E_TAG_NOT_FOUND, "Tag not found")
    tag = db.get(Tag, tag_id)
    if tag is None:
        raise not_found
    notebook = db.get(Notebook, tag.notebook_id)
    if notebook is None:
        raise not_found
    _check_contained(db, viewer, tag.owner_id, notebook.nexus_id, write, not_found)
    return tag


def get_locus_for_viewer_or_404(
    db: Session, viewer: Viewer, locus_id: str, write: bool = False
) -> LocusType:
    """Resolve a locus id to its container kind, checking visibility.

    Raises:
        NotFoundError(E_NOT_FOUND): No visible notebook or nexus has this id.
    """
    key = _parse_id(locus_id)
    if key is not None:
        if db.get(Notebook, key) is not None:
            get_notebook_for_viewer_or_404(db, viewer, key, write=write)
            return LocusType.notebook
        if db.get(Nexus, key) is not None:
            get_nexus_for_viewer_or_404(db, viewer, key, write=write)
            return LocusType.nexus
    raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Locus not found")


def get_content_item_for_viewer_or_404(
    db: Session, viewer: Viewer, item_id: UUID, write: bool = False
) -> ContentItem:
    """Load a content item whose locus the viewer can see."""
    item = db.get(ContentItem, item_id)
    if item is None:
        raise NotFoundError(ApiErrorCode.E_CONTENT_ITEM_NOT_FOUND, "Content item not found")
    try:
        get_locus_for_viewer_or_404(db, viewer, item.locus_id, write=write)
    except NotFoundError:
        raise NotFoundError(
            ApiErrorCode.E_CONTENT_ITEM_NOT_FOUND, "Content item not found"
        ) from None
    return item


def chunk_is_visible(db: Session, viewer: Viewer, chunk_id: UUID) -> bool:
    try:
        get_chunk_for_viewer_or_404(db, viewer, chunk_id)
    except NotFoundError:
        return False
    return True
