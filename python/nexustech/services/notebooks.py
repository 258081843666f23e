"""Notebook service layer.

A notebook is both a child of its nexus (placed there by a content item)
and a locus of its own for chunks, tags and conversation messages.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.db.models import ContentType, LocusType, Notebook
from nexustech.db.session import run_in_transaction
from nexustech.logging import get_logger
from nexustech.schemas.knowledge import (
    CreateNotebookRequest,
    NotebookOut,
    UpdateNotebookRequest,
)
from nexustech.services import cascade
from nexustech.services.content_items import append_content_item, list_content_items
from nexustech.services.scoping import (
    get_nexus_for_viewer_or_404,
    get_notebook_for_viewer_or_404,
)

logger = get_logger(__name__)


def create_notebook(
    db: Session, viewer: Viewer, nexus_id: UUID, request: CreateNotebookRequest
) -> NotebookOut:
    """Create a notebook and append it to the nexus ordering."""
    nexus = get_nexus_for_viewer_or_404(db, viewer, nexus_id, write=True)

    def work() -> Notebook:
        notebook = Notebook(
            nexus_id=nexus.id,
            name=request.name,
            description=request.description,
            meta_question=request.meta_question,
            owner_id=viewer.subject,
        )
        db.add(notebook)
        db.flush()
        append_content_item(
            db,
            locus_id=str(nexus.id),
            locus_type=LocusType.nexus,
            content_type=ContentType.notebook,
            content_id=str(notebook.id),
            owner_id=viewer.subject,
        )
        return notebook

    notebook = run_in_transaction(db, work)
    logger.info("notebook_created", notebook_id=str(notebook.id), nexus_id=str(nexus.id))
    return NotebookOut.model_validate(notebook)


def list_notebooks(db: Session, viewer: Viewer, nexus_id: UUID) -> list[NotebookOut]:
    """Notebooks of a nexus in content-item order.

    Notebooks with no placement (legacy rows) follow, oldest first.
    """
    nexus = get_nexus_for_viewer_or_404(db, viewer, nexus_id)
    notebooks = {
        str(notebook.id): notebook
        for notebook in db.scalars(select(Notebook).where(Notebook.nexus_id == nexus.id)).all()
    }

    ordered = []
    for item in list_content_items(db, str(nexus.id), ContentType.notebook):
        notebook = notebooks.pop(item.content_id, None)
        if notebook is not None:
            ordered.append(notebook)
    ordered.extend(sorted(notebooks.values(), key=lambda notebook: notebook.created_at))
    return [NotebookOut.model_validate(notebook) for notebook in ordered]


def get_notebook(db: Session, viewer: Viewer, notebook_id: UUID) -> NotebookOut:
    return NotebookOut.model_validate(get_notebook_for_viewer_or_404(db, viewer, notebook_id))


def update_notebook(
    db: Session, viewer: Viewer, notebook_id: UUID, request: UpdateNotebookRequest
) -> NotebookOut:
    notebook = get_notebook_for_viewer_or_404(db, viewer, notebook_id, write=True)
    changes = request.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        del changes["name"]

    def work() -> Notebook:
        for field, value in changes.items():
            setattr(notebook, field, value)
        db.flush()
        return notebook

    return NotebookOut.model_validate(run_in_transaction(db, work))


def delete_notebook(db: Session, viewer: Viewer, notebook_id: UUID) -> None:
    get_notebook_for_viewer_or_404(db, viewer, notebook_id, write=True)
    run_in_transaction(db, lambda: cascade.delete_notebook(db, notebook_id))
