"""Nexus and notebook routes.

Routes are transport-only:
- Extract the viewer from request.state
- Call exactly one service function
- Return success(...) or raise ApiError

IMPORTANT: /nexi/reorder must be registered BEFORE /nexi/{nexus_id}.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_models, success_response
from nexustech.schemas.knowledge import (
    CreateNexusRequest,
    CreateNotebookRequest,
    ReorderNexiRequest,
    UpdateNexusRequest,
    UpdateNotebookRequest,
)
from nexustech.services import nexi as nexi_service
from nexustech.services import notebooks as notebooks_service

router = APIRouter()


# =============================================================================
# Nexi
# =============================================================================


@router.get("/nexi")
def list_nexi(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List the public manual followed by the viewer's nexi in home-page order."""
    return success_models(nexi_service.list_nexi(db, viewer))


@router.post("/nexi", status_code=201)
def create_nexus(
    body: CreateNexusRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = nexi_service.create_nexus(db, viewer, body)
    return success_response(result.model_dump(mode="json"))


@router.post("/guest/nexi", status_code=201)
def create_guest_nexus(
    body: CreateNexusRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create the guest session's nexus (at most one per session)."""
    result = nexi_service.create_guest_nexus(db, viewer, body)
    return success_response(result.model_dump(mode="json"))


@router.post("/nexi/reorder")
def reorder_nexi(
    body: ReorderNexiRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    return success_models(nexi_service.reorder_nexi(db, viewer, body.nexus_ids))


@router.get("/nexi/{nexus_id}")
def get_nexus(
    nexus_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = nexi_service.get_nexus(db, viewer, nexus_id)
    return success_response(result.model_dump(mode="json"))


@router.patch("/nexi/{nexus_id}")
def update_nexus(
    nexus_id: UUID,
    body: UpdateNexusRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = nexi_service.update_nexus(db, viewer, nexus_id, body)
    return success_response(result.model_dump(mode="json"))


@router.delete("/nexi/{nexus_id}", status_code=204)
def delete_nexus(
    nexus_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete a nexus with its notebooks and everything in them."""
    nexi_service.delete_nexus(db, viewer, nexus_id)
    return Response(status_code=204)


# =============================================================================
# Notebooks
# =============================================================================


@router.get("/nexi/{nexus_id}/notebooks")
def list_notebooks(
    nexus_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List notebooks in the nexus's content-item order."""
    return success_models(notebooks_service.list_notebooks(db, viewer, nexus_id))


@router.post("/nexi/{nexus_id}/notebooks", status_code=201)
def create_notebook(
    nexus_id: UUID,
    body: CreateNotebookRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = notebooks_service.create_notebook(db, viewer, nexus_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/notebooks/{notebook_id}")
def get_notebook(
    notebook_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = notebooks_service.get_notebook(db, viewer, notebook_id)
    return success_response(result.model_dump(mode="json"))


@router.patch("/notebooks/{notebook_id}")
def update_notebook(
    notebook_id: UUID,
    body: UpdateNotebookRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = notebooks_service.update_notebook(db, viewer, notebook_id, body)
    return success_response(result.model_dump(mode="json"))


@router.delete("/notebooks/{notebook_id}", status_code=204)
def delete_notebook(
    notebook_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    notebooks_service.delete_notebook(db, viewer, notebook_id)
    return Response(status_code=204)
