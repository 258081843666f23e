"""Prompt template service layer.

Two kinds of template share one table:
- system templates (is_system_defined, no owner) are created by operators
  through the internal API, are visible to every viewer and are read-only
  through the public API
- user templates belong to the signed-in user who created them and are
  visible to that user only

Inactive templates are hidden from listings except the owner's own listing
with include_inactive. Missing and invisible templates both raise
E_TEMPLATE_NOT_FOUND. Usage is counted with a single UPDATE so concurrent
uses never lose an increment.
"""

from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.db.models import PromptTemplate, Tag, now_ms
from nexustech.db.session import run_in_transaction
from nexustech.errors import ApiErrorCode, ForbiddenError, NotFoundError
from nexustech.logging import get_logger
from nexustech.schemas.prompt_template import (
    CreatePromptTemplateRequest,
    PromptTemplateOut,
    TemplateScope,
    UpdatePromptTemplateRequest,
)
from nexustech.services.scoping import get_tag_for_viewer_or_404

logger = get_logger(__name__)

DEFAULT_POPULAR_LIMIT = 10
MAX_POPULAR_LIMIT = 50

# Columns that cannot be cleared by an explicit null in an update
_NON_NULLABLE = ("name", "description", "template_content", "is_active")


def _visible_to(viewer: Viewer):
    """SQL predicate: system templates, plus the viewer's own."""
    if viewer.subject is None:
        return PromptTemplate.is_system_defined.is_(True)
    return or_(
        PromptTemplate.is_system_defined.is_(True),
        PromptTemplate.owner_id == viewer.subject,
    )


def _is_visible(template: PromptTemplate, viewer: Viewer) -> bool:
    if template.is_system_defined:
        return True
    return viewer.subject is not None and template.owner_id == viewer.subject


def get_template_for_viewer_or_404(
    db: Session, viewer: Viewer, template_id: UUID, write: bool = False
) -> PromptTemplate:
    """Load a template the viewer can see.

    Raises:
        NotFoundError(E_TEMPLATE_NOT_FOUND): Missing, or another user's template.
        ForbiddenError(E_FORBIDDEN): write=True on a system template.
    """
    template = db.get(PromptTemplate, template_id)
    if template is None or not _is_visible(template, viewer):
        raise NotFoundError(ApiErrorCode.E_TEMPLATE_NOT_FOUND, "Prompt template not found")
    if write and template.is_system_defined:
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "System templates are read-only")
    return template


def _tag_keys(
    db: Session, viewer: Viewer | None, tag_ids: list[UUID] | None
) -> list[str] | None:
    """Check linked tags exist (and are visible, for user templates); store as strings."""
    if tag_ids is None:
        return None
    for tag_id in tag_ids:
        if viewer is not None:
            get_tag_for_viewer_or_404(db, viewer, tag_id)
        elif db.get(Tag, tag_id) is None:
            raise NotFoundError(ApiErrorCode.E_TAG_NOT_FOUND, "Tag not found")
    return [str(tag_id) for tag_id in dict.fromkeys(tag_ids)]


def _document_fields(request: CreatePromptTemplateRequest) -> dict:
    return {
        "placeholders": (
            [placeholder.model_dump(mode="json") for placeholder in request.placeholders]
            if request.placeholders is not None
            else None
        ),
        "llm_config": (
            request.llm_config.model_dump(mode="json") if request.llm_config is not None else None
        ),
    }


def _create(
    db: Session,
    request: CreatePromptTemplateRequest,
    owner_id: str | None,
    tag_keys: list[str] | None,
) -> PromptTemplate:
    def work() -> PromptTemplate:
        template = PromptTemplate(
            name=request.name,
            description=request.description,
            template_content=request.template_content,
            is_system_defined=owner_id is None,
            is_active=request.is_active,
            icon=request.icon,
            tag_ids=tag_keys,
            usage_count=0,
            owner_id=owner_id,
            **_document_fields(request),
        )
        db.add(template)
        db.flush()
        return template

    return run_in_transaction(db, work)


def create_prompt_template(
    db: Session, viewer: Viewer, request: CreatePromptTemplateRequest
) -> PromptTemplateOut:
    """Create a user template owned by the viewer."""
    tag_keys = _tag_keys(db, viewer, request.tag_ids)
    template = _create(db, request, viewer.subject, tag_keys)
    logger.info("prompt_template_created", template_id=str(template.id))
    return PromptTemplateOut.model_validate(template)


def create_system_prompt_template(
    db: Session, request: CreatePromptTemplateRequest
) -> PromptTemplateOut:
    """Create a shared system template (operator use)."""
    tag_keys = _tag_keys(db, None, request.tag_ids)
    template = _create(db, request, None, tag_keys)
    logger.info("system_prompt_template_created", template_id=str(template.id))
    return PromptTemplateOut.model_validate(template)


def list_prompt_templates(
    db: Session,
    viewer: Viewer,
    scope: TemplateScope = "all",
    include_inactive: bool = False,
) -> list[PromptTemplateOut]:
    """Templates visible to the viewer, oldest first.

    include_inactive only reveals the viewer's own inactive templates.
    """
    if scope == "mine" and viewer.subject is None:
        return []

    statement = select(PromptTemplate).where(_visible_to(viewer))
    if scope == "system":
        statement = statement.where(PromptTemplate.is_system_defined.is_(True))
    elif scope == "mine":
        statement = statement.where(PromptTemplate.owner_id == viewer.subject)

    if include_inactive and viewer.subject is not None:
        statement = statement.where(
            or_(PromptTemplate.is_active.is_(True), PromptTemplate.owner_id == viewer.subject)
        )
    else:
        statement = statement.where(PromptTemplate.is_active.is_(True))

    templates = db.scalars(
        statement.order_by(PromptTemplate.created_at, PromptTemplate.id)
    ).all()
    return [PromptTemplateOut.model_validate(template) for template in templates]


def clamp_popular_limit(limit: int) -> int:
    return max(1, min(limit, MAX_POPULAR_LIMIT))


def list_popular_prompt_templates(
    db: Session, viewer: Viewer, limit: int = DEFAULT_POPULAR_LIMIT
) -> list[PromptTemplateOut]:
    """Active, visible templates that have been used, most used first."""
    templates = db.scalars(
        select(PromptTemplate)
        .where(
            _visible_to(viewer),
            PromptTemplate.is_active.is_(True),
            PromptTemplate.usage_count > 0,
        )
        .order_by(
            PromptTemplate.usage_count.desc(),
            PromptTemplate.last_used_at.desc(),
            PromptTemplate.id,
        )
        .limit(clamp_popular_limit(limit))
    ).all()
    return [PromptTemplateOut.model_validate(template) for template in templates]


def get_prompt_template(db: Session, viewer: Viewer, template_id: UUID) -> PromptTemplateOut:
    template = get_template_for_viewer_or_404(db, viewer, template_id)
    return PromptTemplateOut.model_validate(template)


def update_prompt_template(
    db: Session, viewer: Viewer, template_id: UUID, request: UpdatePromptTemplateRequest
) -> PromptTemplateOut:
    """Write only the fields present in the request body."""
    template = get_template_for_viewer_or_404(db, viewer, template_id, write=True)
    changes = request.model_dump(exclude_unset=True, mode="json")
    for required in _NON_NULLABLE:
        if required in changes and changes[required] is None:
            del changes[required]
    if "tag_ids" in changes:
        changes["tag_ids"] = _tag_keys(db, viewer, request.tag_ids)

    def work() -> PromptTemplate:
        for field, value in changes.items():
            setattr(template, field, value)
        db.flush()
        return template

    return PromptTemplateOut.model_validate(run_in_transaction(db, work))


def delete_prompt_template(db: Session, viewer: Viewer, template_id: UUID) -> None:
    template = get_template_for_viewer_or_404(db, viewer, template_id, write=True)

    def work() -> None:
        db.delete(template)
        db.flush()

    run_in_transaction(db, work)
    logger.info("prompt_template_deleted", template_id=str(template_id))


def record_prompt_template_usage(
    db: Session, viewer: Viewer, template_id: UUID
) -> PromptTemplateOut:
    """Count one use of a template and stamp last_used_at."""
    template = get_template_for_viewer_or_404(db, viewer, template_id)

    def work() -> None:
        at = now_ms()
        db.execute(
            update(PromptTemplate)
            .where(PromptTemplate.id == template.id)
            .values(
                usage_count=PromptTemplate.usage_count + 1,
                last_used_at=at,
                updated_at=at,
            )
            .execution_options(synchronize_session=False)
        )

    run_in_transaction(db, work)
    db.refresh(template)
    logger.info(
        "prompt_template_used", template_id=str(template_id), usage_count=template.usage_count
    )
    return PromptTemplateOut.model_validate(template)
