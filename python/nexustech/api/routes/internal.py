"""Internal-only operator routes.

These routes are never called from a browser. The caller is
another backend (chat service, billing webhook, scheduler) identified by the
X-Nexustech-Internal header, not by a user token.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, require_internal_caller
from nexustech.responses import success_response
from nexustech.schemas.maintenance import RepairOrphansRequest
from nexustech.schemas.prompt_template import CreatePromptTemplateRequest
from nexustech.schemas.shards import CreditShardsRequest, DebitShardsRequest
from nexustech.services import maintenance as maintenance_service
from nexustech.services import prompt_templates as prompt_templates_service
from nexustech.services import shards as shards_service

router = APIRouter(dependencies=[Depends(require_internal_caller)])


@router.post("/internal/shards/debit")
def debit_shards(
    body: DebitShardsRequest,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Charge a user for usage.

    402 E_INSUFFICIENT_SHARDS when the balance is too low; nothing is written.
    """
    result = shards_service.debit_for_request(db, body)
    return success_response(result.model_dump(mode="json"))


@router.post("/internal/shards/credit")
def credit_shards(
    body: CreditShardsRequest,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Record a shard purchase."""
    result = shards_service.credit_shards(db, body.subject, body.amount, body.reason)
    return success_response(result.model_dump(mode="json"))


@router.post("/internal/shards/monthly-reset")
def monthly_reset(db: Annotated[Session, Depends(get_db)]) -> dict:
    """Run the monthly allowance reset now. Safe to repeat within a month."""
    result = shards_service.monthly_allowance_reset(db)
    return success_response(result.model_dump(mode="json"))


@router.post("/internal/maintenance/orphans")
def repair_orphans(
    body: RepairOrphansRequest,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Assign owner-less records outside shared nexi to a user (dry_run reports only)."""
    result = maintenance_service.repair_orphans(db, body.subject, dry_run=body.dry_run)
    return success_response(result.model_dump(mode="json"))


@router.get("/internal/maintenance/ledger")
def verify_ledger(db: Annotated[Session, Depends(get_db)]) -> dict:
    """Report users whose cached balance disagrees with their ledger."""
    result = maintenance_service.verify_ledger(db)
    return success_response(result.model_dump(mode="json"))


@router.post("/internal/prompt-templates", status_code=201)
def create_system_prompt_template(
    body: CreatePromptTemplateRequest,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a system template, shared with every user and read-only to them."""
    result = prompt_templates_service.create_system_prompt_template(db, body)
    return success_response(result.model_dump(mode="json"))
