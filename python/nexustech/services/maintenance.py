"""Operator maintenance jobs.

- repair_orphans: records written before ownership was enforced have no
  owner_id. Records under a shared nexus (the public manual, guest nexi)
  are owner-less on purpose and are left alone; everything else is
  assigned to the given subject. System prompt templates are owner-less
  on purpose too.
- verify_ledger: compares each user's cached shard_balance with the sum
  of their ledger rows.
"""

from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from nexustech.config import get_settings
from nexustech.db.models import (
    Attachment,
    Chunk,
    ChunkConnection,
    Conduit,
    ContentItem,
    Conversation,
    ConversationMessage,
    Jem,
    Nexus,
    Notebook,
    PromptTemplate,
    Tag,
    User,
    now_ms,
)
from nexustech.db.session import run_in_transaction
from nexustech.logging import get_logger
from nexustech.schemas.maintenance import LedgerMismatch, LedgerReport, OrphanReport
from nexustech.services.shards import ledger_total

logger = get_logger(__name__)

LEDGER_TOLERANCE = 1e-6

# Models whose rows carry updated_at and get it bumped on repair
_TIMESTAMPED = (Nexus, Notebook, Chunk, Tag, Conversation, ContentItem, PromptTemplate)


def _shared_nexus_ids(db: Session) -> set:
    manual_name = get_settings().shared_manual_nexus_name
    return {
        nexus.id
        for nexus in db.scalars(select(Nexus).where(Nexus.owner_id.is_(None))).all()
        if nexus.guest_session_id is not None or nexus.name == manual_name
    }


def _find_orphans(db: Session) -> dict[str, list[Any]]:
    """Owner-less rows outside shared nexi, keyed by report name."""
    shared_nexi = _shared_nexus_ids(db)
    shared_notebooks = set(
        db.scalars(select(Notebook.id).where(Notebook.nexus_id.in_(shared_nexi))).all()
    )
    shared_chunks = set(
        db.scalars(select(Chunk.id).where(Chunk.notebook_id.in_(shared_notebooks))).all()
    )
    shared_loci = {str(key) for key in shared_nexi | shared_notebooks}

    def unowned(model, keep: Callable[[Any], bool] = lambda row: True) -> list[Any]:
        return [
            row for row in db.scalars(select(model).where(model.owner_id.is_(None))).all()
            if keep(row)
        ]

    return {
        "nexi": unowned(Nexus, lambda row: row.id not in shared_nexi),
        "notebooks": unowned(Notebook, lambda row: row.nexus_id not in shared_nexi),
        "chunks": unowned(Chunk, lambda row: row.notebook_id not in shared_notebooks),
        "tags": unowned(Tag, lambda row: row.notebook_id not in shared_notebooks),
        "attachments": unowned(Attachment, lambda row: row.chunk_id not in shared_chunks),
        "jems": unowned(Jem, lambda row: row.chunk_id not in shared_chunks),
        "conduits": unowned(Conduit, lambda row: row.source_chunk_id not in shared_chunks),
        "connections": unowned(
            ChunkConnection, lambda row: row.shadow_chunk_id not in shared_chunks
        ),
        "conversations": unowned(Conversation),
        "messages": unowned(ConversationMessage),
        "content_items": unowned(ContentItem, lambda row: row.locus_id not in shared_loci),
        "prompt_templates": unowned(PromptTemplate, lambda row: not row.is_system_defined),
    }


def repair_orphans(db: Session, subject: str, dry_run: bool = False) -> OrphanReport:
    """Assign owner-less records outside shared nexi to `subject`.

    Args:
        db: Database session.
        subject: Identity-provider subject that becomes the owner.
        dry_run: Report counts only; write nothing.
    """

    def work() -> dict[str, int]:
        orphans = _find_orphans(db)
        if not dry_run:
            stamp = now_ms()
            for rows in orphans.values():
                for row in rows:
                    row.owner_id = subject
                    if isinstance(row, _TIMESTAMPED):
                        row.updated_at = stamp
            db.flush()
        return {name: len(rows) for name, rows in orphans.items()}

    counts = run_in_transaction(db, work)
    total = sum(counts.values())
    logger.info("orphans_repaired", subject=subject, dry_run=dry_run, total=total, **counts)
    return OrphanReport(dry_run=dry_run, subject=subject, counts=counts, total=total)


def verify_ledger(db: Session) -> LedgerReport:
    """Check every user's cached balance against their ledger. Read-only."""
    users = db.scalars(select(User).order_by(User.created_at)).all()
    mismatches = []
    for user in users:
        total = ledger_total(db, user.id)
        if abs(total - user.shard_balance) > LEDGER_TOLERANCE:
            mismatches.append(
                LedgerMismatch(
                    subject=user.subject, shard_balance=user.shard_balance, ledger_total=total
                )
            )

    if mismatches:
        logger.warning("ledger_mismatch", checked=len(users), mismatches=len(mismatches))
    return LedgerReport(checked=len(users), mismatches=mismatches)
