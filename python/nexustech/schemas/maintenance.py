"""Schemas for operator maintenance endpoints."""

from pydantic import BaseModel, Field


class RepairOrphansRequest(BaseModel):
    """Assign owner-less records outside shared nexi to `subject`.

    With dry_run the counts are reported and nothing is written.
    """

    subject: str = Field(..., min_length=1)
    dry_run: bool = False


class OrphanReport(BaseModel):
    dry_run: bool
    subject: str
    counts: dict[str, int]
    total: int


class LedgerMismatch(BaseModel):
    subject: str
    shard_balance: float
    ledger_total: float


class LedgerReport(BaseModel):
    """Users whose cached balance differs from the sum of their ledger rows."""

    checked: int
    mismatches: list[LedgerMismatch]
