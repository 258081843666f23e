"""Shard ledger Pydantic schemas."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ShardTransactionTypeValue = Literal[
    "DEBIT", "CREDIT", "MONTHLY_RESET", "PURCHASE", "WELCOME_BONUS"
]


class DebitShardsRequest(BaseModel):
    """Charge a user for one LLM call.

    Either pass `cost` directly, or pass `model_id` with token counts and
    the cost is computed from model pricing.
    """

    subject: str = Field(..., min_length=1)
    cost: float | None = Field(default=None, allow_inf_nan=False)
    model_id: str | None = None
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    reason: str | None = None
    conversation_id: UUID | None = None


class CreditShardsRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    amount: float = Field(..., allow_inf_nan=False)
    reason: str | None = None


class DebitResult(BaseModel):
    """Outcome of a debit. `skipped` means the cost was not positive and nothing was written."""

    skipped: bool = False
    balance: float | None = None
    cost: float = 0


class CreditResult(BaseModel):
    skipped: bool = False
    balance: float | None = None


class ResetResult(BaseModel):
    processed: int


class ShardTransactionOut(BaseModel):
    id: UUID
    type: ShardTransactionTypeValue
    shard_amount: float
    reason: str | None
    associated_conversation_id: UUID | None
    input_tokens_used: int | None
    output_tokens_used: int | None
    model_id_used: str | None
    created_at: int

    model_config = ConfigDict(from_attributes=True)


class ShardSummaryOut(BaseModel):
    """Balance, allowance, and the most recent ledger rows (newest first)."""

    balance: float
    monthly_allowance: float
    last_allowance_reset_at: int | None
    purchased_shards: float
    transactions: list[ShardTransactionOut]
