"""Shard ledger service.

Every balance change is a pair of writes in one unit of work: the cached
users.shard_balance and an appended shard_transactions row. For every user,
sum(shard_amount) == shard_balance.

Rules:
- Debits with a non-positive cost and credits with a non-positive amount
  are skipped without writing anything.
- A debit larger than the balance raises InsufficientShardsError and
  writes nothing. Balances never go negative.
- Debit and credit lock the user row (SELECT ... FOR UPDATE) before reading
  the balance, so concurrent charges serialize.
- The monthly reset adds each user's allowance at most once per UTC
  calendar month; re-running it in the same month processes nobody.
"""

import math
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from nexustech.config import get_settings
from nexustech.db.models import ShardTransaction, ShardTransactionType, User, now_ms
from nexustech.db.session import run_in_transaction
from nexustech.errors import (
    ApiErrorCode,
    InsufficientShardsError,
    InvalidRequestError,
    NotFoundError,
)
from nexustech.logging import get_logger
from nexustech.schemas.shards import (
    CreditResult,
    DebitResult,
    DebitShardsRequest,
    ResetResult,
    ShardSummaryOut,
    ShardTransactionOut,
)
from nexustech.services.pricing import compute_shard_cost

logger = get_logger(__name__)

DEFAULT_PURCHASE_REASON = "User purchase"
MONTHLY_RESET_REASON = "Monthly allowance reset"
WELCOME_BONUS_REASON = "Welcome bonus"

# Transaction history limits
DEFAULT_SUMMARY_LIMIT = 25
MIN_SUMMARY_LIMIT = 1
MAX_SUMMARY_LIMIT = 100


# =============================================================================
# Helpers
# =============================================================================


def clamp_summary_limit(limit: int) -> int:
    """Clamp limit to [MIN_SUMMARY_LIMIT, MAX_SUMMARY_LIMIT]."""
    return min(max(limit, MIN_SUMMARY_LIMIT), MAX_SUMMARY_LIMIT)


def month_start_ms(at_ms: int) -> int:
    """Epoch ms of 00:00 UTC on the first day of the month containing `at_ms`."""
    at = datetime.fromtimestamp(at_ms / 1000, tz=UTC)
    start = at.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return int(start.timestamp() * 1000)


def get_user_by_subject(db: Session, subject: str, for_update: bool = False) -> User | None:
    query = select(User).where(User.subject == subject)
    if for_update:
        query = query.with_for_update()
    return db.scalar(query)


def _require_finite(value: float, field: str) -> None:
    if not math.isfinite(value):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, f"{field} must be a finite number"
        )


def _lock_user_or_404(db: Session, subject: str) -> User:
    user = get_user_by_subject(db, subject, for_update=True)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return user


def _append(
    db: Session,
    user: User,
    type_: ShardTransactionType,
    amount: float,
    reason: str | None,
    *,
    conversation_id: UUID | None = None,
    input_tokens: int | None = None,
    output_tokens: int | None = None,
    model_id: str | None = None,
) -> ShardTransaction:
    row = ShardTransaction(
        user_id=user.id,
        type=type_.value,
        shard_amount=amount,
        reason=reason,
        associated_conversation_id=conversation_id,
        input_tokens_used=input_tokens,
        output_tokens_used=output_tokens,
        model_id_used=model_id,
    )
    db.add(row)
    return row


# =============================================================================
# Ledger operations
# =============================================================================


def record_welcome_bonus(db: Session, user: User) -> None:
    """Grant the first-sign-in bonus and start the monthly allowance.

    Runs inside the caller's transaction (user creation); flushes, never commits.
    """
    settings = get_settings()
    bonus = settings.welcome_bonus_shards

    user.shard_balance = bonus
    user.monthly_shard_allowance = settings.default_monthly_allowance
    user.last_allowance_reset_at = now_ms()
    _append(db, user, ShardTransactionType.WELCOME_BONUS, bonus, WELCOME_BONUS_REASON)
    db.flush()

    logger.info("welcome_bonus_granted", subject=user.subject, amount=bonus)


def debit_shards(
    db: Session,
    subject: str,
    cost: float,
    reason: str | None = None,
    *,
    conversation_id: UUID | None = None,
    input_tokens: int | None = None,
    output_tokens: int | None = None,
    model_id: str | None = None,
) -> DebitResult:
    """Charge `cost` shards to a user and append a DEBIT row (amount = -cost).

    Raises:
        NotFoundError(E_USER_NOT_FOUND): No user with this subject.
        InvalidRequestError(E_INVALID_REQUEST): cost is NaN or infinite.
        InsufficientShardsError: Balance is lower than cost. Nothing is written.
    """
    _require_finite(cost, "cost")

    def work() -> DebitResult:
        user = _lock_user_or_404(db, subject)
        if cost <= 0:
            return DebitResult(skipped=True, balance=user.shard_balance, cost=cost)
        if user.shard_balance < cost:
            raise InsufficientShardsError(balance=user.shard_balance, cost=cost)

        user.shard_balance = user.shard_balance - cost
        _append(
            db,
            user,
            ShardTransactionType.DEBIT,
            -cost,
            reason,
            conversation_id=conversation_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model_id=model_id,
        )
        return DebitResult(balance=user.shard_balance, cost=cost)

    try:
        result = run_in_transaction(db, work)
    except InsufficientShardsError as exc:
        logger.info("shards_insufficient", subject=subject, balance=exc.balance, cost=exc.cost)
        raise

    if result.skipped:
        logger.debug("shard_debit_skipped", subject=subject, cost=cost)
    else:
        logger.info("shards_debited", subject=subject, cost=cost, balance=result.balance)
    return result


def charge_for_usage(
    db: Session,
    subject: str,
    model_id: str,
    input_tokens: int,
    output_tokens: int,
    *,
    conversation_id: UUID | None = None,
    reason: str | None = None,
) -> DebitResult:
    """Price one LLM call with compute_shard_cost and debit it."""
    cost = compute_shard_cost(db, model_id, input_tokens, output_tokens)
    return debit_shards(
        db,
        subject,
        cost,
        reason or f"LLM usage: {model_id}",
        conversation_id=conversation_id,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        model_id=model_id,
    )


def debit_for_request(db: Session, request: DebitShardsRequest) -> DebitResult:
    """Debit an explicit cost, or price the usage from model_id and token counts.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): Neither cost nor model_id was given.
    """
    if request.cost is not None:
        return debit_shards(
            db,
            request.subject,
            request.cost,
            request.reason,
            conversation_id=request.conversation_id,
            input_tokens=request.input_tokens,
            output_tokens=request.output_tokens,
            model_id=request.model_id,
        )
    if request.model_id is None:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Either cost or model_id is required"
        )
    return charge_for_usage(
        db,
        request.subject,
        request.model_id,
        request.input_tokens,
        request.output_tokens,
        conversation_id=request.conversation_id,
        reason=request.reason,
    )


def credit_shards(
    db: Session, subject: str, amount: float, reason: str | None = None
) -> CreditResult:
    """Add purchased shards and append a PURCHASE row.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): amount is NaN or infinite.
        NotFoundError(E_USER_NOT_FOUND): No user with this subject.
    """
    _require_finite(amount, "amount")

    def work() -> CreditResult:
        user = _lock_user_or_404(db, subject)
        if amount <= 0:
            return CreditResult(skipped=True, balance=user.shard_balance)

        user.shard_balance = user.shard_balance + amount
        user.purchased_shards = user.purchased_shards + amount
        _append(
            db, user, ShardTransactionType.PURCHASE, amount, reason or DEFAULT_PURCHASE_REASON
        )
        return CreditResult(balance=user.shard_balance)

    result = run_in_transaction(db, work)
    if not result.skipped:
        logger.info("shards_credited", subject=subject, amount=amount, balance=result.balance)
    return result


def monthly_allowance_reset(db: Session, at_ms: int | None = None) -> ResetResult:
    """Add each eligible user's monthly allowance once for the current UTC month.

    Eligible: allowance > 0 and last reset before this month's start. The
    reset stamps last_allowance_reset_at with the month start, which makes a
    second run in the same month a no-op.
    """
    if at_ms is None:
        at_ms = now_ms()
    cutoff = month_start_ms(at_ms)

    def work() -> int:
        users = db.scalars(
            select(User)
            .where(
                User.monthly_shard_allowance > 0,
                or_(User.last_allowance_reset_at.is_(None), User.last_allowance_reset_at < cutoff),
            )
            .order_by(User.id)
            .with_for_update()
        ).all()

        for user in users:
            allowance = user.monthly_shard_allowance
            user.shard_balance = user.shard_balance + allowance
            user.last_allowance_reset_at = cutoff
            _append(db, user, ShardTransactionType.MONTHLY_RESET, allowance, MONTHLY_RESET_REASON)
        return len(users)

    processed = run_in_transaction(db, work)
    logger.info("monthly_allowance_reset", processed=processed, month_start=cutoff)
    return ResetResult(processed=processed)


def get_shard_summary(
    db: Session, subject: str, limit: int = DEFAULT_SUMMARY_LIMIT
) -> ShardSummaryOut:
    """Balance, allowance, and the latest transactions for one user, newest first.

    Raises:
        NotFoundError(E_USER_NOT_FOUND): No user with this subject.
    """
    user = get_user_by_subject(db, subject)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")

    rows = db.scalars(
        select(ShardTransaction)
        .where(ShardTransaction.user_id == user.id)
        .order_by(ShardTransaction.created_at.desc(), ShardTransaction.id.desc())
        .limit(clamp_summary_limit(limit))
    ).all()

    return ShardSummaryOut(
        balance=user.shard_balance,
        monthly_allowance=user.monthly_shard_allowance,
        last_allowance_reset_at=user.last_allowance_reset_at,
        purchased_shards=user.purchased_shards,
        transactions=[ShardTransactionOut.model_validate(row) for row in rows],
    )


def ledger_total(db: Session, user_id: UUID) -> float:
    """Sum of all ledger rows for a user (what the cached balance must equal)."""
    total = db.scalar(
        select(func.coalesce(func.sum(ShardTransaction.shard_amount), 0)).where(
            ShardTransaction.user_id == user_id
        )
    )
    return float(total)
