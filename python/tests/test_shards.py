"""Tests for the shard ledger service.

Tests cover:
- Welcome bonus on first sign-in (once)
- Debit success, insufficient funds, zero-cost skip
- Credit (purchase) and zero-amount skip
- Usage pricing through debit_for_request
- Monthly allowance reset idempotence within a month
- Balance equals ledger sum after mixed operations
- Shard summary ordering and limit clamping
"""

from datetime import UTC, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from nexustech.db.models import ShardTransaction, ShardTransactionType, User
from nexustech.errors import (
    ApiErrorCode,
    InsufficientShardsError,
    InvalidRequestError,
    NotFoundError,
)
from nexustech.schemas.shards import DebitShardsRequest
from nexustech.services import shards as shards_service
from nexustech.services.users import ensure_user
from tests.factories import create_test_user, create_test_user_with_balance


def _ms(year: int, month: int, day: int, hour: int = 12) -> int:
    return int(datetime(year, month, day, hour, tzinfo=UTC).timestamp() * 1000)


def _transactions(db: Session, viewer) -> list[ShardTransaction]:
    db.expire_all()
    return list(
        db.scalars(
            select(ShardTransaction)
            .where(ShardTransaction.user_id == viewer.user_id)
            .order_by(ShardTransaction.created_at)
        ).all()
    )


def _balance(db: Session, viewer) -> float:
    db.expire_all()
    return db.get(User, viewer.user_id).shard_balance


def _assert_consistent(db: Session, viewer) -> None:
    assert _balance(db, viewer) == pytest.approx(shards_service.ledger_total(db, viewer.user_id))


class TestWelcomeBonus:
    def test_first_sign_in_grants_bonus(self, db_session: Session):
        viewer = create_test_user(db_session)

        rows = _transactions(db_session, viewer)
        assert [row.type for row in rows] == [ShardTransactionType.WELCOME_BONUS.value]
        assert rows[0].shard_amount == 100
        assert _balance(db_session, viewer) == 100
        user = db_session.get(User, viewer.user_id)
        assert user.monthly_shard_allowance == 100
        assert user.last_allowance_reset_at is not None

    def test_repeat_sign_in_does_not_grant_again(self, db_session: Session):
        viewer = create_test_user(db_session)

        user_id = ensure_user(db_session, viewer.subject)

        assert user_id == viewer.user_id
        assert len(_transactions(db_session, viewer)) == 1

    def test_profile_claims_are_copied(self, db_session: Session):
        user_id = ensure_user(
            db_session, "sub-claims", {"email": "a@example.com", "name": "A", "picture": "p"}
        )

        user = db_session.get(User, user_id)
        assert (user.email, user.name, user.image_url) == ("a@example.com", "A", "p")


class TestDebit:
    def test_debit_within_balance(self, db_session: Session):
        """Balance 50, cost 30: balance 20 and one DEBIT row of -30."""
        viewer = create_test_user_with_balance(db_session, 50)

        result = shards_service.debit_shards(db_session, viewer.subject, 30, "chat")

        assert result.skipped is False
        assert result.balance == 20
        assert _balance(db_session, viewer) == 20
        debits = [
            row
            for row in _transactions(db_session, viewer)
            if row.type == ShardTransactionType.DEBIT.value
        ]
        assert len(debits) == 1
        assert debits[0].shard_amount == -30
        assert debits[0].reason == "chat"

    def test_insufficient_funds_writes_nothing(self, db_session: Session):
        """Balance 50, cost 75: fails, balance still 50, no row appended."""
        viewer = create_test_user_with_balance(db_session, 50)
        before = len(_transactions(db_session, viewer))

        with pytest.raises(InsufficientShardsError) as exc_info:
            shards_service.debit_shards(db_session, viewer.subject, 75)

        assert exc_info.value.status_code == 402
        assert exc_info.value.balance == 50
        assert _balance(db_session, viewer) == 50
        assert len(_transactions(db_session, viewer)) == before

    def test_debit_of_entire_balance_is_allowed(self, db_session: Session):
        viewer = create_test_user_with_balance(db_session, 50)

        result = shards_service.debit_shards(db_session, viewer.subject, 50)

        assert result.balance == 0

    @pytest.mark.parametrize("cost", [0, -5])
    def test_non_positive_cost_is_skipped(self, db_session: Session, cost: float):
        viewer = create_test_user_with_balance(db_session, 50)
        before = len(_transactions(db_session, viewer))

        result = shards_service.debit_shards(db_session, viewer.subject, cost)

        assert result.skipped is True
        assert _balance(db_session, viewer) == 50
        assert len(_transactions(db_session, viewer)) == before

    @pytest.mark.parametrize("cost", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_cost_is_rejected(self, db_session: Session, cost: float):
        viewer = create_test_user_with_balance(db_session, 50)
        before = len(_transactions(db_session, viewer))

        with pytest.raises(InvalidRequestError):
            shards_service.debit_shards(db_session, viewer.subject, cost)

        assert _balance(db_session, viewer) == 50
        assert len(_transactions(db_session, viewer)) == before
        _assert_consistent(db_session, viewer)

    def test_unknown_user_raises_not_found(self, db_session: Session):
        with pytest.raises(NotFoundError) as exc_info:
            shards_service.debit_shards(db_session, "nobody", 1)
        assert exc_info.value.code == ApiErrorCode.E_USER_NOT_FOUND


class TestDebitForRequest:
    def test_explicit_cost_wins(self, db_session: Session):
        viewer = create_test_user_with_balance(db_session, 50)

        result = shards_service.debit_for_request(
            db_session,
            DebitShardsRequest(subject=viewer.subject, cost=5, model_id="openai/gpt-4o"),
        )

        assert result.cost == 5
        assert result.balance == 45

    def test_cost_priced_from_model_and_tokens(self, db_session: Session):
        viewer = create_test_user_with_balance(db_session, 50)

        result = shards_service.debit_for_request(
            db_session,
            DebitShardsRequest(
                subject=viewer.subject,
                model_id="openai/gpt-4o",
                input_tokens=1_000_000,
                output_tokens=100_000,
            ),
        )

        # 1M input at 5.0 plus 0.1M output at 15.0, markup 1.0
        assert result.cost == pytest.approx(6.5)
        (debit,) = [
            row
            for row in _transactions(db_session, viewer)
            if row.type == ShardTransactionType.DEBIT.value
        ]
        assert debit.model_id_used == "openai/gpt-4o"
        assert debit.input_tokens_used == 1_000_000
        assert debit.output_tokens_used == 100_000

    def test_free_model_is_skipped(self, db_session: Session):
        viewer = create_test_user_with_balance(db_session, 50)

        result = shards_service.debit_for_request(
            db_session,
            DebitShardsRequest(subject=viewer.subject, model_id="some/model:free", input_tokens=10),
        )

        assert result.skipped is True

    def test_requires_cost_or_model(self, db_session: Session):
        viewer = create_test_user_with_balance(db_session, 50)

        with pytest.raises(InvalidRequestError):
            shards_service.debit_for_request(db_session, DebitShardsRequest(subject=viewer.subject))


class TestCredit:
    def test_credit_adds_purchase(self, db_session: Session):
        viewer = create_test_user_with_balance(db_session, 10)

        result = shards_service.credit_shards(db_session, viewer.subject, 40)

        assert result.balance == 50
        (last,) = [
            row
            for row in _transactions(db_session, viewer)
            if row.type == ShardTransactionType.PURCHASE.value
        ]
        assert last.shard_amount == 40
        assert last.reason == shards_service.DEFAULT_PURCHASE_REASON
        assert db_session.get(User, viewer.user_id).purchased_shards == 40

    def test_zero_credit_is_skipped(self, db_session: Session):
        viewer = create_test_user_with_balance(db_session, 10)
        before = len(_transactions(db_session, viewer))

        result = shards_service.credit_shards(db_session, viewer.subject, 0)

        assert result.skipped is True
        assert len(_transactions(db_session, viewer)) == before

    @pytest.mark.parametrize("amount", [float("inf"), float("nan")])
    def test_non_finite_credit_is_rejected(self, db_session: Session, amount: float):
        viewer = create_test_user_with_balance(db_session, 10)
        before = len(_transactions(db_session, viewer))

        with pytest.raises(InvalidRequestError):
            shards_service.credit_shards(db_session, viewer.subject, amount)

        assert _balance(db_session, viewer) == 10
        assert len(_transactions(db_session, viewer)) == before


class TestMonthlyReset:
    def test_month_start(self):
        assert shards_service.month_start_ms(_ms(2026, 3, 17)) == _ms(2026, 3, 1, hour=0)

    def test_reset_processes_each_user_once_per_month(self, db_session: Session):
        viewer = create_test_user(db_session)
        user = db_session.get(User, viewer.user_id)
        user.last_allowance_reset_at = _ms(2026, 2, 1)
        db_session.commit()

        first = shards_service.monthly_allowance_reset(db_session, at_ms=_ms(2026, 3, 1, hour=1))
        second = shards_service.monthly_allowance_reset(db_session, at_ms=_ms(2026, 3, 20))

        assert first.processed == 1
        assert second.processed == 0
        assert _balance(db_session, viewer) == 200
        resets = [
            row
            for row in _transactions(db_session, viewer)
            if row.type == ShardTransactionType.MONTHLY_RESET.value
        ]
        assert len(resets) == 1

    def test_reset_runs_again_next_month(self, db_session: Session):
        viewer = create_test_user(db_session)
        db_session.get(User, viewer.user_id).last_allowance_reset_at = _ms(2026, 2, 1)
        db_session.commit()

        shards_service.monthly_allowance_reset(db_session, at_ms=_ms(2026, 3, 2))
        result = shards_service.monthly_allowance_reset(db_session, at_ms=_ms(2026, 4, 2))

        assert result.processed == 1
        assert _balance(db_session, viewer) == 300

    def test_users_without_allowance_are_skipped(self, db_session: Session):
        viewer = create_test_user(db_session)
        user = db_session.get(User, viewer.user_id)
        user.monthly_shard_allowance = 0
        user.last_allowance_reset_at = None
        db_session.commit()

        result = shards_service.monthly_allowance_reset(db_session, at_ms=_ms(2026, 3, 2))

        assert result.processed == 0


class TestLedgerConsistency:
    def test_balance_matches_ledger_after_mixed_operations(self, db_session: Session):
        viewer = create_test_user(db_session)
        db_session.get(User, viewer.user_id).last_allowance_reset_at = _ms(2026, 1, 1)
        db_session.commit()

        shards_service.debit_shards(db_session, viewer.subject, 12.5)
        shards_service.credit_shards(db_session, viewer.subject, 30)
        shards_service.debit_shards(db_session, viewer.subject, 0)
        with pytest.raises(InsufficientShardsError):
            shards_service.debit_shards(db_session, viewer.subject, 10_000)
        shards_service.monthly_allowance_reset(db_session, at_ms=_ms(2026, 2, 3))
        shards_service.debit_shards(db_session, viewer.subject, 0.25)

        _assert_consistent(db_session, viewer)
        assert _balance(db_session, viewer) == pytest.approx(100 - 12.5 + 30 + 100 - 0.25)


class TestShardSummary:
    def test_summary_lists_newest_first(self, db_session: Session):
        viewer = create_test_user(db_session)
        shards_service.debit_shards(db_session, viewer.subject, 1)
        shards_service.credit_shards(db_session, viewer.subject, 5)

        summary = shards_service.get_shard_summary(db_session, viewer.subject)

        assert summary.balance == 104
        assert len(summary.transactions) == 3
        created = [row.created_at for row in summary.transactions]
        assert created == sorted(created, reverse=True)

    @pytest.mark.parametrize("limit,expected", [(0, 1), (1, 1), (500, 100)])
    def test_limit_is_clamped(self, limit: int, expected: int):
        assert shards_service.clamp_summary_limit(limit) == expected

    def test_summary_for_unknown_user(self, db_session: Session):
        with pytest.raises(NotFoundError):
            shards_service.get_shard_summary(db_session, "nobody")

