"""
Unit tests for RewardDistributionEngine.

Tests cover:
- Level shares over a short chain
- Empty chains and unknown sources
- Input validation
- Cyclic chains merged to one credit per ancestor
- Commit and rollback of distribute()
- Storage errors wrapped as DatabaseError
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from tests.helpers import make_user
from unifarm.models.enums import Currency
from unifarm.services.referral.distribution_engine import (
    RewardDistributionEngine,
    validate_reward_input,
)
from unifarm.services.referral.reward_calculator import ReferralRewardCalculator
from unifarm.utils.exceptions import DatabaseError, NotFoundError, ValidationError


def build_engine(session, chain, source=None):
    resolver = MagicMock()
    resolver.resolve_chain = AsyncMock(return_value=chain)
    writer = MagicMock()
    writer.write = AsyncMock()

    engine = RewardDistributionEngine(
        session,
        resolver=resolver,
        writer=writer,
        calculator=ReferralRewardCalculator(min_reward=Decimal("0.0001")),
    )
    engine.user_repo = MagicMock()
    engine.user_repo.get_by_id = AsyncMock(
        return_value=source if source is not None else make_user(1)
    )
    return engine


class TestValidateRewardInput:
    """Amount and currency validation."""

    def test_normalizes(self):
        """String amount and lowercase currency are accepted."""
        assert validate_reward_input("12.5", "ton") == (Decimal("12.5"), Currency.TON)

    @pytest.mark.parametrize("amount", [0, -1, "abc"])
    def test_bad_amount(self, amount):
        """Non-positive or non-numeric amount is rejected."""
        with pytest.raises(ValidationError):
            validate_reward_input(amount, "UNI")

    def test_bad_currency(self):
        """Unknown currency is rejected."""
        with pytest.raises(ValidationError):
            validate_reward_input(10, "BTC")


class TestApply:
    """Distribution inside the caller's transaction."""

    @pytest.mark.asyncio
    async def test_three_levels(self, mock_session):
        """1000 over [10, 20, 30] credits 50, 30 and 20."""
        engine = build_engine(mock_session, [10, 20, 30])

        result = await engine.apply(1, Decimal("1000"), "UNI", batch_id="b-1")

        assert result.total_distributed == Decimal("100")
        assert result.levels_processed == 3
        assert result.inviter_count == 3
        assert [c.amount for c in result.credits] == [
            Decimal("50"),
            Decimal("30"),
            Decimal("20"),
        ]
        engine.writer.write.assert_awaited_once()
        kwargs = engine.writer.write.await_args.kwargs
        assert kwargs["source_user_id"] == 1
        assert kwargs["currency"] == Currency.UNI
        assert kwargs["batch_id"] == "b-1"
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_chain(self, mock_session):
        """No inviters, zero distribution, nothing written."""
        engine = build_engine(mock_session, [])

        result = await engine.apply(1, 100, "UNI")

        assert result.total_distributed == Decimal("0")
        assert result.inviter_count == 0
        engine.writer.write.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_level_beyond_table_earns_nothing(self, mock_session):
        """Positions 11..20 add nothing to the total."""
        engine = build_engine(mock_session, list(range(100, 120)))

        result = await engine.apply(1, Decimal("1000"), "UNI")

        assert result.total_distributed == Decimal("145")
        assert result.levels_processed == 10
        assert all(c.level <= 10 for c in result.credits)

    @pytest.mark.asyncio
    async def test_cycle_merges_credits(self, mock_session):
        """A -> B -> A: each ancestor gets a single merged credit."""
        engine = build_engine(mock_session, [2, 1] * 10)

        result = await engine.apply(1, Decimal("1000"), "UNI")

        by_user = {c.user_id: c for c in result.credits}
        assert set(by_user) == {1, 2}
        assert by_user[2].amount == Decimal("90")
        assert by_user[2].levels == [1, 3, 5, 7, 9]
        assert by_user[1].amount == Decimal("55")
        assert result.inviter_count == 2
        assert result.total_distributed == Decimal("145")

    @pytest.mark.asyncio
    async def test_dust_dropped(self, mock_session):
        """Rewards under the floor are not credited."""
        engine = build_engine(mock_session, [10, 20])

        result = await engine.apply(1, Decimal("0.002"), "UNI")

        # 0.002 * 5% = 0.0001 kept, 0.002 * 3% = 0.00006 dropped
        assert [c.user_id for c in result.credits] == [10]
        assert result.total_distributed == Decimal("0.0001")

    @pytest.mark.asyncio
    async def test_unknown_source(self, mock_session):
        """Missing source participant is NotFoundError."""
        engine = build_engine(mock_session, [10])
        engine.user_repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await engine.apply(99, 100, "UNI")

        engine.resolver.resolve_chain.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_amount(self, mock_session):
        """Zero amount fails before any lookup."""
        engine = build_engine(mock_session, [10])

        with pytest.raises(ValidationError):
            await engine.apply(1, 0, "UNI")

        engine.user_repo.get_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_storage_error_wrapped(self, mock_session):
        """SQLAlchemy errors surface as retryable DatabaseError."""
        engine = build_engine(mock_session, [10])
        engine.writer.write = AsyncMock(
            side_effect=OperationalError("UPDATE users", {}, Exception("lost"))
        )

        with pytest.raises(DatabaseError) as exc_info:
            await engine.apply(1, 100, "UNI", batch_id="b-9")

        assert exc_info.value.retryable is True


class TestDistribute:
    """Self-committing distribution."""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, mock_session):
        engine = build_engine(mock_session, [10])

        await engine.distribute(1, 100, "UNI")

        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_on_failure(self, mock_session):
        """A failing write leaves nothing committed."""
        engine = build_engine(mock_session, [10, 20])
        engine.writer.write = AsyncMock(side_effect=DatabaseError("boom"))

        with pytest.raises(DatabaseError):
            await engine.distribute(1, 100, "UNI")

        mock_session.commit.assert_not_awaited()
        mock_session.rollback.assert_awaited_once()
