"""
Unit tests for FarmingService.

Tests cover:
- Deposit creation and its validation
- Farming info aggregation after an accrual tick
- Manual harvest, its queued batch rows and reward events
- Deposit deactivation
- Income projection
"""

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.helpers import make_user
from unifarm.models.enums import BatchStatus, TransactionType
from unifarm.models.reward_batch import RewardBatch
from unifarm.services.farming.accrual_calculator import AccrualCalculator
from unifarm.services.farming.farming_service import FarmingService
from unifarm.utils.datetime_utils import utc_now
from unifarm.utils.exceptions import (
    DatabaseError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def accrual_engine():
    engine = MagicMock()
    engine.accrue = AsyncMock()
    return engine


@pytest.fixture
def farming_service(mock_session, accrual_engine):
    """FarmingService with mocked repositories and accrual engine."""
    service = FarmingService(
        mock_session,
        reward_sink=AsyncMock(),
        accrual_engine=accrual_engine,
        calculator=AccrualCalculator(
            daily_rate=Decimal("0.005"), max_seconds=Decimal("10")
        ),
    )
    service.user_repo = MagicMock()
    service.user_repo.get_by_id = AsyncMock()
    service.user_repo.exists = AsyncMock(return_value=True)
    service.deposit_repo = MagicMock()
    service.deposit_repo.create = AsyncMock(return_value=SimpleNamespace(id=5))
    service.deposit_repo.get_active_by_user = AsyncMock(return_value=[])
    service.deposit_repo.get_by_id = AsyncMock()
    service.transaction_repo = MagicMock()
    return service


def active_deposit(deposit_id, amount, currency="UNI", user_id=1):
    return SimpleNamespace(
        id=deposit_id,
        user_id=user_id,
        amount=Decimal(amount),
        currency=currency,
        rate_per_second=Decimal(amount) / 100000,
        is_active=True,
        deactivated_at=None,
        created_at=utc_now() - timedelta(days=1),
    )


class TestCreateDeposit:
    """Locking funds into farming."""

    @pytest.mark.asyncio
    async def test_success(self, farming_service, mock_session):
        """Balance is debited and a negative deposit entry recorded."""
        user = make_user(1, balance_uni=Decimal("1000"))
        farming_service.user_repo.get_by_id.return_value = user

        result = await farming_service.create_deposit(1, "864", "uni")

        assert result.deposit_id == 5
        assert result.rate_per_second == Decimal("0.00005")
        assert result.new_balance == Decimal("136")
        assert user.balance_uni == Decimal("136")

        create_kwargs = farming_service.deposit_repo.create.await_args.kwargs
        assert create_kwargs["amount"] == Decimal("864")
        assert create_kwargs["currency"] == "UNI"
        assert create_kwargs["is_active"] is True

        entry = farming_service.transaction_repo.add_entry.call_args.kwargs
        assert entry["type"] == TransactionType.DEPOSIT.value
        assert entry["amount"] == Decimal("-864")
        assert entry["data"] == {"deposit_id": 5}
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, "-5", "not a number"])
    async def test_invalid_amount(self, farming_service, mock_session, amount):
        with pytest.raises(ValidationError):
            await farming_service.create_deposit(1, amount)

        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_below_minimum(self, farming_service):
        with pytest.raises(ValidationError, match="Minimum deposit"):
            await farming_service.create_deposit(1, "0.0001")

    @pytest.mark.asyncio
    async def test_unsupported_currency(self, farming_service):
        with pytest.raises(ValidationError):
            await farming_service.create_deposit(1, 10, "BTC")

    @pytest.mark.asyncio
    async def test_unknown_user(self, farming_service):
        farming_service.user_repo.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await farming_service.create_deposit(1, 10)

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, farming_service, mock_session):
        """Balance is left untouched."""
        user = make_user(1, balance_uni=Decimal("5"))
        farming_service.user_repo.get_by_id.return_value = user

        with pytest.raises(InsufficientFundsError):
            await farming_service.create_deposit(1, 10)

        assert user.balance_uni == Decimal("5")
        farming_service.deposit_repo.create.assert_not_awaited()
        mock_session.rollback.assert_awaited_once()


class TestFarmingInfo:
    """Aggregated farming state."""

    @pytest.mark.asyncio
    async def test_aggregates_per_currency(self, farming_service, accrual_engine):
        """Totals are summed per currency, preview capped at five."""
        deposits = [active_deposit(i, "100") for i in range(1, 6)]
        deposits.append(active_deposit(6, "50", currency="TON"))
        farming_service.deposit_repo.get_active_by_user.return_value = deposits
        farming_service.user_repo.get_by_id.return_value = make_user(
            1, balance_uni=Decimal("7"), accumulator_ton=Decimal("0.0000002")
        )

        info = await farming_service.get_farming_info(1)

        accrual_engine.accrue.assert_awaited_once_with(1)
        assert info.is_active is True
        assert info.deposit_count == 6
        assert len(info.deposits) == 5
        assert info.total_deposited == {"UNI": Decimal("500"), "TON": Decimal("50")}
        assert info.daily_income["UNI"] == Decimal("432")
        assert info.balance["UNI"] == Decimal("7")
        assert info.accumulated["TON"] == Decimal("0.0000002")

    @pytest.mark.asyncio
    async def test_inactive_participant(self, farming_service):
        farming_service.user_repo.get_by_id.return_value = make_user(1)

        info = await farming_service.get_farming_info(1)

        assert info.is_active is False
        assert info.total_deposited == {}
        assert info.deposits == []

    @pytest.mark.asyncio
    async def test_accrual_failure_does_not_block(
        self, farming_service, accrual_engine
    ):
        """A failed tick is logged and the stored state is returned."""
        accrual_engine.accrue.side_effect = DatabaseError("down")
        farming_service.user_repo.get_by_id.return_value = make_user(1)

        info = await farming_service.get_farming_info(1)

        assert info.balance["UNI"] == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_user(self, farming_service, accrual_engine):
        farming_service.user_repo.exists.return_value = False

        with pytest.raises(NotFoundError):
            await farming_service.get_farming_info(1)

        accrual_engine.accrue.assert_not_awaited()


class TestHarvest:
    """Manual harvest."""

    @pytest.mark.asyncio
    async def test_moves_accumulator(self, farming_service, mock_session):
        """Accumulated yield moves to main and emits one event."""
        user = make_user(
            1, balance_uni=Decimal("1"), accumulator_uni=Decimal("0.5")
        )
        farming_service.user_repo.get_by_id.return_value = user

        result = await farming_service.harvest(1)

        assert result.harvested == {"UNI": Decimal("0.5")}
        assert result.new_balance == {"UNI": Decimal("1.5")}
        assert user.accumulator_uni == Decimal("0")
        entry = farming_service.transaction_repo.add_entry.call_args.kwargs
        assert entry["type"] == TransactionType.FARMING_HARVEST.value
        mock_session.commit.assert_awaited_once()

        (event,) = [c.args[0] for c in farming_service.reward_sink.await_args_list]
        assert (event.source_user_id, event.amount, event.currency) == (
            1,
            Decimal("0.5"),
            "UNI",
        )

    @pytest.mark.asyncio
    async def test_batch_row_committed_with_harvest(
        self, farming_service, mock_session
    ):
        """The queued batch row is written before the harvest commits."""
        order = []
        mock_session.add.side_effect = order.append
        mock_session.commit = AsyncMock(side_effect=lambda: order.append("commit"))
        farming_service.user_repo.get_by_id.return_value = make_user(
            1, accumulator_ton=Decimal("2")
        )

        result = await farming_service.harvest(1)

        batch, marker = order
        assert isinstance(batch, RewardBatch)
        assert marker == "commit"
        assert batch.status == BatchStatus.QUEUED.value
        assert (batch.source_user_id, batch.amount, batch.currency) == (
            1,
            Decimal("2"),
            "TON",
        )
        assert result.reward_events[0].batch_id == batch.batch_id

    @pytest.mark.asyncio
    async def test_failed_handoff_keeps_harvest(self, farming_service, mock_session):
        """A rejected hand-off leaves the committed harvest and its row."""
        farming_service.reward_sink.side_effect = DatabaseError("queue down")
        farming_service.user_repo.get_by_id.return_value = make_user(
            1, accumulator_uni=Decimal("0.5")
        )

        result = await farming_service.harvest(1)

        assert result.harvested == {"UNI": Decimal("0.5")}
        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nothing_to_harvest(self, farming_service, mock_session):
        """An empty accumulator gives an empty result, not an error."""
        farming_service.user_repo.get_by_id.return_value = make_user(1)

        result = await farming_service.harvest(1)

        assert result.is_empty
        assert result.harvested == {}
        assert result.reward_events == []
        farming_service.transaction_repo.add_entry.assert_not_called()
        mock_session.add.assert_not_called()
        mock_session.rollback.assert_not_awaited()
        farming_service.reward_sink.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user(self, farming_service, mock_session):
        farming_service.user_repo.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await farming_service.harvest(404)

        mock_session.rollback.assert_awaited_once()
        farming_service.reward_sink.assert_not_awaited()


class TestDeactivateDeposit:
    """Logical deactivation."""

    @pytest.mark.asyncio
    async def test_success(self, farming_service, accrual_engine):
        """Final tick runs before the deposit is switched off."""
        dep = active_deposit(5, "100")
        farming_service.deposit_repo.get_by_id.return_value = dep

        assert await farming_service.deactivate_deposit(1, 5) is True

        accrual_engine.accrue.assert_awaited_once_with(1)
        assert dep.is_active is False
        assert dep.deactivated_at is not None

    @pytest.mark.asyncio
    async def test_foreign_deposit(self, farming_service):
        farming_service.deposit_repo.get_by_id.return_value = active_deposit(
            5, "100", user_id=2
        )

        with pytest.raises(NotFoundError):
            await farming_service.deactivate_deposit(1, 5)

    @pytest.mark.asyncio
    async def test_already_inactive(self, farming_service):
        dep = active_deposit(5, "100")
        dep.is_active = False
        farming_service.deposit_repo.get_by_id.return_value = dep

        with pytest.raises(ValidationError):
            await farming_service.deactivate_deposit(1, 5)


class TestSimulateReward:
    """Projection without persistence."""

    def test_projection(self, farming_service):
        projection = farming_service.simulate_reward(86400)

        assert projection["daily"] == Decimal("432")
        assert projection["monthly"] == Decimal("12960")

    def test_invalid(self, farming_service):
        with pytest.raises(ValidationError):
            farming_service.simulate_reward(0)
