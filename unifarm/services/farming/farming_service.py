"""
Farming service.

Deposit, info, harvest and deactivation operations on top of the
accrual engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.config.constants import FARMING_INFO_DEPOSITS_PREVIEW, SECONDS_IN_DAY
from unifarm.config.settings import settings
from unifarm.models.enums import Currency, TransactionStatus, TransactionType
from unifarm.repositories.deposit_repository import FarmingDepositRepository
from unifarm.repositories.reward_batch_repository import RewardBatchRepository
from unifarm.repositories.transaction_repository import TransactionRepository
from unifarm.repositories.user_repository import UserRepository
from unifarm.services.base_service import BaseService, transaction
from unifarm.services.farming.accrual_calculator import AccrualCalculator
from unifarm.services.farming.accrual_engine import (
    FarmingAccrualEngine,
    RewardSink,
    deliver_reward_events,
)
from unifarm.services.rewards.batch_coordinator import RewardEvent
from unifarm.utils.datetime_utils import utc_now
from unifarm.utils.decimal_utils import quantize_money, to_decimal
from unifarm.utils.exceptions import (
    InsufficientFundsError,
    NotFoundError,
    UnifarmError,
    ValidationError,
)


@dataclass
class DepositResult:
    """Result of a new farming deposit."""

    deposit_id: int
    rate_per_second: Decimal
    new_balance: Decimal


@dataclass
class DepositView:
    """Read-only view of one active deposit."""

    id: int
    amount: Decimal
    currency: str
    rate_per_second: Decimal
    daily_income: Decimal
    created_at: datetime


@dataclass
class FarmingInfo:
    """Farming state of a participant, totals keyed by currency code."""

    is_active: bool
    total_deposited: dict[str, Decimal] = field(default_factory=dict)
    rate_per_second: dict[str, Decimal] = field(default_factory=dict)
    daily_income: dict[str, Decimal] = field(default_factory=dict)
    deposits: list[DepositView] = field(default_factory=list)
    deposit_count: int = 0
    accumulated: dict[str, Decimal] = field(default_factory=dict)
    balance: dict[str, Decimal] = field(default_factory=dict)


@dataclass
class HarvestResult:
    """Amounts moved from accumulators to main balances."""

    harvested: dict[str, Decimal] = field(default_factory=dict)
    new_balance: dict[str, Decimal] = field(default_factory=dict)
    reward_events: list[RewardEvent] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.harvested


class FarmingService(BaseService):
    """
    Farming service.

    Handles:
    - Deposit creation with balance debit
    - Farming info with a fresh accrual tick
    - Manual harvest of accumulated yield
    - Logical deactivation of deposits
    - Income projection
    """

    def __init__(
        self,
        session: AsyncSession,
        reward_sink: RewardSink | None = None,
        accrual_engine: FarmingAccrualEngine | None = None,
        calculator: AccrualCalculator | None = None,
    ) -> None:
        """
        Initialize farming service.

        Args:
            session: Async database session
            reward_sink: Receives reward events (harvest and accrual)
            accrual_engine: Engine used for ticks (built on the same session)
            calculator: Yield calculator
        """
        super().__init__(session)
        self.reward_sink = reward_sink
        self.calculator = calculator or AccrualCalculator()
        self.accrual_engine = accrual_engine or FarmingAccrualEngine(
            session, reward_sink=reward_sink, calculator=self.calculator
        )
        self.user_repo = UserRepository(session)
        self.deposit_repo = FarmingDepositRepository(session)
        self.transaction_repo = TransactionRepository(session)
        self.batch_repo = RewardBatchRepository(session)

    @transaction
    async def create_deposit(
        self,
        owner_id: int,
        amount: Decimal | int | str,
        currency: str = Currency.UNI.value,
    ) -> DepositResult:
        """
        Lock funds into farming.

        Args:
            owner_id: Participant ID
            amount: Deposit amount
            currency: Currency code

        Returns:
            DepositResult

        Raises:
            ValidationError: Non-positive or below-minimum amount, bad currency
            NotFoundError: Unknown participant
            InsufficientFundsError: Main balance cannot cover the deposit
        """
        try:
            value = to_decimal(amount)
        except ValueError as e:
            raise ValidationError(f"Invalid amount: {amount!r}") from e

        if value <= 0:
            raise ValidationError("Deposit amount must be positive")
        if value < settings.farming_min_deposit:
            raise ValidationError(
                f"Minimum deposit is {settings.farming_min_deposit}",
                amount=value,
            )

        try:
            code = Currency(str(currency).upper())
        except ValueError as e:
            raise ValidationError(f"Unsupported currency: {currency!r}") from e

        user = await self.user_repo.get_by_id(owner_id, for_update=True)
        if user is None:
            raise NotFoundError(f"User {owner_id} not found", user_id=owner_id)

        balance = user.get_balance(code)
        if balance < value:
            raise InsufficientFundsError(
                f"Insufficient {code.value} balance",
                user_id=owner_id,
                balance=balance,
                amount=value,
            )

        new_balance = quantize_money(balance - value)
        setattr(user, code.balance_field, new_balance)

        now = utc_now()
        rate = self.calculator.rate_per_second(value)
        deposit = await self.deposit_repo.create(
            user_id=owner_id,
            amount=value,
            currency=code.value,
            rate_per_second=rate,
            is_active=True,
            created_at=now,
            last_updated_at=now,
        )

        self.transaction_repo.add_entry(
            user_id=owner_id,
            type=TransactionType.DEPOSIT.value,
            currency=code.value,
            amount=-value,
            status=TransactionStatus.CONFIRMED.value,
            source="farming",
            category="deposit",
            description=f"Farming deposit {value} {code.value}",
            data={"deposit_id": deposit.id},
        )
        await self.session.flush()

        self.logger.info(
            "Farming deposit created",
            extra={
                "user_id": owner_id,
                "deposit_id": deposit.id,
                "amount": str(value),
                "currency": code.value,
                "rate_per_second": str(rate),
            },
        )
        return DepositResult(
            deposit_id=deposit.id,
            rate_per_second=rate,
            new_balance=new_balance,
        )

    async def get_farming_info(self, owner_id: int) -> FarmingInfo:
        """
        Get farming state after a fresh accrual tick.

        Errors of the tick are logged, not raised.

        Args:
            owner_id: Participant ID

        Returns:
            FarmingInfo

        Raises:
            NotFoundError: Unknown participant
        """
        if not await self.user_repo.exists(id=owner_id):
            raise NotFoundError(f"User {owner_id} not found", user_id=owner_id)

        try:
            await self.accrual_engine.accrue(owner_id)
        except UnifarmError as e:
            self.logger.warning(
                "Accrual before farming info failed",
                extra={"user_id": owner_id, "error": e.message},
            )

        user = await self.user_repo.get_by_id(owner_id)
        deposits = await self.deposit_repo.get_active_by_user(owner_id)

        info = FarmingInfo(is_active=bool(deposits), deposit_count=len(deposits))
        for deposit in deposits:
            code = deposit.currency
            info.total_deposited[code] = (
                info.total_deposited.get(code, Decimal("0")) + deposit.amount
            )
            info.rate_per_second[code] = (
                info.rate_per_second.get(code, Decimal("0"))
                + deposit.rate_per_second
            )

        info.daily_income = {
            code: rate * SECONDS_IN_DAY
            for code, rate in info.rate_per_second.items()
        }
        info.deposits = [
            DepositView(
                id=deposit.id,
                amount=deposit.amount,
                currency=deposit.currency,
                rate_per_second=deposit.rate_per_second,
                daily_income=deposit.rate_per_second * SECONDS_IN_DAY,
                created_at=deposit.created_at,
            )
            for deposit in deposits[:FARMING_INFO_DEPOSITS_PREVIEW]
        ]
        for code in Currency:
            info.accumulated[code.value] = user.get_accumulator(code)
            info.balance[code.value] = user.get_balance(code)

        return info

    async def harvest(self, owner_id: int) -> HarvestResult:
        """
        Move accumulated yield into the main balance now.

        Bypasses the transfer threshold. One ledger entry and one queued
        reward batch per harvested currency, committed together; events are
        handed to the reward queue after commit. An empty accumulator gives
        an empty result.

        Args:
            owner_id: Participant ID

        Returns:
            HarvestResult

        Raises:
            NotFoundError: Unknown participant
        """
        result = await self._harvest_locked(owner_id)
        await deliver_reward_events(self.reward_sink, result.reward_events)
        return result

    @transaction
    async def _harvest_locked(self, owner_id: int) -> HarvestResult:
        user = await self.user_repo.get_by_id(owner_id, for_update=True)
        if user is None:
            raise NotFoundError(f"User {owner_id} not found", user_id=owner_id)

        result = HarvestResult()
        for code in Currency:
            accumulated = user.get_accumulator(code)
            if accumulated <= 0:
                continue

            new_balance = quantize_money(user.get_balance(code) + accumulated)
            setattr(user, code.balance_field, new_balance)
            setattr(user, code.accumulator_field, Decimal("0"))
            self.transaction_repo.add_entry(
                user_id=owner_id,
                type=TransactionType.FARMING_HARVEST.value,
                currency=code.value,
                amount=accumulated,
                status=TransactionStatus.CONFIRMED.value,
                source="farming",
                category="harvest",
                description=f"Farming harvest {accumulated} {code.value}",
            )
            result.harvested[code.value] = accumulated
            result.new_balance[code.value] = new_balance
            batch = await self.batch_repo.create_queued(
                owner_id, accumulated, code.value
            )
            result.reward_events.append(RewardEvent.from_batch(batch))

        if result.is_empty:
            self.logger.debug(
                "Nothing to harvest", extra={"user_id": owner_id}
            )
            return result

        self.logger.info(
            "Farming harvested",
            extra={
                "user_id": owner_id,
                "harvested": {k: str(v) for k, v in result.harvested.items()},
            },
        )
        return result

    async def deactivate_deposit(self, owner_id: int, deposit_id: int) -> bool:
        """
        Deactivate a deposit after a final accrual tick.

        Args:
            owner_id: Participant ID
            deposit_id: Deposit ID

        Returns:
            True when the deposit was deactivated

        Raises:
            NotFoundError: Unknown or foreign deposit
            ValidationError: Deposit already inactive
        """
        try:
            await self.accrual_engine.accrue(owner_id)
        except UnifarmError as e:
            self.logger.warning(
                "Final accrual before deactivation failed",
                extra={"user_id": owner_id, "deposit_id": deposit_id, "error": e.message},
            )

        return await self._deactivate(owner_id, deposit_id)

    @transaction
    async def _deactivate(self, owner_id: int, deposit_id: int) -> bool:
        deposit = await self.deposit_repo.get_by_id(deposit_id, for_update=True)
        if deposit is None or deposit.user_id != owner_id:
            raise NotFoundError(
                f"Deposit {deposit_id} not found",
                deposit_id=deposit_id,
                user_id=owner_id,
            )
        if not deposit.is_active:
            raise ValidationError(
                f"Deposit {deposit_id} is already inactive",
                deposit_id=deposit_id,
            )

        deposit.is_active = False
        deposit.deactivated_at = utc_now()

        self.logger.info(
            "Farming deposit deactivated",
            extra={"user_id": owner_id, "deposit_id": deposit_id},
        )
        return True

    def simulate_reward(self, amount: Decimal | int | str) -> dict[str, Decimal]:
        """
        Project income of a hypothetical deposit.

        Args:
            amount: Deposit amount

        Returns:
            Dict with amount, rate_per_second, daily, weekly, monthly

        Raises:
            ValidationError: Non-positive amount
        """
        try:
            value = to_decimal(amount)
        except ValueError as e:
            raise ValidationError(f"Invalid amount: {amount!r}") from e
        if value <= 0:
            raise ValidationError("Amount must be positive")
        return self.calculator.project(value)
