"""
Farming accrual engine.

Computes time-based yield for a participant's active deposits and moves it
through the accumulator into the main balance. Every transfer logs a queued
reward batch in the same transaction; the event is handed to the reward
queue once the transaction is committed.
"""

import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.config.constants import MIN_CHANGE_THRESHOLD
from unifarm.models.enums import Currency, TransactionStatus, TransactionType
from unifarm.repositories.deposit_repository import FarmingDepositRepository
from unifarm.repositories.reward_batch_repository import RewardBatchRepository
from unifarm.repositories.transaction_repository import TransactionRepository
from unifarm.repositories.user_repository import UserRepository
from unifarm.services.farming.accrual_calculator import AccrualCalculator
from unifarm.services.rewards.batch_coordinator import RewardEvent
from unifarm.utils.datetime_utils import utc_now
from unifarm.utils.decimal_utils import quantize_money
from unifarm.utils.exceptions import (
    NotFoundError,
    UnifarmError,
    wrap_database_error,
)


# Receives events whose queued batch row is already committed
RewardSink = Callable[[RewardEvent], Awaitable[object]]


class AccrualGuard:
    """
    In-process set of participants with an accrual in flight.

    Shared by every engine instance of a process. Actor threads each run
    their own event loop, so the set is guarded by a thread lock.
    """

    def __init__(self) -> None:
        self._in_flight: set[int] = set()
        self._lock = threading.Lock()

    def try_acquire(self, user_id: int) -> bool:
        """Mark participant as in flight; False if already marked."""
        with self._lock:
            if user_id in self._in_flight:
                return False
            self._in_flight.add(user_id)
            return True

    def release(self, user_id: int) -> None:
        with self._lock:
            self._in_flight.discard(user_id)

    def is_in_flight(self, user_id: int) -> bool:
        return user_id in self._in_flight


# Process-wide default guard
accrual_guard = AccrualGuard()


@dataclass
class AccrualResult:
    """Outcome of one accrual tick, amounts keyed by currency code."""

    user_id: int
    earned_this_tick: dict[str, Decimal] = field(default_factory=dict)
    new_main_balance: dict[str, Decimal] = field(default_factory=dict)
    transferred: dict[str, Decimal] = field(default_factory=dict)
    reward_events: list[RewardEvent] = field(default_factory=list)
    deposit_count: int = 0
    is_noop: bool = False
    reason: str | None = None

    @classmethod
    def noop(cls, user_id: int, reason: str) -> "AccrualResult":
        return cls(user_id=user_id, is_noop=True, reason=reason)

    @property
    def total_earned(self) -> Decimal:
        return sum(self.earned_this_tick.values(), Decimal("0"))


class FarmingAccrualEngine:
    """
    Accrual engine for one participant at a time.

    Exclusivity: the in-process guard rejects overlapping calls for the
    same participant, and the participant row is locked with
    SELECT ... FOR UPDATE for the duration of the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        reward_sink: RewardSink | None = None,
        guard: AccrualGuard | None = None,
        calculator: AccrualCalculator | None = None,
    ) -> None:
        """
        Initialize accrual engine.

        Args:
            session: Async database session
            reward_sink: Receives the committed event of every transfer into
                the main balance
            guard: In-flight guard (process-wide default)
            calculator: Yield calculator (settings defaults)
        """
        self.session = session
        self.reward_sink = reward_sink
        self.guard = guard or accrual_guard
        self.calculator = calculator or AccrualCalculator()
        self.user_repo = UserRepository(session)
        self.deposit_repo = FarmingDepositRepository(session)
        self.transaction_repo = TransactionRepository(session)
        self.batch_repo = RewardBatchRepository(session)

    async def accrue(self, user_id: int) -> AccrualResult:
        """
        Run one accrual tick.

        Args:
            user_id: Participant ID

        Returns:
            AccrualResult, or a no-op result when another tick is in flight
            or no active deposit exists

        Raises:
            NotFoundError: Unknown participant
            DatabaseError: Storage failure, nothing was committed and no
                event was emitted
        """
        if not self.guard.try_acquire(user_id):
            logger.debug(
                "Accrual already in flight, skipped",
                extra={"user_id": user_id},
            )
            return AccrualResult.noop(user_id, "in_flight")

        try:
            result = await self._accrue_locked(user_id)
        finally:
            self.guard.release(user_id)

        await deliver_reward_events(self.reward_sink, result.reward_events)

        return result

    async def _accrue_locked(self, user_id: int) -> AccrualResult:
        try:
            user = await self.user_repo.get_by_id(user_id, for_update=True)
            if user is None:
                raise NotFoundError(f"User {user_id} not found", user_id=user_id)

            deposits = await self.deposit_repo.get_active_by_user(user_id)
            if not deposits:
                await self.session.rollback()
                return AccrualResult.noop(user_id, "no_active_deposits")

            now = utc_now()
            earned: dict[Currency, Decimal] = {}
            for deposit in deposits:
                elapsed = self.calculator.elapsed_seconds(
                    deposit.last_updated_at, now
                )
                currency = Currency(deposit.currency)
                earned[currency] = earned.get(currency, Decimal("0")) + (
                    self.calculator.earned(deposit.rate_per_second, elapsed)
                )
                deposit.last_updated_at = now

            result = AccrualResult(user_id=user_id, deposit_count=len(deposits))

            for currency, amount in earned.items():
                accumulated = user.get_accumulator(currency) + amount
                result.earned_this_tick[currency.value] = amount

                if accumulated >= MIN_CHANGE_THRESHOLD:
                    new_balance = quantize_money(
                        user.get_balance(currency) + accumulated
                    )
                    setattr(user, currency.balance_field, new_balance)
                    setattr(user, currency.accumulator_field, Decimal("0"))
                    self.transaction_repo.add_entry(
                        user_id=user_id,
                        type=TransactionType.FARMING_REWARD.value,
                        currency=currency.value,
                        amount=accumulated,
                        status=TransactionStatus.CONFIRMED.value,
                        source="farming",
                        category="farming",
                        description=f"Farming reward {accumulated} {currency.value}",
                        data={
                            "deposit_count": len(deposits),
                            "earned_this_tick": str(amount),
                        },
                    )
                    result.transferred[currency.value] = accumulated
                    batch = await self.batch_repo.create_queued(
                        user_id, accumulated, currency.value
                    )
                    result.reward_events.append(RewardEvent.from_batch(batch))
                else:
                    setattr(
                        user,
                        currency.accumulator_field,
                        quantize_money(accumulated),
                    )

                result.new_main_balance[currency.value] = user.get_balance(
                    currency
                )

            await self.session.commit()

        except UnifarmError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise wrap_database_error(e, "farming_accrual", user_id=user_id) from e

        logger.debug(
            "Farming accrual committed",
            extra={
                "user_id": user_id,
                "deposit_count": result.deposit_count,
                "earned": {k: str(v) for k, v in result.earned_this_tick.items()},
                "transferred": {k: str(v) for k, v in result.transferred.items()},
            },
        )
        return result


async def deliver_reward_events(
    sink: RewardSink | None, events: list[RewardEvent]
) -> None:
    """
    Hand committed reward events to the queue.

    The queued batch rows are already durable, so a failed hand-off only
    delays distribution until the queued-batch sweep picks the rows up.

    Args:
        sink: Event receiver, or None to leave rows for the sweep
        events: Events committed together with their transfers
    """
    if sink is None:
        return
    for event in events:
        try:
            await sink(event)
        except UnifarmError as e:
            logger.warning(
                "Reward event left queued for the sweep",
                extra={
                    "batch_id": event.batch_id,
                    "source_user_id": event.source_user_id,
                    "amount": str(event.amount),
                    "currency": event.currency,
                    "error": e.message,
                },
            )
