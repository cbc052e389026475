"""
Farming accrual task.

Runs one accrual tick for every participant with active deposits, in
small concurrent groups, then flushes the reward events they produced. A
Redis lock keeps cycles from overlapping across workers.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal

import dramatiq
from loguru import logger

from jobs.async_runner import run_async
from jobs.utils.database import create_task_engine, create_task_session_maker
from unifarm.config.settings import settings
from unifarm.models.enums import BatchStatus
from unifarm.repositories.deposit_repository import FarmingDepositRepository
from unifarm.services.farming.accrual_engine import AccrualResult
from unifarm.services.referral_system import ReferralSystem, build_referral_system
from unifarm.utils.distributed_lock import DistributedLock
from unifarm.utils.redis_utils import get_redis_client


@dataclass
class FarmingCycleStats:
    """Counters of one farming cycle."""

    participants: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    transfers: int = 0
    earned: dict[str, Decimal] = field(default_factory=dict)
    batches_completed: int = 0
    batches_failed: int = 0


class FarmingScheduler:
    """Drives accrual across all participants with active deposits."""

    def __init__(
        self,
        system: ReferralSystem,
        group_size: int | None = None,
        group_pause: float | None = None,
    ) -> None:
        """
        Initialize farming scheduler.

        Args:
            system: Referral system providing sessions, engines and the queue
            group_size: Participants accrued concurrently
            group_pause: Seconds between groups
        """
        self.system = system
        self.group_size = group_size or settings.farming_group_size
        self.group_pause = (
            settings.farming_group_pause_seconds
            if group_pause is None
            else group_pause
        )

    async def run_cycle(self) -> FarmingCycleStats:
        """
        Accrue every active participant once and flush reward events.

        Returns:
            FarmingCycleStats
        """
        async with self.system.session_maker() as session:
            user_ids = await FarmingDepositRepository(session).get_active_user_ids()

        stats = FarmingCycleStats(participants=len(user_ids))

        for start in range(0, len(user_ids), self.group_size):
            group = user_ids[start:start + self.group_size]
            results = await asyncio.gather(
                *(self._accrue_one(user_id) for user_id in group),
                return_exceptions=True,
            )
            for user_id, result in zip(group, results):
                self._record(stats, user_id, result)

            if start + self.group_size < len(user_ids) and self.group_pause > 0:
                await asyncio.sleep(self.group_pause)

        for outcome in await self.system.flush():
            if outcome.status == BatchStatus.COMPLETED:
                stats.batches_completed += 1
            else:
                stats.batches_failed += 1

        logger.info(
            "Farming cycle completed",
            extra={
                "participants": stats.participants,
                "processed": stats.processed,
                "skipped": stats.skipped,
                "failed": stats.failed,
                "transfers": stats.transfers,
                "earned": {k: str(v) for k, v in stats.earned.items()},
                "batches_completed": stats.batches_completed,
                "batches_failed": stats.batches_failed,
            },
        )
        return stats

    async def _accrue_one(self, user_id: int) -> AccrualResult:
        async with self.system.session_maker() as session:
            return await self.system.accrual_engine(session).accrue(user_id)

    @staticmethod
    def _record(
        stats: FarmingCycleStats,
        user_id: int,
        result: AccrualResult | BaseException,
    ) -> None:
        if isinstance(result, BaseException):
            stats.failed += 1
            logger.error(
                f"Farming accrual failed for user {user_id}: {result}",
                extra={"user_id": user_id, "error": str(result)},
            )
            return

        if result.is_noop:
            stats.skipped += 1
            return

        stats.processed += 1
        stats.transfers += len(result.transferred)
        for currency, amount in result.earned_this_tick.items():
            stats.earned[currency] = stats.earned.get(currency, Decimal("0")) + amount


@dramatiq.actor(max_retries=0, time_limit=300_000)  # 5 min timeout
def run_farming_cycle() -> None:
    """
    Run one farming cycle.

    Not retried: the next scheduler tick accrues the same participants.
    """
    logger.info("Starting farming cycle...")

    try:
        run_async(_run_farming_cycle_async())
    except Exception as e:
        logger.exception(f"Farming cycle failed: {e}")


async def _run_farming_cycle_async() -> FarmingCycleStats | None:
    """
    Async implementation of the farming cycle.

    Returns:
        Cycle stats, or None when another worker holds the cycle lock
    """
    redis_client = await get_redis_client()
    lock = DistributedLock(redis_client)

    try:
        async with lock.lock(
            "farming_cycle", timeout=settings.farming_cycle_lock_seconds
        ) as acquired:
            if not acquired:
                logger.info("Farming cycle already running, skipped")
                return None

            engine = create_task_engine()
            try:
                system = build_referral_system(create_task_session_maker(engine))
                return await FarmingScheduler(system).run_cycle()
            finally:
                await engine.dispose()
    finally:
        await redis_client.aclose()
