"""
Referral system wiring.

Selects the standard or optimized strategies once, from
``settings.referral_mode``. Call sites use the facade and never branch on
the mode.
"""

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unifarm.config.settings import ReferralMode, settings
from unifarm.services.farming.accrual_engine import (
    AccrualGuard,
    FarmingAccrualEngine,
    accrual_guard,
)
from unifarm.services.farming.farming_service import FarmingService
from unifarm.services.referral.chain_resolver import (
    ChainResolver,
    IterativeChainResolver,
    RecursiveChainResolver,
)
from unifarm.services.referral.distribution_engine import RewardDistributionEngine
from unifarm.services.referral.graph_service import LevelStats, ReferralGraphService
from unifarm.services.referral.ledger_writer import (
    BulkLedgerWriter,
    LedgerWriter,
    RowLedgerWriter,
)
from unifarm.services.rewards.batch_coordinator import (
    BatchCoordinator,
    BatchOutcome,
)


@dataclass
class ReferralSystem:
    """Strategy set for one mode plus the shared batch coordinator."""

    mode: ReferralMode
    session_maker: async_sessionmaker[AsyncSession]
    coordinator: BatchCoordinator
    guard: AccrualGuard

    @property
    def is_optimized(self) -> bool:
        return self.mode == ReferralMode.OPTIMIZED

    def resolver_for(self, session: AsyncSession) -> ChainResolver:
        """Chain resolver bound to a session."""
        if self.is_optimized:
            return RecursiveChainResolver(session)
        return IterativeChainResolver(session)

    def writer_for(self, session: AsyncSession) -> LedgerWriter:
        """Ledger writer bound to a session."""
        if self.is_optimized:
            return BulkLedgerWriter(session)
        return RowLedgerWriter(session)

    def engine_for(self, session: AsyncSession) -> RewardDistributionEngine:
        """Distribution engine bound to a session."""
        return RewardDistributionEngine(
            session,
            resolver=self.resolver_for(session),
            writer=self.writer_for(session),
        )

    def graph_service(self, session: AsyncSession) -> ReferralGraphService:
        """Graph service bound to a session."""
        return ReferralGraphService(
            session,
            resolver=self.resolver_for(session),
            use_cte=self.is_optimized,
        )

    def accrual_engine(self, session: AsyncSession) -> FarmingAccrualEngine:
        """Accrual engine that hands committed events to the coordinator."""
        return FarmingAccrualEngine(
            session,
            reward_sink=self.coordinator.buffer,
            guard=self.guard,
        )

    def farming_service(self, session: AsyncSession) -> FarmingService:
        """Farming service that hands committed events to the coordinator."""
        return FarmingService(
            session,
            reward_sink=self.coordinator.buffer,
            accrual_engine=self.accrual_engine(session),
        )

    async def queue_reward(
        self,
        source_id: int,
        amount: Decimal | int | str,
        currency: str,
    ) -> str:
        """
        Queue a reward event for distribution.

        Args:
            source_id: Participant whose event produced the reward
            amount: Source amount
            currency: Currency code

        Returns:
            Batch ID
        """
        return await self.coordinator.enqueue(source_id, amount, currency)

    async def get_referral_structure(self, owner_id: int) -> list[LevelStats]:
        """
        Per-level subtree size and received rewards.

        Args:
            owner_id: Participant at the root of the subtree

        Returns:
            LevelStats for levels 1..20
        """
        async with self.session_maker() as session:
            return await self.graph_service(session).get_referral_structure(
                owner_id
            )

    async def flush(self) -> list[BatchOutcome]:
        return await self.coordinator.flush()

    async def recover(self) -> int:
        return await self.coordinator.recover()

    async def start(self) -> None:
        await self.coordinator.start()

    async def stop(self) -> None:
        await self.coordinator.stop()


def build_referral_system(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    mode: ReferralMode | str | None = None,
    guard: AccrualGuard | None = None,
) -> ReferralSystem:
    """
    Build the referral system for a mode.

    Args:
        session_maker: Session factory (application default if omitted)
        mode: ``standard`` or ``optimized`` (``settings.referral_mode`` if omitted)
        guard: Accrual in-flight guard (process-wide default if omitted)

    Returns:
        ReferralSystem
    """
    if session_maker is None:
        from unifarm.config.database import async_session_maker

        session_maker = async_session_maker

    resolved_mode = ReferralMode(mode) if mode else settings.referral_mode
    system: ReferralSystem

    def engine_factory(session: AsyncSession) -> RewardDistributionEngine:
        return system.engine_for(session)

    coordinator = BatchCoordinator(
        session_maker,
        engine_factory,
        batched=resolved_mode == ReferralMode.OPTIMIZED,
    )
    system = ReferralSystem(
        mode=resolved_mode,
        session_maker=session_maker,
        coordinator=coordinator,
        guard=guard or accrual_guard,
    )

    logger.info(
        "Referral system initialized",
        extra={"mode": resolved_mode.value, "batched": coordinator.batched},
    )
    return system
