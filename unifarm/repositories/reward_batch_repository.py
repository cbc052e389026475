"""
Reward batch repository.

Data access layer for the reward distribution log.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.models.enums import BatchStatus
from unifarm.models.reward_batch import RewardBatch
from unifarm.repositories.base import BaseRepository


class RewardBatchRepository(BaseRepository[RewardBatch]):
    """Reward batch repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize reward batch repository."""
        super().__init__(RewardBatch, session)

    async def get_by_batch_id(
        self, batch_id: str, for_update: bool = False
    ) -> RewardBatch | None:
        """
        Get batch by its public identifier.

        Args:
            batch_id: Batch UUID
            for_update: Lock the row until commit

        Returns:
            Batch or None if not found
        """
        stmt = select(RewardBatch).where(RewardBatch.batch_id == batch_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_queued(
        self, source_user_id: int, amount: Decimal, currency: str
    ) -> RewardBatch:
        """
        Log a reward event as a queued batch in the current transaction.

        Args:
            source_user_id: Participant whose event produced the reward
            amount: Source amount
            currency: Currency code

        Returns:
            Created batch with a fresh UUID4 batch_id
        """
        return await self.create(
            batch_id=str(uuid4()),
            source_user_id=source_user_id,
            amount=amount,
            currency=currency,
            status=BatchStatus.QUEUED.value,
            attempts=0,
        )

    async def get_recoverable(
        self, limit: int, stuck_before: datetime
    ) -> list[RewardBatch]:
        """
        Get failed and stuck processing batches, oldest first.

        A processing batch counts as stuck once its last attempt started
        before ``stuck_before``; younger ones belong to a live flush.

        Args:
            limit: Max number of batches
            stuck_before: Cutoff on processed_at for processing rows

        Returns:
            List of batches to re-drive
        """
        stmt = (
            select(RewardBatch)
            .where(
                or_(
                    RewardBatch.status == BatchStatus.FAILED.value,
                    and_(
                        RewardBatch.status == BatchStatus.PROCESSING.value,
                        RewardBatch.processed_at < stuck_before,
                    ),
                )
            )
            .order_by(RewardBatch.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_queued(
        self, limit: int, created_before: datetime
    ) -> list[RewardBatch]:
        """
        Get queued batches older than a cutoff, oldest first.

        Args:
            limit: Max number of batches
            created_before: Only rows created before this moment

        Returns:
            List of queued batches
        """
        stmt = (
            select(RewardBatch)
            .where(
                RewardBatch.status == BatchStatus.QUEUED.value,
                RewardBatch.created_at < created_before,
            )
            .order_by(RewardBatch.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
