"""
Farming deposit repository.

Data access layer for FarmingDeposit model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.models.deposit import FarmingDeposit
from unifarm.repositories.base import BaseRepository


class FarmingDepositRepository(BaseRepository[FarmingDeposit]):
    """Farming deposit repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize deposit repository."""
        super().__init__(FarmingDeposit, session)

    async def get_active_by_user(self, user_id: int) -> list[FarmingDeposit]:
        """
        Get active deposits of a user, oldest first.

        Args:
            user_id: Owner ID

        Returns:
            List of active deposits
        """
        stmt = (
            select(FarmingDeposit)
            .where(
                FarmingDeposit.user_id == user_id,
                FarmingDeposit.is_active.is_(True),
            )
            .order_by(FarmingDeposit.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_user_ids(self) -> list[int]:
        """
        Get IDs of all users with at least one active deposit.

        Returns:
            Sorted list of user IDs
        """
        stmt = (
            select(FarmingDeposit.user_id)
            .where(FarmingDeposit.is_active.is_(True))
            .distinct()
            .order_by(FarmingDeposit.user_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
