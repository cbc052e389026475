"""
Referral edge repository.

Access to the derived ancestor-path cache.
"""

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.models.referral_edge import ReferralEdge
from unifarm.repositories.base import BaseRepository
from unifarm.utils.datetime_utils import utc_now


class ReferralEdgeRepository(BaseRepository[ReferralEdge]):
    """Referral edge repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral edge repository."""
        super().__init__(ReferralEdge, session)

    async def get_by_participant(
        self, participant_id: int
    ) -> ReferralEdge | None:
        """Get cached path of a participant."""
        stmt = select(ReferralEdge).where(
            ReferralEdge.participant_id == participant_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, participant_id: int, ancestor_path: list[int]) -> None:
        """
        Insert or replace the cached path of a participant.

        Args:
            participant_id: Participant ID
            ancestor_path: Ancestor IDs, nearest first
        """
        values = {
            "participant_id": participant_id,
            "inviter_id": ancestor_path[0] if ancestor_path else None,
            "level": len(ancestor_path),
            "ancestor_path": list(ancestor_path),
            "updated_at": utc_now(),
        }
        stmt = insert(ReferralEdge).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ReferralEdge.participant_id],
            set_={
                "inviter_id": stmt.excluded.inviter_id,
                "level": stmt.excluded.level,
                "ancestor_path": stmt.excluded.ancestor_path,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)

    async def invalidate(self, participant_id: int) -> int:
        """
        Drop cached paths of a participant and of everyone below it.

        Args:
            participant_id: Participant whose position in the graph changed

        Returns:
            Number of deleted cache rows
        """
        stmt = delete(ReferralEdge).where(
            or_(
                ReferralEdge.participant_id == participant_id,
                ReferralEdge.ancestor_path.contains([participant_id]),
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount
