"""
Referral edge model.

Derived cache of a participant's resolved ancestor path. Rebuilt from the
parent-code pointers at any time; never the source of truth.
"""

from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from unifarm.models.base import Base


class ReferralEdge(Base):
    """
    Cached ancestor path of one participant.

    Attributes:
        participant_id: Participant the path belongs to (unique)
        inviter_id: Direct inviter (first element of the path)
        level: Depth of the participant, equal to the path length
        ancestor_path: Ancestor ids ordered nearest-first, at most 20
    """

    __tablename__ = "referral_edges"
    __table_args__ = (
        CheckConstraint(
            'level >= 0 AND level <= 20', name='check_referral_edge_level_range'
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    participant_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )
    inviter_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ancestor_path: Mapped[list[int]] = mapped_column(
        JSONB, nullable=False, default=list
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralEdge(participant_id={self.participant_id}, "
            f"inviter_id={self.inviter_id}, level={self.level})>"
        )
