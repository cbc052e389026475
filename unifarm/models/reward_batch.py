"""
Reward batch model.

Durable log of referral reward distribution units
(``reward_distribution_logs`` table).
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from unifarm.models.base import Base
from unifarm.models.enums import BatchStatus
from unifarm.models.types import MoneyType


class RewardBatch(Base):
    """
    Reward distribution batch.

    State machine: queued -> processing -> completed | failed.
    A batch reaches ``completed`` at most once; failed and stuck
    processing rows are re-driven by the recovery sweep.
    """

    __tablename__ = "reward_distribution_logs"
    __table_args__ = (
        CheckConstraint('amount > 0', name='check_reward_batch_amount_positive'),
        CheckConstraint('attempts >= 0', name='check_reward_batch_attempts'),
        Index('idx_reward_batch_status_created', 'status', 'created_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    batch_id: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, index=True
    )
    source_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BatchStatus.QUEUED.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Outcome
    levels_processed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    inviter_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_distributed: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<RewardBatch(batch_id={self.batch_id}, status={self.status}, "
            f"amount={self.amount} {self.currency})>"
        )

    @property
    def is_completed(self) -> bool:
        """Check if the batch already reached its terminal success state."""
        return self.status == BatchStatus.COMPLETED.value
