"""
Transaction model.

Append-only ledger: every balance mutation is evidenced by one row.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from unifarm.models.base import Base
from unifarm.models.enums import TransactionStatus
from unifarm.models.types import MoneyType


class Transaction(Base):
    """
    Ledger entry.

    Attributes:
        id: Primary key
        user_id: Participant whose balance changed
        type: TransactionType value
        currency: Currency value
        amount: Signed change applied to the main balance
        status: TransactionStatus value
        source / category / description: Human-readable origin
        source_user_id: Participant whose event produced a referral reward
        referral_level: Nearest level the reward was credited for
        batch_id: Reward batch that produced the entry
        data: Extra metadata (levels, percentages, deposit id)
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index('idx_transactions_user_type', 'user_id', 'type'),
        Index('idx_transactions_batch', 'batch_id'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.CONFIRMED.value
    )

    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    source_user_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )
    referral_level: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    batch_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    data: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONB, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Transaction(id={self.id}, user_id={self.user_id}, "
            f"type={self.type}, amount={self.amount} {self.currency})>"
        )
