"""
Farming deposit model.

Represents funds locked into farming that accrue yield every second.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unifarm.models.base import Base
from unifarm.models.enums import Currency
from unifarm.models.types import MoneyType, RateType


if TYPE_CHECKING:
    from unifarm.models.user import User


class FarmingDeposit(Base):
    """Farming deposit - never hard-deleted, deactivated logically."""

    __tablename__ = "farming_deposits"
    __table_args__ = (
        CheckConstraint(
            'amount > 0', name='check_farming_deposit_amount_positive'
        ),
        CheckConstraint(
            'rate_per_second >= 0',
            name='check_farming_deposit_rate_non_negative'
        ),
        Index('idx_farming_deposit_user_active', 'user_id', 'is_active'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Owner reference
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Deposit details
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(10), nullable=False, default=Currency.UNI.value
    )
    rate_per_second: Mapped[Decimal] = mapped_column(RateType, nullable=False)

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="deposits",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<FarmingDeposit(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, currency={self.currency}, "
            f"is_active={self.is_active})>"
        )

    @property
    def daily_income(self) -> Decimal:
        """Yield per day at the stored rate."""
        from unifarm.config.constants import SECONDS_IN_DAY

        return self.rate_per_second * SECONDS_IN_DAY
