"""
User model.

Represents a farming participant and node of the invitation graph.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unifarm.models.base import Base
from unifarm.models.enums import Currency
from unifarm.models.types import MoneyType


if TYPE_CHECKING:
    from unifarm.models.deposit import FarmingDeposit


class User(Base):
    """
    User model - farming participant.

    The invitation graph is stored as pointers: every user owns a unique
    public ``ref_code`` and may reference its inviter through
    ``parent_ref_code``. The parent code is bound at most once.

    Attributes:
        id: Primary key
        telegram_id: External identity (validated by the API layer)
        username: Display name
        ref_code: Unique public invitation code
        parent_ref_code: Inviter's code, immutable once set
        balance_uni / balance_ton: Main balances, never negative
        accumulator_uni / accumulator_ton: Sub-threshold farming yield
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'balance_uni >= 0', name='check_user_balance_uni_non_negative'
        ),
        CheckConstraint(
            'balance_ton >= 0', name='check_user_balance_ton_non_negative'
        ),
        CheckConstraint(
            'accumulator_uni >= 0',
            name='check_user_accumulator_uni_non_negative'
        ),
        CheckConstraint(
            'accumulator_ton >= 0',
            name='check_user_accumulator_ton_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Identity
    telegram_id: Mapped[int | None] = mapped_column(
        BigInteger, unique=True, index=True, nullable=True
    )
    username: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )

    # Invitation graph
    ref_code: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, index=True
    )
    parent_ref_code: Mapped[str | None] = mapped_column(
        String(32), nullable=True, index=True
    )

    # Main balances
    balance_uni: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    balance_ton: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Farming accumulators
    accumulator_uni: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    accumulator_ton: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    # Relationships
    deposits: Mapped[list["FarmingDeposit"]] = relationship(
        "FarmingDeposit",
        back_populates="user",
        lazy="noload",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, ref_code={self.ref_code}, "
            f"parent_ref_code={self.parent_ref_code})>"
        )

    def get_balance(self, currency: Currency) -> Decimal:
        """Main balance for a currency."""
        return getattr(self, currency.balance_field) or Decimal("0")

    def get_accumulator(self, currency: Currency) -> Decimal:
        """Accumulated, not yet transferred farming yield for a currency."""
        return getattr(self, currency.accumulator_field) or Decimal("0")

    @property
    def has_inviter(self) -> bool:
        """Check if the parent code is bound."""
        return bool(self.parent_ref_code)
