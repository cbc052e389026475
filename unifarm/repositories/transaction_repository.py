"""
Transaction repository.

Append-only access to the ledger.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.models.enums import TransactionType
from unifarm.models.transaction import Transaction
from unifarm.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Ledger repository. Entries are never updated or deleted."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize transaction repository."""
        super().__init__(Transaction, session)

    def add_entry(self, **data: Any) -> Transaction:
        """
        Stage a ledger entry in the current unit of work.

        Args:
            **data: Entry data

        Returns:
            Pending entry, flushed with the enclosing transaction
        """
        entry = Transaction(**data)
        self.session.add(entry)
        return entry

    async def bulk_insert(self, items: list[dict[str, Any]]) -> None:
        """
        Insert many ledger entries with one multi-row INSERT.

        Args:
            items: Entry data dicts keyed by attribute name
        """
        if not items:
            return
        await self.session.execute(insert(Transaction), items)

    async def sum_referral_rewards_by_level(
        self, user_id: int
    ) -> dict[int, dict[str, Decimal]]:
        """
        Sum referral rewards received by a user per level and currency.

        Args:
            user_id: Receiving user ID

        Returns:
            Mapping level -> currency -> total
        """
        stmt = (
            select(
                Transaction.referral_level,
                Transaction.currency,
                func.coalesce(func.sum(Transaction.amount), 0).label("total"),
            )
            .where(
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.REFERRAL_REWARD.value,
                Transaction.referral_level.is_not(None),
            )
            .group_by(Transaction.referral_level, Transaction.currency)
        )
        result = await self.session.execute(stmt)

        totals: dict[int, dict[str, Decimal]] = {}
        for row in result.all():
            totals.setdefault(row.referral_level, {})[row.currency] = Decimal(
                str(row.total)
            )
        return totals
