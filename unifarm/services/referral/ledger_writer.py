"""
Ledger writers for referral credits.

Apply merged credits to balances and the ledger inside the caller's
transaction. Neither writer commits.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.models.enums import Currency, TransactionStatus, TransactionType
from unifarm.repositories.transaction_repository import TransactionRepository
from unifarm.repositories.user_repository import UserRepository
from unifarm.services.referral.reward_calculator import ReferralCredit
from unifarm.utils.exceptions import DatabaseError


class LedgerWriter(ABC):
    """Writes referral credits: one balance delta and one entry per ancestor."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.user_repo = UserRepository(session)
        self.transaction_repo = TransactionRepository(session)

    @abstractmethod
    async def write(
        self,
        credits: list[ReferralCredit],
        source_user_id: int,
        currency: Currency,
        batch_id: str | None = None,
    ) -> None:
        """
        Credit ancestors.

        Args:
            credits: Merged credits
            source_user_id: Participant whose event produced the rewards
            currency: Reward currency
            batch_id: Batch the credits belong to

        Raises:
            DatabaseError: If a targeted balance row was not updated
        """

    @staticmethod
    def _entry_data(
        credit: ReferralCredit,
        source_user_id: int,
        currency: Currency,
        batch_id: str | None,
    ) -> dict[str, Any]:
        levels = ", ".join(str(level) for level in credit.levels)
        return {
            "user_id": credit.user_id,
            "type": TransactionType.REFERRAL_REWARD.value,
            "currency": currency.value,
            "amount": credit.amount,
            "status": TransactionStatus.CONFIRMED.value,
            "source": f"referral:{source_user_id}",
            "category": "referral",
            "description": (
                f"Referral reward level {levels} from user {source_user_id}"
            ),
            "source_user_id": source_user_id,
            "referral_level": credit.level,
            "batch_id": batch_id,
            "data": {
                "levels": credit.levels,
                "percentages": [str(p) for p in credit.percentages],
            },
        }


class RowLedgerWriter(LedgerWriter):
    """One conditional UPDATE and one INSERT per credited ancestor."""

    async def write(
        self,
        credits: list[ReferralCredit],
        source_user_id: int,
        currency: Currency,
        batch_id: str | None = None,
    ) -> None:
        for credit in sorted(credits, key=lambda c: c.user_id):
            updated = await self.user_repo.increment_balance(
                credit.user_id, currency, credit.amount
            )
            if updated != 1:
                logger.error(
                    "Referral credit target not updated",
                    extra={
                        "user_id": credit.user_id,
                        "source_user_id": source_user_id,
                        "batch_id": batch_id,
                    },
                )
                raise DatabaseError(
                    "Balance update affected no rows",
                    user_id=credit.user_id,
                    batch_id=batch_id,
                )
            self.transaction_repo.add_entry(
                **self._entry_data(credit, source_user_id, currency, batch_id)
            )

        await self.session.flush()


class BulkLedgerWriter(LedgerWriter):
    """One multi-row INSERT and one UPDATE ... CASE for all ancestors."""

    async def write(
        self,
        credits: list[ReferralCredit],
        source_user_id: int,
        currency: Currency,
        batch_id: str | None = None,
    ) -> None:
        if not credits:
            return

        amounts: dict[int, Decimal] = {
            credit.user_id: credit.amount for credit in credits
        }
        updated = await self.user_repo.increment_balances(amounts, currency)
        if updated != len(amounts):
            logger.error(
                "Bulk referral credit updated fewer rows than expected",
                extra={
                    "expected": len(amounts),
                    "updated": updated,
                    "source_user_id": source_user_id,
                    "batch_id": batch_id,
                },
            )
            raise DatabaseError(
                "Bulk balance update row count mismatch",
                expected=len(amounts),
                updated=updated,
                batch_id=batch_id,
            )

        await self.transaction_repo.bulk_insert(
            [
                self._entry_data(credit, source_user_id, currency, batch_id)
                for credit in sorted(credits, key=lambda c: c.user_id)
            ]
        )
