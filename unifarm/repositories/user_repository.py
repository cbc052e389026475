"""
User repository.

Data access layer for User model: invitation-code lookups and atomic
balance increments.
"""

from decimal import Decimal

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.models.enums import Currency
from unifarm.models.user import User
from unifarm.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_ref_code(self, ref_code: str) -> User | None:
        """
        Get user by its public invitation code.

        Args:
            ref_code: Invitation code

        Returns:
            User or None if no owner exists
        """
        return await self.get_by(ref_code=ref_code)

    async def ref_code_exists(self, ref_code: str) -> bool:
        """Check if an invitation code is already taken."""
        return await self.exists(ref_code=ref_code)

    async def bind_parent_code(self, user_id: int, parent_ref_code: str) -> int:
        """
        Bind the inviter code if none is bound yet.

        Conditional update, so two racing binds cannot both succeed.

        Args:
            user_id: User ID
            parent_ref_code: Inviter's invitation code

        Returns:
            Number of updated rows (0 when already bound)
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.parent_ref_code.is_(None))
            .values(parent_ref_code=parent_ref_code)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def increment_balance(
        self, user_id: int, currency: Currency, amount: Decimal
    ) -> int:
        """
        Atomically add amount to the main balance.

        Args:
            user_id: User ID
            currency: Balance currency
            amount: Amount to add

        Returns:
            Number of updated rows
        """
        column = getattr(User, currency.balance_field)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values({column: column + amount})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def increment_balances(
        self, amounts: dict[int, Decimal], currency: Currency
    ) -> int:
        """
        Atomically add per-user amounts in one UPDATE ... CASE statement.

        Args:
            amounts: Amount per user ID
            currency: Balance currency

        Returns:
            Number of updated rows
        """
        if not amounts:
            return 0

        user_ids = sorted(amounts)
        column = getattr(User, currency.balance_field)
        delta = case(
            {user_id: amounts[user_id] for user_id in user_ids},
            value=User.id,
            else_=Decimal("0"),
        )
        stmt = (
            update(User)
            .where(User.id.in_(user_ids))
            .values({column: column + delta})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def get_invitees(
        self, ref_codes: list[str]
    ) -> list[tuple[int, str]]:
        """
        Get users invited with any of the given codes.

        Args:
            ref_codes: Inviter codes

        Returns:
            List of (user id, own ref code) pairs
        """
        if not ref_codes:
            return []

        stmt = select(User.id, User.ref_code).where(
            User.parent_ref_code.in_(ref_codes)
        )
        result = await self.session.execute(stmt)
        return [(row.id, row.ref_code) for row in result.all()]
