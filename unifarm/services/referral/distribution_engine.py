"""
Referral reward distribution engine.

Resolves the inviter chain of a source participant and credits every
ancestor its level share as one atomic unit.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.models.enums import Currency
from unifarm.repositories.user_repository import UserRepository
from unifarm.services.referral.chain_resolver import ChainResolver
from unifarm.services.referral.ledger_writer import LedgerWriter
from unifarm.services.referral.reward_calculator import (
    ReferralCredit,
    ReferralRewardCalculator,
)
from unifarm.utils.decimal_utils import to_decimal
from unifarm.utils.exceptions import (
    NotFoundError,
    UnifarmError,
    ValidationError,
    wrap_database_error,
)


@dataclass
class DistributionResult:
    """Outcome of one distribution call."""

    total_distributed: Decimal = Decimal("0")
    levels_processed: int = 0
    inviter_count: int = 0
    credits: list[ReferralCredit] = field(default_factory=list)


def validate_reward_input(
    amount: Decimal | int | float | str, currency: str
) -> tuple[Decimal, Currency]:
    """
    Validate amount and currency of a reward event.

    Args:
        amount: Source amount
        currency: Currency code

    Returns:
        Tuple of (amount, currency)

    Raises:
        ValidationError: If amount is not positive or currency unsupported
    """
    try:
        value = to_decimal(amount)
    except ValueError as e:
        raise ValidationError(f"Invalid amount: {amount!r}") from e
    if value <= 0:
        raise ValidationError(f"Amount must be positive, got {value}")

    try:
        code = Currency(str(currency).upper())
    except ValueError as e:
        raise ValidationError(f"Unsupported currency: {currency!r}") from e

    return value, code


class RewardDistributionEngine:
    """
    Distributes referral rewards over up to 20 inviter levels.

    Strategy objects are injected: a chain resolver (per-hop or CTE) and a
    ledger writer (row or bulk).
    """

    def __init__(
        self,
        session: AsyncSession,
        resolver: ChainResolver,
        writer: LedgerWriter,
        calculator: ReferralRewardCalculator | None = None,
    ) -> None:
        """
        Initialize distribution engine.

        Args:
            session: Async database session shared with resolver and writer
            resolver: Chain resolution strategy
            writer: Ledger write strategy
            calculator: Reward calculator (default percentage table)
        """
        self.session = session
        self.resolver = resolver
        self.writer = writer
        self.calculator = calculator or ReferralRewardCalculator()
        self.user_repo = UserRepository(session)

    async def distribute(
        self,
        source_user_id: int,
        amount: Decimal | int | str,
        currency: str,
        batch_id: str | None = None,
    ) -> DistributionResult:
        """
        Distribute rewards and commit.

        Args:
            source_user_id: Participant whose event produced the rewards
            amount: Source amount
            currency: Currency code
            batch_id: Optional batch identifier stored on ledger entries

        Returns:
            DistributionResult

        Raises:
            ValidationError: Invalid amount or currency
            NotFoundError: Unknown source participant
            DatabaseError: Storage failure, nothing was credited
        """
        try:
            result = await self.apply(source_user_id, amount, currency, batch_id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result

    async def apply(
        self,
        source_user_id: int,
        amount: Decimal | int | str,
        currency: str,
        batch_id: str | None = None,
    ) -> DistributionResult:
        """
        Distribute rewards inside the caller's transaction, without commit.

        Args:
            source_user_id: Participant whose event produced the rewards
            amount: Source amount
            currency: Currency code
            batch_id: Optional batch identifier stored on ledger entries

        Returns:
            DistributionResult
        """
        value, code = validate_reward_input(amount, currency)

        try:
            source = await self.user_repo.get_by_id(source_user_id)
            if source is None:
                raise NotFoundError(
                    f"Source user {source_user_id} not found",
                    source_user_id=source_user_id,
                )

            chain = await self.resolver.resolve_chain(source_user_id)
            if not chain:
                logger.debug(
                    "No inviters for source user",
                    extra={"source_user_id": source_user_id},
                )
                return DistributionResult()

            level_rewards = self.calculator.calculate_level_rewards(chain, value)
            credits = self.calculator.merge(level_rewards)

            if credits:
                await self.writer.write(
                    credits,
                    source_user_id=source_user_id,
                    currency=code,
                    batch_id=batch_id,
                )
        except UnifarmError:
            raise
        except SQLAlchemyError as e:
            raise wrap_database_error(
                e,
                "distribute_referral_rewards",
                source_user_id=source_user_id,
                amount=value,
                currency=code.value,
                batch_id=batch_id,
            ) from e

        result = DistributionResult(
            total_distributed=sum(
                (credit.amount for credit in credits), Decimal("0")
            ),
            levels_processed=len(level_rewards),
            inviter_count=len(credits),
            credits=credits,
        )

        logger.info(
            "Referral rewards distributed",
            extra={
                "source_user_id": source_user_id,
                "amount": str(value),
                "currency": code.value,
                "batch_id": batch_id,
                "chain_length": len(chain),
                "levels_processed": result.levels_processed,
                "inviter_count": result.inviter_count,
                "total_distributed": str(result.total_distributed),
            },
        )
        return result
