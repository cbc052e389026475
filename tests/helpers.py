"""Test helpers shared by unit and integration tests."""

from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

from unifarm.models.enums import BatchStatus
from unifarm.models.reward_batch import RewardBatch
from unifarm.models.user import User


def make_session_maker(session):
    """Session factory whose context manager yields the given session."""

    @asynccontextmanager
    async def _session():
        yield session

    return MagicMock(side_effect=lambda: _session())


def make_user(
    user_id: int,
    ref_code: str | None = None,
    parent_ref_code: str | None = None,
    balance_uni: Decimal = Decimal("0"),
    balance_ton: Decimal = Decimal("0"),
    accumulator_uni: Decimal = Decimal("0"),
    accumulator_ton: Decimal = Decimal("0"),
) -> User:
    """Transient User instance with explicit balances."""
    return User(
        id=user_id,
        ref_code=ref_code or f"ref_u{user_id}",
        parent_ref_code=parent_ref_code,
        balance_uni=balance_uni,
        balance_ton=balance_ton,
        accumulator_uni=accumulator_uni,
        accumulator_ton=accumulator_ton,
    )


class FakeBatchRepository:
    """In-memory stand-in for RewardBatchRepository."""

    def __init__(self, batches: dict[str, RewardBatch]) -> None:
        self.batches = batches

    async def get_by_batch_id(self, batch_id, for_update=False):
        return self.batches.get(batch_id)

    async def create(self, **data):
        batch = RewardBatch(**data)
        self.batches[batch.batch_id] = batch
        return batch

    async def create_queued(self, source_user_id, amount, currency):
        return await self.create(
            batch_id=str(uuid4()),
            source_user_id=source_user_id,
            amount=amount,
            currency=currency,
            status=BatchStatus.QUEUED.value,
            attempts=0,
        )

    async def get_recoverable(self, limit, stuck_before):
        return [
            b
            for b in self.batches.values()
            if b.status == BatchStatus.FAILED.value
            or (
                b.status == BatchStatus.PROCESSING.value
                and b.processed_at is not None
                and b.processed_at < stuck_before
            )
        ][:limit]

    async def get_queued(self, limit, created_before):
        return [
            b for b in self.batches.values() if b.status == BatchStatus.QUEUED.value
        ][:limit]
