"""
Integration tests for the farming cycle task.

Tests cover:
- Group-wise accrual of every active participant
- Counting of no-ops, failures, transfers and batch outcomes
- Cycle lock shared by all workers
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from jobs.tasks import farming_accrual
from jobs.tasks.farming_accrual import FarmingCycleStats, FarmingScheduler
from unifarm.config.settings import settings
from unifarm.models.enums import BatchStatus
from unifarm.services.farming.accrual_engine import AccrualResult
from unifarm.services.rewards.batch_coordinator import BatchOutcome
from unifarm.utils.exceptions import DatabaseError


@pytest.fixture
def active_users(monkeypatch):
    ids = [1, 2, 3, 4, 5]
    monkeypatch.setattr(
        farming_accrual,
        "FarmingDepositRepository",
        lambda session: SimpleNamespace(
            get_active_user_ids=AsyncMock(return_value=ids)
        ),
    )
    return ids


def fake_system(session_maker, results):
    """System double whose engines return canned results per participant."""
    accrued = []

    async def accrue(user_id):
        accrued.append(user_id)
        result = results[user_id]
        if isinstance(result, Exception):
            raise result
        return result

    return SimpleNamespace(
        session_maker=session_maker,
        accrual_engine=lambda session: SimpleNamespace(accrue=accrue),
        flush=AsyncMock(
            return_value=[
                BatchOutcome(batch_id="a", status=BatchStatus.COMPLETED),
                BatchOutcome(batch_id="b", status=BatchStatus.FAILED),
            ]
        ),
        accrued=accrued,
    )


def transfer(user_id, amount):
    return AccrualResult(
        user_id=user_id,
        earned_this_tick={"UNI": Decimal(amount)},
        transferred={"UNI": Decimal(amount)},
        deposit_count=1,
    )


class TestFarmingScheduler:
    @pytest.mark.asyncio
    async def test_cycle_counts(self, session_maker, active_users):
        """One failure does not stop the rest of the cycle."""
        system = fake_system(
            session_maker,
            {
                1: transfer(1, "0.5"),
                2: AccrualResult.noop(2, "in_flight"),
                3: DatabaseError("timeout"),
                4: transfer(4, "0.25"),
                5: AccrualResult.noop(5, "no_active_deposits"),
            },
        )
        scheduler = FarmingScheduler(system, group_size=2, group_pause=0)

        stats = await scheduler.run_cycle()

        assert sorted(system.accrued) == active_users
        assert stats.participants == 5
        assert stats.processed == 2
        assert stats.skipped == 2
        assert stats.failed == 1
        assert stats.transfers == 2
        assert stats.earned == {"UNI": Decimal("0.75")}
        assert stats.batches_completed == 1
        assert stats.batches_failed == 1
        system.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pause_between_groups(
        self, session_maker, active_users, monkeypatch
    ):
        """Groups are separated by the configured pause, none after the last."""
        pauses = AsyncMock()
        monkeypatch.setattr(farming_accrual.asyncio, "sleep", pauses)
        system = fake_system(
            session_maker,
            {uid: AccrualResult.noop(uid, "no_active_deposits") for uid in active_users},
        )

        await FarmingScheduler(system, group_size=2, group_pause=0.5).run_cycle()

        assert [c.args[0] for c in pauses.await_args_list] == [0.5, 0.5]


def fake_redis(acquired):
    redis_lock = SimpleNamespace(
        acquire=AsyncMock(return_value=acquired),
        release=AsyncMock(),
    )
    client = MagicMock()
    client.lock = MagicMock(return_value=redis_lock)
    client.aclose = AsyncMock()
    return client, redis_lock


class TestCycleLock:
    """One farming cycle at a time across workers."""

    @pytest.mark.asyncio
    async def test_busy_lock_skips_cycle(self, monkeypatch):
        client, redis_lock = fake_redis(acquired=False)
        create_engine = MagicMock()
        monkeypatch.setattr(
            farming_accrual, "get_redis_client", AsyncMock(return_value=client)
        )
        monkeypatch.setattr(farming_accrual, "create_task_engine", create_engine)

        assert await farming_accrual._run_farming_cycle_async() is None

        create_engine.assert_not_called()
        redis_lock.release.assert_not_awaited()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cycle_runs_under_lock(self, monkeypatch):
        client, redis_lock = fake_redis(acquired=True)
        db_engine = MagicMock()
        db_engine.dispose = AsyncMock()
        stats = FarmingCycleStats(participants=3, processed=3)
        monkeypatch.setattr(
            farming_accrual, "get_redis_client", AsyncMock(return_value=client)
        )
        monkeypatch.setattr(
            farming_accrual, "create_task_engine", MagicMock(return_value=db_engine)
        )
        monkeypatch.setattr(farming_accrual, "create_task_session_maker", MagicMock())
        monkeypatch.setattr(
            farming_accrual,
            "build_referral_system",
            MagicMock(return_value=SimpleNamespace()),
        )
        monkeypatch.setattr(
            FarmingScheduler, "run_cycle", AsyncMock(return_value=stats)
        )

        assert await farming_accrual._run_farming_cycle_async() is stats

        assert client.lock.call_args.args == ("unifarm:lock:farming_cycle",)
        assert client.lock.call_args.kwargs["timeout"] == (
            settings.farming_cycle_lock_seconds
        )
        redis_lock.release.assert_awaited_once()
        db_engine.dispose.assert_awaited_once()
        client.aclose.assert_awaited_once()
