"""
Reward recovery task.

Re-drives failed and stuck reward batches. Safe alongside live traffic:
completed batches are never applied twice. One sweep at a time across
workers, held by a Redis lock.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async
from jobs.utils.database import create_task_engine, create_task_session_maker
from unifarm.config.settings import settings
from unifarm.services.referral_system import build_referral_system
from unifarm.utils.distributed_lock import DistributedLock
from unifarm.utils.redis_utils import get_redis_client


@dramatiq.actor(max_retries=3, time_limit=300_000)  # 5 min timeout
def recover_reward_batches() -> None:
    """Run the reward batch recovery sweep."""
    logger.info("Starting reward batch recovery sweep...")

    try:
        recovered = run_async(_recover_reward_batches_async())
        logger.info(f"Reward batch recovery complete: {recovered} recovered")
    except Exception as e:
        logger.exception(f"Reward batch recovery failed: {e}")


async def _recover_reward_batches_async() -> int:
    """Async implementation of the recovery sweep."""
    redis_client = await get_redis_client()
    lock = DistributedLock(redis_client)

    try:
        async with lock.lock(
            "reward_recovery", timeout=settings.reward_recovery_lock_seconds
        ) as acquired:
            if not acquired:
                logger.info("Reward batch recovery already running, skipped")
                return 0

            engine = create_task_engine()
            try:
                system = build_referral_system(create_task_session_maker(engine))
                return await system.recover()
            finally:
                await engine.dispose()
    finally:
        await redis_client.aclose()
