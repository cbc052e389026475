"""
Reward queue flush task.

Processes queued reward batches whose events are not buffered by a live
process (worker restarted before flushing).
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async
from jobs.utils.database import create_task_engine, create_task_session_maker
from unifarm.config.settings import settings
from unifarm.services.referral_system import build_referral_system


@dramatiq.actor(max_retries=3, time_limit=120_000)  # 2 min timeout
def flush_reward_queue() -> None:
    """Process queued reward batches left in the distribution log."""
    try:
        processed = run_async(_flush_reward_queue_async())
        if processed:
            logger.info(f"Reward queue flush: {processed} batches processed")
    except Exception as e:
        logger.exception(f"Reward queue flush failed: {e}")


async def _flush_reward_queue_async() -> int:
    """Async implementation of reward queue flush."""
    engine = create_task_engine()
    try:
        system = build_referral_system(create_task_session_maker(engine))
        outcomes = await system.coordinator.flush_queued(
            limit=settings.reward_batch_size
        )
        return len(outcomes)
    finally:
        await engine.dispose()
