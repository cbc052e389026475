"""
Periodic job scheduler.

APScheduler process that sends the farming, flush and recovery actors to
the dramatiq broker. Run with ``python -m jobs.scheduler``.
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from jobs.tasks import (
    flush_reward_queue,
    recover_reward_batches,
    run_farming_cycle,
)
from unifarm.config.settings import settings
from unifarm.utils.logging import setup_logging


# Global scheduler reference for shutdown
scheduler_instance: AsyncIOScheduler | None = None


def create_scheduler() -> AsyncIOScheduler:
    """
    Create scheduler with all periodic jobs registered.

    Returns:
        Configured (not started) AsyncIOScheduler
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        run_farming_cycle.send,
        trigger="interval",
        seconds=settings.farming_tick_seconds,
        id="farming_cycle",
        name="Farming accrual cycle",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        flush_reward_queue.send,
        trigger="interval",
        seconds=settings.reward_flush_interval_seconds,
        id="reward_flush",
        name="Reward queue flush",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        recover_reward_batches.send,
        trigger="interval",
        seconds=settings.reward_recovery_interval_seconds,
        id="reward_recovery",
        name="Reward batch recovery",
        max_instances=1,
        coalesce=True,
    )

    return scheduler


async def main() -> None:
    """Start scheduler and block until SIGINT/SIGTERM."""
    global scheduler_instance

    setup_logging("scheduler")

    scheduler_instance = create_scheduler()
    scheduler_instance.start()
    logger.info(
        "Scheduler started",
        extra={"jobs": [job.id for job in scheduler_instance.get_jobs()]},
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await stop_event.wait()

    scheduler_instance.shutdown(wait=True)
    logger.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
