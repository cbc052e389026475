"""
Dramatiq actors.

Importing this package configures the broker first, so workers can be
started with ``dramatiq jobs.tasks``.
"""

import jobs.broker  # noqa: F401
from jobs.tasks.farming_accrual import run_farming_cycle
from jobs.tasks.reward_flush import flush_reward_queue
from jobs.tasks.reward_recovery import recover_reward_batches


__all__ = [
    "flush_reward_queue",
    "recover_reward_batches",
    "run_farming_cycle",
]
