"""Reward batch coordination."""

from unifarm.services.rewards.batch_coordinator import (
    BatchCoordinator,
    BatchOutcome,
    RewardEvent,
)


__all__ = ["BatchCoordinator", "BatchOutcome", "RewardEvent"]
