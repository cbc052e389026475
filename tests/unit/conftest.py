"""
Shared fixtures for unit tests.

This module provides common fixtures used across multiple test modules:
- In-memory invitation graph for chain resolution
- Reward and accrual calculators with fixed parameters
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.helpers import make_user
from unifarm.services.farming.accrual_calculator import AccrualCalculator
from unifarm.services.referral.reward_calculator import ReferralRewardCalculator


@pytest.fixture
def reward_calculator():
    """
    ReferralRewardCalculator with the default table and 0.0001 floor.

    Returns:
        ReferralRewardCalculator: Calculator instance for testing
    """
    return ReferralRewardCalculator(min_reward=Decimal("0.0001"))


@pytest.fixture
def accrual_calculator():
    """
    AccrualCalculator at 0.5% per day with a 10 second tick.

    Returns:
        AccrualCalculator: Calculator instance for testing
    """
    return AccrualCalculator(
        daily_rate=Decimal("0.005"), max_seconds=Decimal("10")
    )


def make_graph_repo(edges: dict[int, int | None], broken: set[int] | None = None):
    """
    Mock UserRepository backed by an id -> inviter id mapping.

    Args:
        edges: Inviter id per user id (None for roots)
        broken: Users whose parent code points to no owner

    Returns:
        MagicMock with get_by_id and get_by_ref_code
    """
    broken = broken or set()
    users = {}
    for user_id, inviter_id in edges.items():
        parent = None
        if user_id in broken:
            parent = "ref_missing"
        elif inviter_id is not None:
            parent = f"ref_u{inviter_id}"
        users[user_id] = make_user(user_id, parent_ref_code=parent)

    by_code = {user.ref_code: user for user in users.values()}

    repo = MagicMock()
    repo.get_by_id = AsyncMock(side_effect=lambda user_id, **_: users.get(user_id))
    repo.get_by_ref_code = AsyncMock(side_effect=lambda code: by_code.get(code))
    return repo


@pytest.fixture
def graph_repo_factory():
    """Factory for in-memory graph repositories."""
    return make_graph_repo
