"""
Referral reward calculator.

Pure computation of level rewards for a resolved chain. No database access.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger

from unifarm.config.settings import settings
from unifarm.services.referral.config import (
    MAX_REFERRAL_DEPTH,
    REFERRAL_PERCENTAGES,
)
from unifarm.utils.decimal_utils import quantize_money


@dataclass(frozen=True)
class LevelReward:
    """Reward of one chain position."""

    level: int
    inviter_id: int
    percentage: Decimal
    amount: Decimal


@dataclass
class ReferralCredit:
    """
    Merged credit for one ancestor.

    An ancestor reachable at several positions (cyclic graph) gets a
    single credit carrying every merged level.
    """

    user_id: int
    amount: Decimal
    levels: list[int] = field(default_factory=list)
    percentages: list[Decimal] = field(default_factory=list)

    @property
    def level(self) -> int:
        """Nearest level the credit was earned at."""
        return min(self.levels)


class ReferralRewardCalculator:
    """
    Calculates referral rewards for an inviter chain.

    Formula: reward(level) = amount * percentage(level), rewards below the
    floor are dropped, duplicates of one ancestor are summed.
    """

    def __init__(
        self,
        percentages: tuple[Decimal, ...] = REFERRAL_PERCENTAGES,
        min_reward: Decimal | None = None,
        max_depth: int = MAX_REFERRAL_DEPTH,
    ) -> None:
        """
        Initialize calculator.

        Args:
            percentages: Share per level, index 0 is level 1
            min_reward: Floor below which rewards are dropped
                (defaults to ``settings.referral_min_reward``)
            max_depth: Levels past this depth are ignored
        """
        self.percentages = percentages
        self.min_reward = (
            settings.referral_min_reward if min_reward is None else min_reward
        )
        self.max_depth = max_depth

    def percentage_for_level(self, level: int) -> Decimal:
        """
        Get percentage for a 1-based level.

        Args:
            level: Chain level (1 = direct inviter)

        Returns:
            Share as a fraction, 0 outside the table
        """
        if level < 1 or level > self.max_depth or level > len(self.percentages):
            return Decimal("0")
        return self.percentages[level - 1]

    def calculate_level_rewards(
        self, chain: list[int], amount: Decimal
    ) -> list[LevelReward]:
        """
        Calculate rewards per chain position.

        Args:
            chain: Ancestor IDs, nearest first
            amount: Source amount

        Returns:
            Rewards at or above the floor, in level order

        Example:
            >>> calc = ReferralRewardCalculator()
            >>> rewards = calc.calculate_level_rewards([7, 8, 9], Decimal("1000"))
            >>> [int(r.amount) for r in rewards]
            [50, 30, 20]
        """
        rewards: list[LevelReward] = []
        if amount <= 0:
            return rewards

        for index, inviter_id in enumerate(chain[: self.max_depth]):
            level = index + 1
            percentage = self.percentage_for_level(level)
            if percentage <= 0:
                continue

            reward_amount = quantize_money(amount * percentage)
            if reward_amount < self.min_reward or reward_amount <= 0:
                logger.debug(
                    "Referral reward below floor, skipped",
                    extra={
                        "level": level,
                        "inviter_id": inviter_id,
                        "reward": str(reward_amount),
                    },
                )
                continue

            rewards.append(
                LevelReward(
                    level=level,
                    inviter_id=inviter_id,
                    percentage=percentage,
                    amount=reward_amount,
                )
            )

        return rewards

    @staticmethod
    def merge(rewards: list[LevelReward]) -> list[ReferralCredit]:
        """
        Merge rewards of the same ancestor into one credit.

        Args:
            rewards: Rewards per chain position

        Returns:
            Credits ordered by nearest level
        """
        credits: dict[int, ReferralCredit] = {}
        for reward in rewards:
            credit = credits.get(reward.inviter_id)
            if credit is None:
                credit = ReferralCredit(
                    user_id=reward.inviter_id, amount=Decimal("0")
                )
                credits[reward.inviter_id] = credit
            credit.amount += reward.amount
            credit.levels.append(reward.level)
            credit.percentages.append(reward.percentage)

        return list(credits.values())
