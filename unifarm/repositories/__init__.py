"""Data access layer."""

from unifarm.repositories.base import BaseRepository
from unifarm.repositories.deposit_repository import FarmingDepositRepository
from unifarm.repositories.referral_edge_repository import ReferralEdgeRepository
from unifarm.repositories.reward_batch_repository import RewardBatchRepository
from unifarm.repositories.transaction_repository import TransactionRepository
from unifarm.repositories.user_repository import UserRepository


__all__ = [
    "BaseRepository",
    "FarmingDepositRepository",
    "ReferralEdgeRepository",
    "RewardBatchRepository",
    "TransactionRepository",
    "UserRepository",
]
