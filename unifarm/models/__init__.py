"""Database models."""

from unifarm.models.base import Base
from unifarm.models.deposit import FarmingDeposit
from unifarm.models.enums import (
    BatchStatus,
    Currency,
    TransactionStatus,
    TransactionType,
)
from unifarm.models.referral_edge import ReferralEdge
from unifarm.models.reward_batch import RewardBatch
from unifarm.models.transaction import Transaction
from unifarm.models.user import User


__all__ = [
    "Base",
    "BatchStatus",
    "Currency",
    "FarmingDeposit",
    "ReferralEdge",
    "RewardBatch",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "User",
]
