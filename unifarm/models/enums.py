"""
Enumerations shared by models and services.
"""

from enum import StrEnum


class Currency(StrEnum):
    """Supported reward currencies."""

    UNI = "UNI"
    TON = "TON"

    @property
    def balance_field(self) -> str:
        """Name of the main balance column for this currency."""
        return f"balance_{self.value.lower()}"

    @property
    def accumulator_field(self) -> str:
        """Name of the accumulator column for this currency."""
        return f"accumulator_{self.value.lower()}"


class TransactionType(StrEnum):
    """Ledger entry types."""

    DEPOSIT = "deposit"
    FARMING_REWARD = "farming_reward"
    FARMING_HARVEST = "farming_harvest"
    REFERRAL_REWARD = "referral_reward"


class TransactionStatus(StrEnum):
    """Ledger entry statuses."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class BatchStatus(StrEnum):
    """Reward batch lifecycle states."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
