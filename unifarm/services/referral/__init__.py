"""
Referral reward distribution.

Chain resolution, reward calculation, ledger writes and the invitation
graph service.
"""

from unifarm.services.referral.chain_resolver import (
    ChainResolver,
    IterativeChainResolver,
    RecursiveChainResolver,
)
from unifarm.services.referral.config import (
    MAX_REFERRAL_DEPTH,
    REFERRAL_PERCENTAGES,
)
from unifarm.services.referral.distribution_engine import (
    DistributionResult,
    RewardDistributionEngine,
)
from unifarm.services.referral.graph_service import (
    BindResult,
    LevelStats,
    ReferralGraphService,
)
from unifarm.services.referral.ledger_writer import (
    BulkLedgerWriter,
    LedgerWriter,
    RowLedgerWriter,
)
from unifarm.services.referral.reward_calculator import (
    LevelReward,
    ReferralCredit,
    ReferralRewardCalculator,
)


__all__ = [
    "MAX_REFERRAL_DEPTH",
    "REFERRAL_PERCENTAGES",
    "BindResult",
    "BulkLedgerWriter",
    "ChainResolver",
    "DistributionResult",
    "IterativeChainResolver",
    "LedgerWriter",
    "LevelReward",
    "LevelStats",
    "RecursiveChainResolver",
    "ReferralCredit",
    "ReferralGraphService",
    "ReferralRewardCalculator",
    "RewardDistributionEngine",
    "RowLedgerWriter",
]
