"""
Services package.

Business logic for farming accrual and referral reward distribution.
"""

from unifarm.services.farming.farming_service import FarmingService
from unifarm.services.referral.graph_service import ReferralGraphService
from unifarm.services.referral_system import ReferralSystem, build_referral_system


__all__ = [
    "FarmingService",
    "ReferralGraphService",
    "ReferralSystem",
    "build_referral_system",
]
