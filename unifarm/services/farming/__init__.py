"""Farming accrual and deposit operations."""

from unifarm.services.farming.accrual_calculator import AccrualCalculator
from unifarm.services.farming.accrual_engine import (
    AccrualGuard,
    AccrualResult,
    FarmingAccrualEngine,
    accrual_guard,
)
from unifarm.services.farming.farming_service import (
    DepositResult,
    FarmingInfo,
    FarmingService,
    HarvestResult,
)


__all__ = [
    "AccrualCalculator",
    "AccrualGuard",
    "AccrualResult",
    "DepositResult",
    "FarmingAccrualEngine",
    "FarmingInfo",
    "FarmingService",
    "HarvestResult",
    "accrual_guard",
]
