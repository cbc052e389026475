"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Money type for balances, deposits, ledger amounts and rewards
# Precision: 36 digits total, 18 after decimal point
# Sub-micro accrual ticks must survive a round trip through the accumulator
MoneyType = DECIMAL(36, 18)

# Per-second farming rate (amount * daily_rate / 86400)
RateType = DECIMAL(36, 18)
