"""
Farming accrual calculator.

Pure time-based yield arithmetic. No database access.
"""

from datetime import datetime
from decimal import Decimal

from unifarm.config.constants import MIN_ACCRUAL_SECONDS, SECONDS_IN_DAY
from unifarm.config.settings import settings
from unifarm.utils.datetime_utils import ensure_aware
from unifarm.utils.decimal_utils import quantize_money, to_decimal


class AccrualCalculator:
    """
    Calculator for per-second farming yield.

    Formula: rate_per_second = amount * daily_rate / 86400,
    earned = rate_per_second * clamp(elapsed, 0.1, max_seconds).
    """

    def __init__(
        self,
        daily_rate: Decimal | None = None,
        max_seconds: Decimal | None = None,
    ) -> None:
        """
        Initialize calculator.

        Args:
            daily_rate: Daily yield fraction (defaults to settings)
            max_seconds: Upper clamp for one tick (defaults to settings)
        """
        self.daily_rate = (
            settings.farming_daily_rate if daily_rate is None else daily_rate
        )
        self.max_seconds = (
            settings.farming_max_accrual_seconds
            if max_seconds is None
            else max_seconds
        )

    def rate_per_second(self, amount: Decimal) -> Decimal:
        """
        Calculate per-second rate of a deposit.

        Example:
            >>> AccrualCalculator(Decimal("0.005")).rate_per_second(Decimal("100000"))
            Decimal('0.005787037037037037')
        """
        if amount <= 0:
            return Decimal("0")
        return quantize_money(amount * self.daily_rate / SECONDS_IN_DAY)

    def clamp_elapsed(self, seconds: Decimal) -> Decimal:
        """Clamp elapsed seconds to [0.1, max_seconds]."""
        return max(MIN_ACCRUAL_SECONDS, min(seconds, self.max_seconds))

    def elapsed_seconds(self, last_updated_at: datetime, now: datetime) -> Decimal:
        """
        Clamped seconds between the last tick and now.

        Args:
            last_updated_at: Previous tick timestamp
            now: Current timestamp

        Returns:
            Seconds to credit for this tick
        """
        delta = ensure_aware(now) - ensure_aware(last_updated_at)
        return self.clamp_elapsed(to_decimal(delta.total_seconds()))

    @staticmethod
    def earned(rate_per_second: Decimal, elapsed: Decimal) -> Decimal:
        """Yield for elapsed seconds at a per-second rate."""
        if rate_per_second <= 0 or elapsed <= 0:
            return Decimal("0")
        return quantize_money(rate_per_second * elapsed)

    def project(self, amount: Decimal) -> dict[str, Decimal]:
        """
        Project income of a deposit without persisting anything.

        Args:
            amount: Deposit amount

        Returns:
            Dict with rate_per_second, daily, weekly and monthly income
        """
        rate = self.rate_per_second(amount)
        daily = quantize_money(rate * SECONDS_IN_DAY)
        return {
            "amount": amount,
            "rate_per_second": rate,
            "daily": daily,
            "weekly": daily * 7,
            "monthly": daily * 30,
        }
