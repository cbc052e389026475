"""
Referral system configuration.

Contains constants and configuration for the referral system.
"""

from decimal import Decimal

# Hard cap on chain length; the pointer graph is not guaranteed acyclic
MAX_REFERRAL_DEPTH = 20

# Share of the source amount per level, level 1 is the direct inviter.
# Levels past the table (11..20) earn 0%. Total is 14.5%.
REFERRAL_PERCENTAGES: tuple[Decimal, ...] = (
    Decimal("0.05"),   # level 1
    Decimal("0.03"),   # level 2
    Decimal("0.02"),   # level 3
    Decimal("0.01"),   # level 4
    Decimal("0.01"),   # level 5
    Decimal("0.005"),  # level 6
    Decimal("0.005"),  # level 7
    Decimal("0.005"),  # level 8
    Decimal("0.005"),  # level 9
    Decimal("0.005"),  # level 10
)
