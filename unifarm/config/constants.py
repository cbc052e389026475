"""
Business constants for farming and ledger accounting.

Central location for numeric rules shared by services, models and tests.
"""

from decimal import Decimal

# Seconds per day, used to turn a daily rate into a per-second rate
SECONDS_IN_DAY = 86400

# Lower clamp for elapsed seconds in one accrual tick
MIN_ACCRUAL_SECONDS = Decimal("0.1")

# Accumulator is moved into the main balance once it reaches this amount
MIN_CHANGE_THRESHOLD = Decimal("0.000001")

# Fractional digits stored for every monetary column (DECIMAL(36, 18))
MONEY_SCALE = 18

# Number of deposits returned in the farming info preview
FARMING_INFO_DEPOSITS_PREVIEW = 5

# Public invitation code
REF_CODE_LENGTH = 8
REF_CODE_PREFIX = "ref_"
REF_CODE_MAX_ATTEMPTS = 5
