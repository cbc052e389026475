"""
UniFarm core.

Farming accrual and multi-level referral reward distribution.
"""

__version__ = "0.1.0"
