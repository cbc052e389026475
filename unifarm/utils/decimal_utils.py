"""
Decimal helpers.

All monetary values are ``Decimal``; floats are converted through ``str``
so binary rounding noise never reaches the ledger.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation

from unifarm.config.constants import MONEY_SCALE


MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_SCALE)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Convert a value to Decimal.

    Args:
        value: Decimal, int, float or numeric string

    Returns:
        Decimal value

    Raises:
        ValueError: If value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a numeric value: {value!r}") from e
    else:
        raise ValueError(f"Not a numeric value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a finite value: {value!r}")
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Truncate to the storage scale (18 places)."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)
