"""Money helpers. Amounts are Decimal; discounts round to whole currency units."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal('0')
CENTS = Decimal('0.01')
UNIT = Decimal('1')


def to_decimal(value, default=None) -> Decimal:
    """
    Convert ints, floats, strings and Decimals to Decimal.

    Floats go through str() so 0.1 stays 0.1.

    Raises:
        ValueError: if the value cannot be parsed, is not finite (NaN,
            Infinity) or is missing and no default is given
    """
    if value is None or value == '':
        if default is not None:
            return default
        raise ValueError('Amount is required')
    if isinstance(value, bool):
        raise ValueError(f'Invalid amount: {value}')
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValueError(f'Invalid amount: {value}')
    if not result.is_finite():
        raise ValueError(f'Invalid amount: {value}')
    return result


def round_currency(value) -> Decimal:
    """Round to the nearest whole currency unit (half up)."""
    return to_decimal(value).quantize(UNIT, rounding=ROUND_HALF_UP)


def quantize(value) -> Decimal:
    """Quantize to two decimal places for storage."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def as_number(value):
    """JSON-friendly number: int when whole, float otherwise."""
    value = to_decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)
