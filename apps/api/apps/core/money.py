"""Decimal helpers for monetary amounts."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from apps.core.exceptions import ValidationError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value, field='amount'):
    """
    Coerce value to a Decimal rounded to cents.

    Floats go through str() so 0.1 stays 0.10.
    """
    if value is None:
        raise ValidationError(f'{field} is required')
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number')
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number, got {value!r}')
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a finite number')
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_optional_money(value, field='amount'):
    if value is None or value == '':
        return None
    return to_money(value, field=field)


def apply_rate(amount, rate):
    """amount x rate, rounded to cents."""
    return (Decimal(amount) * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)
