from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

from ..exceptions import ReferenceDataError

ZERO = Decimal('0')
CENT = Decimal('0.01')
HUNDRED = Decimal('100')


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Convert numbers, numeric strings and None to Decimal"""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def parse_decimal(value: Any, source: str, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    """Strict conversion for stored data

    None gives the default; anything else that is not a finite number raises
    ReferenceDataError naming the source of the value.
    """
    if value is None:
        return default
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        result = None
    if result is None or not result.is_finite():
        raise ReferenceDataError(f"Invalid numeric value {value!r} in {source}")
    return result


def round_money(amount: Any) -> Decimal:
    """Round a monetary amount to cents, half-up"""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, rate_percent: Any) -> Decimal:
    """Apply a percentage rate (10 means 10%)"""
    return amount * to_decimal(rate_percent) / HUNDRED


def non_negative(amount: Decimal) -> Decimal:
    return amount if amount > ZERO else ZERO
