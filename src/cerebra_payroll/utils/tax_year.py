"""
Tax year and pay-period conventions shared by every component.

A tax year is labelled by the calendar year in which it starts. With the
default start of 1 January the tax year equals the calendar year.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Tuple

from ..config.settings import TAX_YEAR_START_MONTH, TAX_YEAR_START_DAY
from ..exceptions import InvalidCalculationInputError

PERIODS_PER_YEAR = {
    'weekly': Decimal('52'),
    'fortnightly': Decimal('26'),
    'biweekly': Decimal('26'),
    'semimonthly': Decimal('24'),
    'monthly': Decimal('12'),
    'quarterly': Decimal('4'),
    'annual': Decimal('1'),
}


def get_tax_year_from_date(d: date,
                           start_month: int = TAX_YEAR_START_MONTH,
                           start_day: int = TAX_YEAR_START_DAY) -> int:
    """Return the tax year a date belongs to"""
    if not isinstance(d, date):
        raise InvalidCalculationInputError(f"Expected a date, got {d!r}")
    if (d.month, d.day) >= (start_month, start_day):
        return d.year
    return d.year - 1


def get_tax_year_bounds(tax_year: int,
                        start_month: int = TAX_YEAR_START_MONTH,
                        start_day: int = TAX_YEAR_START_DAY) -> Tuple[date, date]:
    """First and last day of a tax year"""
    start = date(tax_year, start_month, start_day)
    end = date(tax_year + 1, start_month, start_day) - timedelta(days=1)
    return start, end


def periods_per_year(pay_frequency: str) -> Decimal:
    try:
        return PERIODS_PER_YEAR[pay_frequency]
    except KeyError:
        raise InvalidCalculationInputError(f"Unknown pay frequency '{pay_frequency}'") from None


def count_mondays(start: date, end: date) -> int:
    """Number of Mondays between start and end, inclusive"""
    if end < start:
        return 0
    first_monday = start + timedelta(days=(7 - start.weekday()) % 7)
    if first_monday > end:
        return 0
    return (end - first_monday).days // 7 + 1
