from datetime import date
from decimal import Decimal

import pytest

from cerebra_payroll.exceptions import InvalidCalculationInputError, ReferenceDataError
from cerebra_payroll.utils.money import round_money, to_decimal, percent_of, parse_decimal
from cerebra_payroll.utils.tax_year import (
    get_tax_year_from_date, get_tax_year_bounds, periods_per_year, count_mondays
)


def test_calendar_tax_year():
    assert get_tax_year_from_date(date(2024, 1, 1)) == 2024
    assert get_tax_year_from_date(date(2024, 12, 31)) == 2024


def test_tax_year_starting_in_april():
    assert get_tax_year_from_date(date(2024, 4, 5), start_month=4, start_day=6) == 2023
    assert get_tax_year_from_date(date(2024, 4, 6), start_month=4, start_day=6) == 2024
    assert get_tax_year_bounds(2024, start_month=4, start_day=6) == (date(2024, 4, 6), date(2025, 4, 5))


def test_calendar_tax_year_bounds():
    assert get_tax_year_bounds(2024) == (date(2024, 1, 1), date(2024, 12, 31))


def test_tax_year_requires_a_date():
    with pytest.raises(InvalidCalculationInputError):
        get_tax_year_from_date("2024-01-01")


def test_periods_per_year():
    assert periods_per_year("monthly") == 12
    assert periods_per_year("fortnightly") == 26
    with pytest.raises(InvalidCalculationInputError):
        periods_per_year("lunar")


@pytest.mark.parametrize("start, end, expected", [
    (date(2024, 1, 1), date(2024, 1, 31), 5),
    (date(2024, 2, 1), date(2024, 2, 29), 4),
    (date(2024, 9, 1), date(2024, 9, 30), 5),
    (date(2024, 1, 2), date(2024, 1, 7), 0),
    (date(2024, 1, 31), date(2024, 1, 1), 0),
])
def test_count_mondays(start, end, expected):
    assert count_mondays(start, end) == expected


def test_round_money_is_half_up():
    assert round_money(Decimal("2.665")) == Decimal("2.67")
    assert round_money(Decimal("2.675")) == Decimal("2.68")
    assert round_money(Decimal("-2.665")) == Decimal("-2.67")


def test_money_helpers():
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("12.50") == Decimal("12.50")
    assert to_decimal("abc", None) is None
    assert percent_of(Decimal("60000"), 10) == Decimal("6000")


def test_parse_decimal_is_strict():
    assert parse_decimal(None, "rates.rate") == Decimal("0")
    assert parse_decimal(None, "rates.cap", default=None) is None
    assert parse_decimal("12.50", "rates.rate") == Decimal("12.50")
    assert parse_decimal(7, "rates.rate") == Decimal("7")


@pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", [1]])
def test_parse_decimal_rejects_bad_values(value):
    with pytest.raises(ReferenceDataError) as excinfo:
        parse_decimal(value, "rates.rate")
    assert "rates.rate" in str(excinfo.value)
