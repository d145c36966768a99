from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

INCOME_TAX = 'income_tax'

STATUTORY_TYPES = (
    'income_tax',
    'social_security',
    'national_insurance',
    'pension',
    'health_insurance',
    'unemployment',
    'disability',
    'workers_comp',
    'local_tax',
    'other',
)

# Band calculation methods
PERCENTAGE = 'percentage'
PER_MONDAY = 'per_monday'
FIXED = 'fixed'
BAND_CALCULATION_METHODS = (PERCENTAGE, PER_MONDAY, FIXED)

# Country tax calculation methods
CUMULATIVE = 'cumulative'
NON_CUMULATIVE = 'non_cumulative'

# Refund handling
REFUND_AUTOMATIC = 'automatic'
REFUND_END_OF_YEAR = 'end_of_year'
REFUND_MANUAL_CLAIM = 'manual_claim'
DISPLAY_REDUCED_TAX = 'reduced_tax'
DISPLAY_SEPARATE_LINE = 'separate_line_item'


def is_effective(effective_from: Optional[date], effective_to: Optional[date], on: date) -> bool:
    """True when the validity window [effective_from, effective_to] contains the date"""
    if effective_from is not None and effective_from > on:
        return False
    if effective_to is not None and effective_to < on:
        return False
    return True


@dataclass(frozen=True)
class StatutoryDeductionType:
    """A named deduction category for a country"""
    id: int
    country: str
    statutory_type: str
    statutory_code: str
    statutory_name: str
    effective_from: date
    effective_to: Optional[date] = None
    employee_portion: bool = True
    employer_portion: bool = True
    employee_annual_cap: Optional[Decimal] = None
    employer_annual_cap: Optional[Decimal] = None
    display_order: int = 0

    @property
    def is_income_tax(self) -> bool:
        return self.statutory_type == INCOME_TAX


@dataclass(frozen=True)
class StatutoryRateBand:
    """One bracket of a statutory schedule. Rates are percentages."""
    id: int
    statutory_type_id: int
    min_amount: Decimal
    max_amount: Optional[Decimal] = None
    employee_rate: Decimal = Decimal('0')
    employer_rate: Decimal = Decimal('0')
    calculation_method: str = PERCENTAGE
    per_monday_amount: Decimal = Decimal('0')
    employer_per_monday_amount: Decimal = Decimal('0')
    fixed_amount: Decimal = Decimal('0')
    employer_fixed_amount: Decimal = Decimal('0')
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    pay_frequency: str = 'monthly'
    band_name: str = ''
    display_order: int = 0
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    def admits_age(self, age: Optional[int]) -> bool:
        """Bands are age-gated only when the employee's age is known"""
        if age is None:
            return True
        if self.min_age is not None and age < self.min_age:
            return False
        if self.max_age is not None and age > self.max_age:
            return False
        return True

    def contains(self, amount: Decimal) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount


@dataclass(frozen=True)
class CountryTaxSettings:
    """Per-country tax calculation policy"""
    country: str
    tax_calculation_method: str = CUMULATIVE
    allow_mid_year_refunds: bool = True
    refund_method: str = REFUND_AUTOMATIC
    refund_display_type: str = DISPLAY_REDUCED_TAX
    refund_line_item_label: str = 'PAYE Refund'
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_default: bool = False

    @property
    def is_cumulative(self) -> bool:
        return self.tax_calculation_method == CUMULATIVE


@dataclass(frozen=True)
class PayPeriod:
    id: int
    period_start: date
    period_end: date
    pay_frequency: str = 'monthly'
    monday_count: Optional[int] = None
