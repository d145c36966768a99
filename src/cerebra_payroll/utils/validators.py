import re
from decimal import Decimal

from .tax_year import PERIODS_PER_YEAR

def validate_country_code(country_code: str) -> bool:
    """Two-letter ISO country code"""
    return bool(country_code) and bool(re.match(r'^[A-Z]{2}$', country_code))

def validate_tax_rate(rate: Decimal) -> bool:
    """Validate tax rate is within reasonable bounds"""
    return Decimal('0') <= rate <= Decimal('100')

def validate_pay_frequency(pay_frequency: str) -> bool:
    return pay_frequency in PERIODS_PER_YEAR
