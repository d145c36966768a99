"""
Rate band engine.

Bands are stored against a pay frequency. ``select_bands`` picks the schedule
to use for a target frequency and ``scale_band`` converts its thresholds, so a
monthly schedule can be applied to annual cumulative income and vice versa.
All amounts returned here are unrounded; rounding happens once per reported
amount in the cumulative calculator.
"""
from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from ..models.statutory import StatutoryRateBand, PERCENTAGE, PER_MONDAY, FIXED
from ..utils.money import ZERO, percent_of
from ..utils.tax_year import periods_per_year


def select_bands(bands: Sequence[StatutoryRateBand], target_frequency: str) -> List[StatutoryRateBand]:
    """Bands expressed in the target frequency

    Prefers bands configured for the target frequency; otherwise takes the
    schedule of the first configured frequency and rescales it.
    """
    if not bands:
        return []
    exact = [b for b in bands if b.pay_frequency == target_frequency]
    if exact:
        return sort_bands(exact)
    source_frequency = sort_bands(bands)[0].pay_frequency
    return sort_bands(
        scale_band(b, source_frequency, target_frequency)
        for b in bands if b.pay_frequency == source_frequency
    )


def scale_band(band: StatutoryRateBand, from_frequency: str, to_frequency: str) -> StatutoryRateBand:
    """Convert band thresholds between pay frequencies"""
    if from_frequency == to_frequency:
        return band
    factor = periods_per_year(from_frequency) / periods_per_year(to_frequency)
    return replace(
        band,
        min_amount=band.min_amount * factor,
        max_amount=None if band.max_amount is None else band.max_amount * factor,
        pay_frequency=to_frequency,
    )


def sort_bands(bands) -> List[StatutoryRateBand]:
    return sorted(bands, key=lambda b: (b.min_amount, b.display_order))


def validate_band_schedule(bands: Sequence[StatutoryRateBand]) -> List[str]:
    """Report gaps and overlaps in a progressive schedule"""
    problems = []
    ordered = sort_bands(bands)
    for lower, upper in zip(ordered, ordered[1:]):
        if lower.max_amount is None:
            problems.append(f"band starting at {lower.min_amount} is unbounded but followed by another band")
        elif upper.min_amount > lower.max_amount:
            problems.append(f"gap between {lower.max_amount} and {upper.min_amount}")
        elif upper.min_amount < lower.max_amount:
            problems.append(f"overlap between {upper.min_amount} and {lower.max_amount}")
    return problems


def progressive_tax(income: Decimal, bands: Sequence[StatutoryRateBand]) -> Decimal:
    """Marginal tax on income stacked across contiguous percentage bands"""
    if income <= ZERO:
        return ZERO
    total = ZERO
    for band in sort_bands(bands):
        if income <= band.min_amount:
            break
        top = income if band.max_amount is None else min(income, band.max_amount)
        if top > band.min_amount:
            total += percent_of(top - band.min_amount, band.employee_rate)
    return total


def match_band(income: Decimal, bands: Sequence[StatutoryRateBand],
               employee_age: Optional[int] = None) -> Optional[StatutoryRateBand]:
    """First age-eligible band whose range contains the income"""
    for band in sort_bands(bands):
        if not band.admits_age(employee_age):
            continue
        if band.contains(income):
            return band
    return None


def flat_band_amounts(band: StatutoryRateBand, income: Decimal, monday_count: int) -> Tuple[Decimal, Decimal]:
    """Employee and employer amounts for a single matched band"""
    method = band.calculation_method or PERCENTAGE
    if method == PER_MONDAY:
        mondays = Decimal(monday_count)
        return band.per_monday_amount * mondays, band.employer_per_monday_amount * mondays
    if method == FIXED:
        # Older bands keep their flat figure in the per-Monday columns
        employee = band.fixed_amount or band.per_monday_amount
        employer = band.employer_fixed_amount or band.employer_per_monday_amount
        return employee, employer
    if method == PERCENTAGE:
        return percent_of(income, band.employee_rate), percent_of(income, band.employer_rate)
    raise ValueError(f"Unknown band calculation method '{method}'")
