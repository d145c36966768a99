"""
Cumulative statutory calculator.

Contributions are charged first, from gross pay. Statutory relief rules then
turn those contributions into taxable-income reductions, enrolled schemes add
their deductions and credits, and income tax is finally computed on the
adjusted taxable income.

Income tax under the cumulative method recomputes the tax on everything earned
so far in the tax year (opening balance, earlier periods, earlier runs in this
period and the current run) and charges the difference from what has already
been paid. Under the non-cumulative method the period's income is annualised,
taxed, and scaled back to one period.

Off-cycle runs treat whatever was charged earlier in the same pay period as
already paid, so splitting a period's pay across several runs does not change
the total charged.

Every reported amount is rounded once, half-up to cents.
"""
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..config.settings import DEFAULT_MONDAY_COUNT
from ..exceptions import InvalidCalculationInputError
from ..models.calculation import (
    CumulativeCalculationContext, StatutoryDeductionResult, CalculationContextSnapshot, OffCycleCalculationResult
)
from ..models.relief import TaxReliefLine, INCOME_REDUCING_TYPES, CREDIT, REDUCED_RATE
from ..models.statutory import (
    StatutoryDeductionType, StatutoryRateBand, BAND_CALCULATION_METHODS, REFUND_AUTOMATIC, DISPLAY_SEPARATE_LINE
)
from ..utils.money import ZERO, round_money, non_negative, to_decimal
from ..utils.tax_year import periods_per_year
from ..utils.validators import validate_tax_rate
from .statutory_deduction_calculator import (
    select_bands, validate_band_schedule, progressive_tax, match_band, flat_band_amounts
)
from .tax_relief_calculator import statutory_relief_line, scheme_relief_lines, reduced_rate_relief

logger = logging.getLogger(__name__)

ANNUAL = 'annual'


class CumulativeStatutoryCalculator:
    """Compute every statutory deduction for a single gross pay amount"""

    def calculate(self, gross_pay, statutory_types: Sequence[StatutoryDeductionType],
                  rate_bands: Mapping[int, Sequence[StatutoryRateBand]],
                  context: CumulativeCalculationContext,
                  employee_age: Optional[int] = None,
                  monday_count: int = DEFAULT_MONDAY_COUNT) -> OffCycleCalculationResult:
        gross_pay = to_decimal(gross_pay)
        if gross_pay < ZERO:
            raise InvalidCalculationInputError(f"Gross pay cannot be negative: {gross_pay}")

        relief_context = context.relief_context
        warnings: List[str] = list(relief_context.warnings)

        ordered = sorted(statutory_types, key=lambda t: (t.display_order, t.statutory_code))
        schedules = self._schedules(ordered, rate_bands, context, warnings)

        entries: Dict[int, StatutoryDeductionResult] = {}
        relief_lines: List[TaxReliefLine] = []

        # Contributions
        for stat_type in ordered:
            if stat_type.is_income_tax or stat_type.id not in schedules:
                continue
            entry = self._contribution(stat_type, schedules[stat_type.id], gross_pay, context,
                                       employee_age, monday_count)
            rule = relief_context.rule_for(stat_type.statutory_code)
            if rule is not None:
                line = statutory_relief_line(rule, entry.employee_amount, entry.employer_amount, relief_context)
                if line is not None and line.amount > ZERO:
                    relief_lines.append(line)
                    entry = replace(entry, tax_relief_amount=line.amount)
            entries[stat_type.id] = entry

        # Scheme reliefs that do not depend on the tax due
        scheme_lines = [
            line for line in scheme_relief_lines(relief_context, gross_pay, context.is_off_cycle)
            if line.amount > ZERO
        ]
        reduction = sum((l.amount for l in relief_lines + scheme_lines if l.relief_type in INCOME_REDUCING_TYPES), ZERO)
        credit_pool = sum((l.amount for l in scheme_lines if l.relief_type == CREDIT), ZERO)
        adjusted_taxable = non_negative(gross_pay - reduction)

        # Income tax
        reduced_rate_totals: Dict[str, TaxReliefLine] = {}
        credits_applied = ZERO
        for stat_type in ordered:
            if not stat_type.is_income_tax or stat_type.id not in schedules:
                continue
            entry, credits_used = self._income_tax(
                stat_type, schedules[stat_type.id], adjusted_taxable, reduction, context,
                employee_age, credit_pool - credits_applied, reduced_rate_totals, warnings,
            )
            credits_applied += credits_used
            entries[stat_type.id] = entry

        relief_lines.extend(_settle_credits(scheme_lines, credits_applied))
        relief_lines.extend(reduced_rate_totals.values())

        deductions = tuple(entries[t.id] for t in ordered if t.id in entries)
        result = OffCycleCalculationResult(
            deductions=deductions,
            total_employee_deductions=round_money(sum((d.employee_amount for d in deductions), ZERO)),
            total_employer_contributions=round_money(sum((d.employer_amount for d in deductions), ZERO)),
            context=CalculationContextSnapshot.from_context(context),
            tax_reliefs=tuple(relief_lines),
            total_taxable_income_reduction=round_money(reduction),
            total_tax_credits=round_money(credits_applied),
            adjusted_taxable_income=round_money(adjusted_taxable),
            gross_pay=round_money(gross_pay),
            warnings=tuple(warnings),
        )
        logger.debug("Calculated %d deductions for %s: employee %s, employer %s",
                     len(deductions), context.employee_id,
                     result.total_employee_deductions, result.total_employer_contributions)
        return result

    def _schedules(self, ordered: Sequence[StatutoryDeductionType],
                   rate_bands: Mapping[int, Sequence[StatutoryRateBand]],
                   context: CumulativeCalculationContext, warnings: List[str]) -> Dict[int, List[StatutoryRateBand]]:
        """Bands per type in the frequency each type is calculated in; unusable types are left out"""
        schedules = {}
        for stat_type in ordered:
            frequency = ANNUAL if stat_type.is_income_tax else context.pay_frequency
            bands = select_bands(rate_bands.get(stat_type.id, ()), frequency)
            if not bands:
                _warn(warnings, f"No rate bands for {stat_type.statutory_code} on {context.effective_date}; "
                                f"{stat_type.statutory_name} skipped")
                continue

            unknown = sorted({b.calculation_method for b in bands} - set(BAND_CALCULATION_METHODS))
            if unknown:
                _warn(warnings, f"Unknown band calculation method {', '.join(unknown)} for "
                                f"{stat_type.statutory_code}; {stat_type.statutory_name} skipped")
                continue

            for band in bands:
                if not (validate_tax_rate(band.employee_rate) and validate_tax_rate(band.employer_rate)):
                    _warn(warnings, f"Band {band.band_name or band.id} of {stat_type.statutory_code} has a rate "
                                    f"outside 0-100: {band.employee_rate}/{band.employer_rate}")
            if stat_type.is_income_tax:
                for problem in validate_band_schedule(bands):
                    _warn(warnings, f"Rate bands for {stat_type.statutory_code}: {problem}")
            schedules[stat_type.id] = bands
        return schedules

    def _contribution(self, stat_type: StatutoryDeductionType, bands: Sequence[StatutoryRateBand],
                      gross_pay: Decimal, context: CumulativeCalculationContext,
                      employee_age: Optional[int], monday_count: int) -> StatutoryDeductionResult:
        code = stat_type.statutory_code
        period = context.period_amounts

        # Off-cycle runs are placed on the period's combined pay
        basis = gross_pay + period.gross_pay if context.is_off_cycle else gross_pay
        band = match_band(basis, bands, employee_age)
        if band is None:
            employee, employer = ZERO, ZERO
            method = bands[0].calculation_method
        else:
            employee, employer = flat_band_amounts(band, basis, monday_count)
            method = band.calculation_method

        if context.is_off_cycle:
            employee = non_negative(employee - period.employee_paid(code))
            employer = non_negative(employer - period.employer_paid(code))

        if not stat_type.employee_portion:
            employee = ZERO
        if not stat_type.employer_portion:
            employer = ZERO

        prior_employee = context.prior_employee_amount(code)
        employee = round_money(_within_cap(employee, stat_type.employee_annual_cap, prior_employee))
        employer = round_money(_within_cap(employer, stat_type.employer_annual_cap,
                                           context.prior_employer_amount(code)))

        return StatutoryDeductionResult(
            code=code,
            name=stat_type.statutory_name,
            type=stat_type.statutory_type,
            employee_amount=employee,
            employer_amount=employer,
            calculation_method=method,
            ytd_tax_paid=round_money(prior_employee + employee),
        )

    def _income_tax(self, stat_type: StatutoryDeductionType, bands: Sequence[StatutoryRateBand],
                    adjusted_taxable: Decimal, reduction: Decimal, context: CumulativeCalculationContext,
                    employee_age: Optional[int], credits_available: Decimal,
                    reduced_rate_totals: Dict[str, TaxReliefLine],
                    warnings: List[str]) -> Tuple[StatutoryDeductionResult, Decimal]:
        code = stat_type.statutory_code
        settings = context.settings
        eligible = [b for b in bands if b.admits_age(employee_age)]

        prior_paid = context.prior_employee_amount(code, is_income_tax=True)
        cumulative_taxable = context.prior_taxable_income() + adjusted_taxable

        if settings.is_cumulative:
            due = progressive_tax(cumulative_taxable, eligible) - prior_paid
        else:
            periods = periods_per_year(context.pay_frequency)
            period_taxable = context.period_amounts.taxable_income + adjusted_taxable
            due = (progressive_tax(period_taxable * periods, eligible) / periods
                   - context.period_amounts.employee_paid(code))
            due = non_negative(due)

        credits_used = ZERO
        if due > ZERO:
            for resolved in context.relief_context.schemes:
                if resolved.scheme.relief_type != REDUCED_RATE:
                    continue
                line = reduced_rate_relief(resolved, due, context.relief_context)
                if line.amount <= ZERO:
                    continue
                due -= line.amount
                previous = reduced_rate_totals.get(line.code)
                if previous is not None:
                    line = replace(line, amount=previous.amount + line.amount)
                reduced_rate_totals[line.code] = line
            credits_used = min(non_negative(credits_available), non_negative(due))
            due -= credits_used

        is_refund = False
        name = stat_type.statutory_name
        if due < ZERO:
            if settings.allow_mid_year_refunds and settings.refund_method == REFUND_AUTOMATIC:
                is_refund = True
                if settings.refund_display_type == DISPLAY_SEPARATE_LINE:
                    name = settings.refund_line_item_label or name
            else:
                _warn(warnings, f"Overpayment of {round_money(-due)} on {code} not refunded "
                                f"(refunds {'enabled' if settings.allow_mid_year_refunds else 'disabled'}, "
                                f"method {settings.refund_method})")
                due = ZERO
        else:
            due = _within_cap(due, stat_type.employee_annual_cap, prior_paid)

        if not stat_type.employee_portion:
            due = ZERO
            is_refund = False

        employee = round_money(due)
        return StatutoryDeductionResult(
            code=code,
            name=name,
            type=stat_type.statutory_type,
            employee_amount=employee,
            employer_amount=ZERO,
            calculation_method=settings.tax_calculation_method,
            ytd_taxable_income=round_money(cumulative_taxable),
            ytd_tax_paid=round_money(prior_paid + employee),
            is_refund=is_refund,
            tax_relief_amount=round_money(reduction) if reduction > ZERO else None,
        ), credits_used


def _within_cap(amount: Decimal, annual_cap: Optional[Decimal], already_charged: Decimal) -> Decimal:
    if annual_cap is None:
        return amount
    return min(amount, non_negative(annual_cap - already_charged))


def _settle_credits(lines: Sequence[TaxReliefLine], applied: Decimal) -> List[TaxReliefLine]:
    """Report credits at the amount actually set against tax; deductions pass through"""
    settled = []
    remaining = applied
    for line in lines:
        if line.relief_type != CREDIT:
            settled.append(line)
            continue
        used = min(line.amount, remaining)
        remaining -= used
        if used > ZERO:
            settled.append(replace(line, amount=used))
    return settled


def _warn(warnings: List[str], message: str):
    logger.warning(message)
    warnings.append(message)
