"""
Tax relief resolution.

Statutory relief rules apply automatically to the contribution they name.
Schemes apply only through an active enrolment. ``TaxReliefCalculator.resolve``
turns the raw reference records into a ``TaxReliefContext``; the helper
functions below turn that context into relief lines for one run, capped
against what has already been claimed in the period and the tax year.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from ..exceptions import UnsupportedReliefMethodError
from ..models.relief import (
    TaxReliefRule, TaxReliefScheme, EmployeeReliefEnrollment, TaxReliefContext, TaxReliefLine,
    ResolvedSchemeRelief, ReliefParameters,
    FixedAmountRelief, PercentageOfIncomeRelief, PercentageOfContributionRelief, TieredRelief,
    FIXED_AMOUNT, PERCENTAGE_OF_INCOME, PERCENTAGE_OF_CONTRIBUTION, TIERED,
    DEDUCTION, REDUCED_RATE, ENROLLMENT_ACTIVE, SOURCE_STATUTORY_RULE, SOURCE_SCHEME,
)
from ..models.statutory import is_effective
from ..utils.money import ZERO, percent_of, round_money, non_negative, to_decimal

logger = logging.getLogger(__name__)


class TaxReliefCalculator:
    """Resolve which reliefs an employee is entitled to on a date"""

    def resolve(self, rules: Sequence[TaxReliefRule], schemes: Sequence[TaxReliefScheme],
                enrollments: Sequence[EmployeeReliefEnrollment], effective_date: date,
                employee_age: Optional[int] = None,
                ytd_relief_claimed: Optional[Dict[str, Decimal]] = None,
                period_relief_claimed: Optional[Dict[str, Decimal]] = None) -> TaxReliefContext:
        warnings = []

        active_rules = tuple(r for r in rules if is_effective(r.effective_from, r.effective_to, effective_date))

        schemes_by_id = {
            s.id: s for s in schemes if is_effective(s.effective_from, s.effective_to, effective_date)
        }
        resolved = []
        for enrollment in enrollments:
            if enrollment.status != ENROLLMENT_ACTIVE:
                continue
            if not is_effective(enrollment.effective_from, enrollment.effective_to, effective_date):
                continue
            scheme = schemes_by_id.get(enrollment.scheme_id)
            if scheme is None:
                logger.debug("Enrolment %s refers to scheme %s which is not in force on %s",
                             enrollment.id, enrollment.scheme_id, effective_date)
                continue

            reason = self._ineligibility(scheme, enrollment, employee_age)
            if reason:
                message = f"Relief scheme {scheme.scheme_code} not applied: {reason}"
                logger.warning(message)
                warnings.append(message)
                continue

            resolved.append(ResolvedSchemeRelief(
                scheme=scheme,
                enrollment=enrollment,
                parameters=relief_parameters_for(scheme, enrollment),
            ))

        return TaxReliefContext(
            statutory_rules=active_rules,
            schemes=tuple(resolved),
            ytd_relief_claimed=dict(ytd_relief_claimed or {}),
            period_relief_claimed=dict(period_relief_claimed or {}),
            warnings=tuple(warnings),
        )

    @staticmethod
    def _ineligibility(scheme: TaxReliefScheme, enrollment: EmployeeReliefEnrollment,
                       employee_age: Optional[int]) -> Optional[str]:
        if scheme.requires_proof and not enrollment.proof_verified:
            return "proof not verified"
        if scheme.min_age is not None or scheme.max_age is not None:
            if employee_age is None:
                return "employee age unknown"
            if scheme.min_age is not None and employee_age < scheme.min_age:
                return f"employee younger than {scheme.min_age}"
            if scheme.max_age is not None and employee_age > scheme.max_age:
                return f"employee older than {scheme.max_age}"
        return None


def relief_parameters_for(scheme: TaxReliefScheme, enrollment: EmployeeReliefEnrollment) -> ReliefParameters:
    """Build the typed relief parameters for a scheme enrolment"""
    method = scheme.calculation_method
    if method == FIXED_AMOUNT:
        return FixedAmountRelief(amount=to_decimal(scheme.relief_value))
    if method == PERCENTAGE_OF_INCOME:
        return PercentageOfIncomeRelief(percentage=to_decimal(scheme.relief_percentage))
    if method == PERCENTAGE_OF_CONTRIBUTION:
        return PercentageOfContributionRelief(
            percentage=to_decimal(scheme.relief_percentage, Decimal('100')),
            contribution=to_decimal(enrollment.declared_amount),
        )
    if method == TIERED:
        return TieredRelief(tiers=tuple(scheme.tiers), contribution=to_decimal(enrollment.declared_amount))
    raise UnsupportedReliefMethodError(
        f"Relief scheme {scheme.scheme_code} uses unsupported calculation method '{method}'"
    )


def cap_relief(amount: Decimal, code: str, context: TaxReliefContext,
               monthly_cap: Optional[Decimal] = None, annual_cap: Optional[Decimal] = None) -> Decimal:
    """Limit a relief amount to what is left under its period and annual caps"""
    amount = non_negative(amount)
    period_claimed = context.period_relief_claimed.get(code, ZERO)
    if monthly_cap is not None:
        amount = min(amount, non_negative(monthly_cap - period_claimed))
    if annual_cap is not None:
        year_claimed = context.ytd_relief_claimed.get(code, ZERO) + period_claimed
        amount = min(amount, non_negative(annual_cap - year_claimed))
    return amount


def statutory_relief_line(rule: TaxReliefRule, employee_amount: Decimal, employer_amount: Decimal,
                          context: TaxReliefContext) -> Optional[TaxReliefLine]:
    """Relief granted on a contribution charged in this run"""
    base = ZERO
    if rule.applies_to_employee_contribution:
        base += non_negative(employee_amount)
    if rule.applies_to_employer_contribution:
        base += non_negative(employer_amount)
    if base == ZERO:
        return None

    amount = cap_relief(
        percent_of(base, rule.relief_percentage), rule.statutory_type_code, context,
        monthly_cap=rule.monthly_cap, annual_cap=rule.annual_cap,
    )
    return TaxReliefLine(
        code=rule.statutory_type_code,
        name=rule.statutory_type_name,
        source=SOURCE_STATUTORY_RULE,
        relief_type=DEDUCTION,
        amount=round_money(amount),
    )


def scheme_relief_lines(context: TaxReliefContext, gross_pay: Decimal,
                        is_off_cycle: bool = False) -> List[TaxReliefLine]:
    """Deduction, exemption and credit lines from enrolled schemes

    Reduced-rate schemes depend on the tax due and are applied by the
    cumulative calculator through ``reduced_rate_relief``. On off-cycle runs
    a period allowance only grants what earlier runs of the period left over.
    """
    lines = []
    for resolved in context.schemes:
        scheme = resolved.scheme
        if scheme.relief_type == REDUCED_RATE:
            continue
        raw = resolved.parameters.compute(gross_pay)
        if is_off_cycle and resolved.parameters.is_period_allowance:
            raw = non_negative(raw - context.period_relief_claimed.get(scheme.scheme_code, ZERO))
        amount = cap_relief(
            raw, scheme.scheme_code, context,
            monthly_cap=scheme.monthly_cap, annual_cap=scheme.annual_cap,
        )
        lines.append(_scheme_line(scheme, amount))
    return lines


def reduced_rate_relief(resolved: ResolvedSchemeRelief, tax_due: Decimal,
                        context: TaxReliefContext) -> TaxReliefLine:
    """Reduction of positive income tax due granted by a reduced-rate scheme"""
    scheme = resolved.scheme
    raw = min(resolved.parameters.compute(non_negative(tax_due)), non_negative(tax_due))
    amount = cap_relief(raw, scheme.scheme_code, context,
                        monthly_cap=scheme.monthly_cap, annual_cap=scheme.annual_cap)
    return _scheme_line(scheme, amount)


def _scheme_line(scheme: TaxReliefScheme, amount: Decimal) -> TaxReliefLine:
    return TaxReliefLine(
        code=scheme.scheme_code,
        name=scheme.scheme_name,
        source=SOURCE_SCHEME,
        relief_type=scheme.relief_type,
        amount=round_money(amount),
    )
