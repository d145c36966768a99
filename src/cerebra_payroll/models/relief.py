from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import ClassVar, Dict, Optional, Tuple, Union

from ..utils.money import ZERO, percent_of, non_negative

# Relief types
DEDUCTION = 'deduction'
CREDIT = 'credit'
EXEMPTION = 'exemption'
REDUCED_RATE = 'reduced_rate'
INCOME_REDUCING_TYPES = (DEDUCTION, EXEMPTION)

# Scheme calculation methods
FIXED_AMOUNT = 'fixed_amount'
PERCENTAGE_OF_INCOME = 'percentage_of_income'
PERCENTAGE_OF_CONTRIBUTION = 'percentage_of_contribution'
TIERED = 'tiered'

# Relief sources
SOURCE_STATUTORY_RULE = 'statutory_rule'
SOURCE_SCHEME = 'scheme'

ENROLLMENT_ACTIVE = 'active'


@dataclass(frozen=True)
class TaxReliefRule:
    """Automatic country-level relief on a statutory contribution"""
    id: int
    country: str
    statutory_type_code: str
    statutory_type_name: str
    relief_percentage: Decimal = Decimal('100')
    annual_cap: Optional[Decimal] = None
    monthly_cap: Optional[Decimal] = None
    applies_to_employee_contribution: bool = True
    applies_to_employer_contribution: bool = False
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    legal_reference: Optional[str] = None


@dataclass(frozen=True)
class ReliefTier:
    up_to: Optional[Decimal]
    percentage: Decimal


@dataclass(frozen=True)
class TaxReliefScheme:
    """Optional relief programme an employee may enrol in"""
    id: int
    country: str
    scheme_code: str
    scheme_name: str
    relief_type: str
    calculation_method: str
    scheme_category: Optional[str] = None
    relief_value: Optional[Decimal] = None
    relief_percentage: Optional[Decimal] = None
    tiers: Tuple[ReliefTier, ...] = ()
    annual_cap: Optional[Decimal] = None
    monthly_cap: Optional[Decimal] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    requires_proof: bool = False
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


@dataclass(frozen=True)
class EmployeeReliefEnrollment:
    id: int
    employee_id: str
    scheme_id: int
    status: str = ENROLLMENT_ACTIVE
    declared_amount: Decimal = ZERO
    proof_verified: bool = False
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


# ---------------------------------------------------------------------------
# Relief parameter variants. Each one knows how to turn a run's gross pay into
# a raw (uncapped) relief amount. Period allowances are granted once per pay
# period; proportional variants scale with the pay of each run.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FixedAmountRelief:
    amount: Decimal
    is_period_allowance: ClassVar[bool] = True

    def compute(self, gross_pay: Decimal) -> Decimal:
        return non_negative(self.amount)


@dataclass(frozen=True)
class PercentageOfIncomeRelief:
    percentage: Decimal
    is_period_allowance: ClassVar[bool] = False

    def compute(self, gross_pay: Decimal) -> Decimal:
        return non_negative(percent_of(gross_pay, self.percentage))


@dataclass(frozen=True)
class PercentageOfContributionRelief:
    percentage: Decimal
    contribution: Decimal
    is_period_allowance: ClassVar[bool] = True

    def compute(self, gross_pay: Decimal) -> Decimal:
        return non_negative(percent_of(self.contribution, self.percentage))


@dataclass(frozen=True)
class TieredRelief:
    """Marginal tiers over the declared contribution"""
    tiers: Tuple[ReliefTier, ...]
    contribution: Decimal
    is_period_allowance: ClassVar[bool] = True

    def compute(self, gross_pay: Decimal) -> Decimal:
        total = ZERO
        lower = ZERO
        for tier in self.tiers:
            upper = self.contribution if tier.up_to is None else min(self.contribution, tier.up_to)
            if upper > lower:
                total += percent_of(upper - lower, tier.percentage)
            if tier.up_to is None or self.contribution <= tier.up_to:
                break
            lower = tier.up_to
        return non_negative(total)


ReliefParameters = Union[
    FixedAmountRelief,
    PercentageOfIncomeRelief,
    PercentageOfContributionRelief,
    TieredRelief,
]


@dataclass(frozen=True)
class ResolvedSchemeRelief:
    """A scheme the employee is eligible for, with its parameters"""
    scheme: TaxReliefScheme
    enrollment: EmployeeReliefEnrollment
    parameters: ReliefParameters


@dataclass(frozen=True)
class TaxReliefLine:
    """One relief granted in a calculation"""
    code: str
    name: str
    source: str
    relief_type: str
    amount: Decimal


@dataclass(frozen=True)
class TaxReliefContext:
    """Relief inputs consulted by the cumulative calculator"""
    statutory_rules: Tuple[TaxReliefRule, ...] = ()
    schemes: Tuple[ResolvedSchemeRelief, ...] = ()
    ytd_relief_claimed: Dict[str, Decimal] = field(default_factory=dict)
    period_relief_claimed: Dict[str, Decimal] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()

    def rule_for(self, statutory_code: str) -> Optional[TaxReliefRule]:
        for rule in self.statutory_rules:
            if rule.statutory_type_code == statutory_code:
                return rule
        return None
