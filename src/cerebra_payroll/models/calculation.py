from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from ..utils.money import ZERO
from .relief import TaxReliefContext, TaxReliefLine
from .statutory import CountryTaxSettings


@dataclass(frozen=True)
class StatutoryAmounts:
    """Sums of previously recorded runs"""
    gross_pay: Decimal = ZERO
    taxable_income: Decimal = ZERO
    employee_amounts: Dict[str, Decimal] = field(default_factory=dict)
    employer_amounts: Dict[str, Decimal] = field(default_factory=dict)
    relief_claimed: Dict[str, Decimal] = field(default_factory=dict)
    run_count: int = 0

    def employee_paid(self, code: str) -> Decimal:
        return self.employee_amounts.get(code, ZERO)

    def employer_paid(self, code: str) -> Decimal:
        return self.employer_amounts.get(code, ZERO)

    def relief(self, code: str) -> Decimal:
        return self.relief_claimed.get(code, ZERO)

    @property
    def is_empty(self) -> bool:
        return self.run_count == 0


@dataclass(frozen=True)
class YtdStatutoryAmounts(StatutoryAmounts):
    """Year-to-date amounts for (employee, tax year), prior periods only"""
    tax_year: Optional[int] = None


@dataclass(frozen=True)
class PeriodStatutoryAmounts(StatutoryAmounts):
    """Amounts already calculated within the current pay period"""
    pay_period_id: Optional[int] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None


@dataclass(frozen=True)
class OpeningBalances:
    """Carried-forward YTD figures from before the current engagement"""
    employee_id: str
    tax_year: int
    ytd_gross_earnings: Decimal = ZERO
    ytd_taxable_income: Decimal = ZERO
    ytd_income_tax: Decimal = ZERO
    statutory: Dict[str, Decimal] = field(default_factory=dict)
    employer_statutory: Dict[str, Decimal] = field(default_factory=dict)
    relief_claimed: Dict[str, Decimal] = field(default_factory=dict)
    previous_employer_name: Optional[str] = None

    @classmethod
    def empty(cls, employee_id: str, tax_year: int) -> 'OpeningBalances':
        return cls(employee_id=employee_id, tax_year=tax_year)

    def employee_paid(self, code: str, is_income_tax: bool = False) -> Decimal:
        # ytd_income_tax stands in for income tax codes without an explicit figure
        if code in self.statutory:
            return self.statutory[code]
        return self.ytd_income_tax if is_income_tax else ZERO

    def employer_paid(self, code: str) -> Decimal:
        return self.employer_statutory.get(code, ZERO)

    def relief(self, code: str) -> Decimal:
        return self.relief_claimed.get(code, ZERO)


@dataclass(frozen=True)
class CumulativeCalculationContext:
    """Everything one calculation needs besides gross pay and the rate tables"""
    employee_id: str
    tax_year: int
    effective_date: date
    opening_balances: OpeningBalances
    ytd_amounts: YtdStatutoryAmounts
    period_amounts: PeriodStatutoryAmounts
    settings: CountryTaxSettings
    relief_context: TaxReliefContext = field(default_factory=TaxReliefContext)
    is_off_cycle: bool = False
    pay_frequency: str = 'monthly'

    @property
    def tax_calculation_method(self) -> str:
        return self.settings.tax_calculation_method

    @property
    def allow_mid_year_refunds(self) -> bool:
        return self.settings.allow_mid_year_refunds

    def prior_employee_amount(self, code: str, is_income_tax: bool = False) -> Decimal:
        """Employee amount charged this tax year before the current run"""
        return (self.opening_balances.employee_paid(code, is_income_tax)
                + self.ytd_amounts.employee_paid(code)
                + self.period_amounts.employee_paid(code))

    def prior_employer_amount(self, code: str) -> Decimal:
        return (self.opening_balances.employer_paid(code)
                + self.ytd_amounts.employer_paid(code)
                + self.period_amounts.employer_paid(code))

    def prior_taxable_income(self) -> Decimal:
        return (self.opening_balances.ytd_taxable_income
                + self.ytd_amounts.taxable_income
                + self.period_amounts.taxable_income)


@dataclass(frozen=True)
class StatutoryDeductionResult:
    code: str
    name: str
    type: str
    employee_amount: Decimal
    employer_amount: Decimal
    calculation_method: str
    ytd_taxable_income: Optional[Decimal] = None
    ytd_tax_paid: Optional[Decimal] = None
    is_refund: bool = False
    tax_relief_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class CalculationContextSnapshot:
    """Context returned with a result for audit and display"""
    ytd_amounts: YtdStatutoryAmounts
    period_amounts: PeriodStatutoryAmounts
    opening_balances: OpeningBalances
    tax_year: int
    tax_calculation_method: str
    allow_mid_year_refunds: bool

    @classmethod
    def from_context(cls, context: CumulativeCalculationContext) -> 'CalculationContextSnapshot':
        return cls(
            ytd_amounts=context.ytd_amounts,
            period_amounts=context.period_amounts,
            opening_balances=context.opening_balances,
            tax_year=context.tax_year,
            tax_calculation_method=context.tax_calculation_method,
            allow_mid_year_refunds=context.allow_mid_year_refunds,
        )


@dataclass(frozen=True)
class OffCycleCalculationResult:
    """Result of a regular or off-cycle statutory calculation"""
    deductions: Tuple[StatutoryDeductionResult, ...]
    total_employee_deductions: Decimal
    total_employer_contributions: Decimal
    context: CalculationContextSnapshot
    tax_reliefs: Tuple[TaxReliefLine, ...] = ()
    total_taxable_income_reduction: Decimal = ZERO
    total_tax_credits: Decimal = ZERO
    adjusted_taxable_income: Decimal = ZERO
    gross_pay: Decimal = ZERO
    warnings: Tuple[str, ...] = ()

    def deduction(self, code: str) -> Optional[StatutoryDeductionResult]:
        return next((d for d in self.deductions if d.code == code), None)

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(self)


def _jsonable(value: Any) -> Any:
    """Decimals and dates become strings, dataclasses become dicts"""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value
