import json
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional

from ..database.models import PayrollRunDB, OpeningBalanceDB
from ..database.repository import PayrollHistoryRepository
from ..exceptions import ReferenceDataError
from ..models.calculation import YtdStatutoryAmounts, PeriodStatutoryAmounts, OpeningBalances
from ..utils.money import ZERO, to_decimal, parse_decimal, non_negative

logger = logging.getLogger(__name__)


def aggregate_runs(runs: Iterable[PayrollRunDB]) -> dict:
    """Sum gross, taxable income, deduction and relief lines of payroll runs"""
    gross = ZERO
    taxable = ZERO
    employee: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    employer: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    relief: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    count = 0

    for run in runs:
        count += 1
        gross += to_decimal(run.gross_pay)
        taxable += to_decimal(run.taxable_income)
        for line in run.deductions:
            # Refund lines carry negative employee amounts and net off naturally
            employee[line.statutory_code] += to_decimal(line.employee_amount)
            employer[line.statutory_code] += to_decimal(line.employer_amount)
        for line in run.reliefs:
            relief[line.relief_code] += to_decimal(line.amount)

    return {
        'gross_pay': non_negative(gross),
        'taxable_income': non_negative(taxable),
        'employee_amounts': {code: non_negative(v) for code, v in employee.items()},
        'employer_amounts': {code: non_negative(v) for code, v in employer.items()},
        'relief_claimed': {code: non_negative(v) for code, v in relief.items()},
        'run_count': count,
    }


class YtdStatutoryService:
    """Year-to-date, in-period and opening-balance figures for an employee"""

    def __init__(self, repository: PayrollHistoryRepository):
        self.repo = repository

    def get_ytd_amounts(self, employee_id: str, tax_year: int, period_start: date,
                        exclude_run_id: Optional[str] = None) -> YtdStatutoryAmounts:
        """Totals of the tax year's runs in periods before the current one"""
        runs = self.repo.get_runs_before(employee_id, tax_year, period_start, exclude_run_id)
        totals = aggregate_runs(runs)
        logger.debug("YTD for %s in %s: %d prior runs", employee_id, tax_year, totals['run_count'])
        return YtdStatutoryAmounts(tax_year=tax_year, **totals)

    def get_period_amounts(self, employee_id: str, period_start: date, period_end: date,
                           exclude_run_id: Optional[str] = None,
                           pay_period_id: Optional[int] = None) -> PeriodStatutoryAmounts:
        """Totals already calculated within the current pay period"""
        runs = self.repo.get_runs_in_period(employee_id, period_start, period_end, exclude_run_id)
        totals = aggregate_runs(runs)
        return PeriodStatutoryAmounts(
            pay_period_id=pay_period_id,
            period_start=period_start,
            period_end=period_end,
            **totals
        )

    def get_opening_balances(self, employee_id: str, tax_year: int) -> OpeningBalances:
        row = self.repo.get_opening_balance(employee_id, tax_year)
        if row is None:
            return OpeningBalances.empty(employee_id, tax_year)
        return opening_balances_from_row(row)


def empty_period_amounts(period_start: Optional[date] = None) -> PeriodStatutoryAmounts:
    """Regular runs never share a period with another run"""
    return PeriodStatutoryAmounts(period_start=period_start)


def opening_balances_from_row(row: OpeningBalanceDB) -> OpeningBalances:
    return OpeningBalances(
        employee_id=row.employee_id,
        tax_year=row.tax_year,
        ytd_gross_earnings=non_negative(parse_decimal(row.ytd_gross_earnings, 'opening balance ytd_gross_earnings')),
        ytd_taxable_income=non_negative(parse_decimal(row.ytd_taxable_income, 'opening balance ytd_taxable_income')),
        ytd_income_tax=non_negative(parse_decimal(row.ytd_income_tax, 'opening balance ytd_income_tax')),
        statutory=_decimal_map(row.ytd_statutory_json, 'ytd_statutory_json'),
        employer_statutory=_decimal_map(row.ytd_employer_statutory_json, 'ytd_employer_statutory_json'),
        relief_claimed=_decimal_map(row.ytd_relief_json, 'ytd_relief_json'),
        previous_employer_name=row.previous_employer_name,
    )


def _decimal_map(raw: Optional[str], column: str) -> Dict[str, Decimal]:
    try:
        amounts = json.loads(raw or '{}')
    except ValueError:
        raise ReferenceDataError(f"Invalid JSON in opening balance {column}")
    if not isinstance(amounts, dict):
        raise ReferenceDataError(f"Opening balance {column} must be an object of amounts")
    return {code: non_negative(parse_decimal(value, f"opening balance {column}[{code}]"))
            for code, value in amounts.items()}
