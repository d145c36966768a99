"""
Entry points for regular and off-cycle statutory calculations.

Both entry points read reference data and payroll history, build a
``CumulativeCalculationContext`` and hand it to the cumulative calculator.
Nothing is written; persisting the run is the caller's job, and the caller
must not run two calculations for the same employee and tax year at once.

Context reads are independent of each other and run concurrently, one
database session per read. If any read fails the error is raised and no
result is returned.
"""
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..config.settings import DEFAULT_MONDAY_COUNT, DEFAULT_PAY_FREQUENCY, FETCH_WORKERS
from ..database.db import SessionLocal
from ..database.repository import ReferenceDataRepository, PayPeriodRepository, PayrollHistoryRepository
from ..exceptions import InvalidCalculationInputError, PayPeriodNotFoundError
from ..models.calculation import CumulativeCalculationContext, OffCycleCalculationResult, PeriodStatutoryAmounts
from ..models.statutory import PayPeriod
from ..utils.money import ZERO, to_decimal
from ..utils.tax_year import get_tax_year_from_date, count_mondays
from ..utils.validators import validate_pay_frequency
from .country_tax_settings import resolve_country_tax_settings
from .cumulative_statutory_calculator import CumulativeStatutoryCalculator
from .tax_relief_calculator import TaxReliefCalculator
from .ytd_statutory_service import YtdStatutoryService, empty_period_amounts

logger = logging.getLogger(__name__)


class OffCycleStatutoryService:
    """Assemble calculation context and run the cumulative calculator"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal,
                 calculator: Optional[CumulativeStatutoryCalculator] = None,
                 relief_calculator: Optional[TaxReliefCalculator] = None,
                 max_workers: int = FETCH_WORKERS):
        self.session_factory = session_factory
        self.calculator = calculator or CumulativeStatutoryCalculator()
        self.relief_calculator = relief_calculator or TaxReliefCalculator()
        self.max_workers = max_workers

    def calculate_off_cycle_statutory(self, employee_id: str, pay_period_id: int, gross_pay,
                                      country_code: str, exclude_run_id: Optional[str] = None,
                                      monday_count: Optional[int] = None,
                                      employee_age: Optional[int] = None) -> OffCycleCalculationResult:
        """Statutory deductions for a supplemental run inside an existing pay period"""
        gross, country = _validate(employee_id, gross_pay, country_code)

        period = self._run_in_session(lambda s: PayPeriodRepository(s).get_pay_period(pay_period_id))
        if period is None:
            raise PayPeriodNotFoundError(pay_period_id)

        tax_year = get_tax_year_from_date(period.period_start)
        logger.info("Off-cycle calculation for %s: period %s (%s to %s), tax year %s, gross %s",
                    employee_id, period.id, period.period_start, period.period_end, tax_year, gross)

        fetched = self._fetch_context(
            employee_id, country, tax_year, period.period_start, exclude_run_id,
            period_fetch=lambda s: YtdStatutoryService(PayrollHistoryRepository(s)).get_period_amounts(
                employee_id, period.period_start, period.period_end, exclude_run_id, period.id
            ),
        )
        return self._calculate(
            employee_id, gross, country, tax_year, period.period_start, fetched,
            is_off_cycle=True,
            pay_frequency=period.pay_frequency or DEFAULT_PAY_FREQUENCY,
            monday_count=_monday_count(monday_count, period),
            employee_age=employee_age,
        )

    def calculate_regular_statutory(self, employee_id: str, pay_period_start: date, gross_pay,
                                    country_code: str, exclude_run_id: Optional[str] = None,
                                    monday_count: Optional[int] = None,
                                    employee_age: Optional[int] = None,
                                    pay_frequency: str = DEFAULT_PAY_FREQUENCY) -> OffCycleCalculationResult:
        """Statutory deductions for the regular run of a period starting on pay_period_start"""
        gross, country = _validate(employee_id, gross_pay, country_code)
        if not validate_pay_frequency(pay_frequency):
            raise InvalidCalculationInputError(f"Unknown pay frequency '{pay_frequency}'")

        tax_year = get_tax_year_from_date(pay_period_start)
        logger.info("Regular calculation for %s: period starting %s, tax year %s, gross %s",
                    employee_id, pay_period_start, tax_year, gross)

        fetched = self._fetch_context(employee_id, country, tax_year, pay_period_start, exclude_run_id)
        return self._calculate(
            employee_id, gross, country, tax_year, pay_period_start, fetched,
            is_off_cycle=False,
            pay_frequency=pay_frequency,
            monday_count=monday_count if monday_count is not None else DEFAULT_MONDAY_COUNT,
            employee_age=employee_age,
        )

    # ========== Context ==========

    def _fetch_context(self, employee_id: str, country: str, tax_year: int, effective_date: date,
                       exclude_run_id: Optional[str],
                       period_fetch: Optional[Callable[[Session], PeriodStatutoryAmounts]] = None) -> Dict:
        """Run the independent context reads concurrently and wait for all of them"""

        def statutory(session):
            repo = ReferenceDataRepository(session)
            types = repo.get_statutory_types(country, effective_date)
            return types, repo.get_rate_bands([t.id for t in types], effective_date)

        branches = {
            'ytd': lambda s: YtdStatutoryService(PayrollHistoryRepository(s)).get_ytd_amounts(
                employee_id, tax_year, effective_date, exclude_run_id
            ),
            'opening': lambda s: YtdStatutoryService(PayrollHistoryRepository(s)).get_opening_balances(
                employee_id, tax_year
            ),
            'statutory': statutory,
            'settings': lambda s: ReferenceDataRepository(s).get_country_tax_settings(country, effective_date),
            'relief_rules': lambda s: ReferenceDataRepository(s).get_relief_rules(country, effective_date),
            'relief_schemes': lambda s: ReferenceDataRepository(s).get_relief_schemes(country, effective_date),
            'enrollments': lambda s: ReferenceDataRepository(s).get_employee_enrollments(employee_id, effective_date),
        }
        if period_fetch is not None:
            branches['period'] = period_fetch

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {name: executor.submit(self._run_in_session, fetch) for name, fetch in branches.items()}
            fetched = {name: future.result() for name, future in futures.items()}

        if period_fetch is None:
            fetched['period'] = empty_period_amounts(effective_date)
        return fetched

    def _run_in_session(self, fetch: Callable[[Session], object]):
        with self.session_factory() as session:
            return fetch(session)

    def _calculate(self, employee_id: str, gross: Decimal, country: str, tax_year: int,
                   effective_date: date, fetched: Dict, is_off_cycle: bool, pay_frequency: str,
                   monday_count: int, employee_age: Optional[int]) -> OffCycleCalculationResult:
        opening = fetched['opening']
        ytd = fetched['ytd']
        period = fetched['period']
        statutory_types, rate_bands = fetched['statutory']

        settings = resolve_country_tax_settings(country, effective_date, fetched['settings'])
        relief_context = self.relief_calculator.resolve(
            fetched['relief_rules'],
            fetched['relief_schemes'],
            fetched['enrollments'],
            effective_date,
            employee_age=employee_age,
            ytd_relief_claimed=_merge_amounts(opening.relief_claimed, ytd.relief_claimed),
            period_relief_claimed=period.relief_claimed,
        )

        context = CumulativeCalculationContext(
            employee_id=employee_id,
            tax_year=tax_year,
            effective_date=effective_date,
            opening_balances=opening,
            ytd_amounts=ytd,
            period_amounts=period,
            settings=settings,
            relief_context=relief_context,
            is_off_cycle=is_off_cycle,
            pay_frequency=pay_frequency,
        )
        result = self.calculator.calculate(
            gross, statutory_types, rate_bands, context,
            employee_age=employee_age, monday_count=monday_count,
        )
        logger.info("Calculated %s for %s in %s: employee %s, employer %s, %d warnings",
                    'off-cycle' if is_off_cycle else 'regular', employee_id, tax_year,
                    result.total_employee_deductions, result.total_employer_contributions,
                    len(result.warnings))
        return result


def _validate(employee_id: str, gross_pay, country_code: str):
    if not employee_id:
        raise InvalidCalculationInputError("Employee id is required")
    if not country_code or not str(country_code).strip():
        raise InvalidCalculationInputError("Country code is required")
    gross = to_decimal(gross_pay, None)
    if gross is None or not gross.is_finite():
        raise InvalidCalculationInputError(f"Gross pay must be a number, got {gross_pay!r}")
    if gross < ZERO:
        raise InvalidCalculationInputError(f"Gross pay cannot be negative: {gross}")
    return gross, str(country_code).strip().upper()


def _monday_count(requested: Optional[int], period: PayPeriod) -> int:
    if requested is not None:
        return requested
    if period.monday_count is not None:
        return period.monday_count
    counted = count_mondays(period.period_start, period.period_end)
    return counted or DEFAULT_MONDAY_COUNT


def _merge_amounts(*maps: Dict[str, Decimal]) -> Dict[str, Decimal]:
    merged: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for amounts in maps:
        for code, amount in amounts.items():
            merged[code] += amount
    return dict(merged)


def calculate_off_cycle_statutory(employee_id: str, pay_period_id: int, gross_pay, country_code: str,
                                  exclude_run_id: Optional[str] = None, monday_count: Optional[int] = None,
                                  employee_age: Optional[int] = None) -> OffCycleCalculationResult:
    return OffCycleStatutoryService().calculate_off_cycle_statutory(
        employee_id, pay_period_id, gross_pay, country_code,
        exclude_run_id=exclude_run_id, monday_count=monday_count, employee_age=employee_age,
    )


def calculate_regular_statutory(employee_id: str, pay_period_start: date, gross_pay, country_code: str,
                                exclude_run_id: Optional[str] = None, monday_count: Optional[int] = None,
                                employee_age: Optional[int] = None,
                                pay_frequency: str = DEFAULT_PAY_FREQUENCY) -> OffCycleCalculationResult:
    return OffCycleStatutoryService().calculate_regular_statutory(
        employee_id, pay_period_start, gross_pay, country_code,
        exclude_run_id=exclude_run_id, monday_count=monday_count,
        employee_age=employee_age, pay_frequency=pay_frequency,
    )
