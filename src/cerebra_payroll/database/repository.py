from sqlalchemy.orm import Session, selectinload
from sqlalchemy import and_, or_
from typing import Dict, Iterable, List, Optional
from datetime import date
import json
import logging

from .models import (
    StatutoryDeductionTypeDB, StatutoryRateBandDB, CountryTaxSettingsDB,
    TaxReliefRuleDB, TaxReliefSchemeDB, EmployeeReliefEnrollmentDB,
    PayPeriodDB, OpeningBalanceDB, PayrollRunDB, PayrollRunDeductionDB, PayrollRunReliefDB
)
from ..exceptions import InvalidCalculationInputError, ReferenceDataError
from ..models.statutory import (
    StatutoryDeductionType, StatutoryRateBand, CountryTaxSettings, PayPeriod
)
from ..models.relief import (
    TaxReliefRule, TaxReliefScheme, EmployeeReliefEnrollment, ReliefTier
)
from ..models.calculation import OffCycleCalculationResult
from ..utils.money import ZERO, parse_decimal

logger = logging.getLogger(__name__)


def as_of(query, model, effective_date: date):
    """Restrict an effective-dated query to rows valid on the given date"""
    if not isinstance(effective_date, date):
        raise InvalidCalculationInputError(f"Effective date must be a date, got {effective_date!r}")
    return query.filter(
        and_(
            model.effective_from <= effective_date,
            or_(model.effective_to.is_(None), model.effective_to >= effective_date)
        )
    )


def _column(row, column: str, default=ZERO):
    return parse_decimal(getattr(row, column), f"{row.__tablename__}.{column}", default)


def _optional_column(row, column: str):
    return _column(row, column, default=None)


def _tiers(row: TaxReliefSchemeDB) -> tuple:
    source = f"{row.__tablename__}.tiers_json of {row.scheme_code}"
    try:
        tiers = json.loads(row.tiers_json or '[]')
    except ValueError:
        raise ReferenceDataError(f"Invalid JSON in {source}")
    if not isinstance(tiers, list) or not all(isinstance(tier, dict) for tier in tiers):
        raise ReferenceDataError(f"{source} must be a list of tier objects")
    return tuple(
        ReliefTier(up_to=parse_decimal(tier.get('up_to'), source, default=None),
                   percentage=parse_decimal(tier.get('percentage'), source))
        for tier in tiers
    )


def _amounts_json(amounts: Optional[dict], name: str) -> str:
    return json.dumps({code: str(parse_decimal(value, f"{name}[{code}]")) for code, value in (amounts or {}).items()})


def _require_country(country: str) -> str:
    if not country or not str(country).strip():
        raise InvalidCalculationInputError("Country code is required")
    return str(country).strip().upper()


class ReferenceDataRepository:
    """Read-only, effective-dated access to statutory and relief reference data"""

    def __init__(self, db_session: Session):
        self.db = db_session

    # ========== Statutory Types & Bands ==========

    def get_statutory_types(self, country: str, effective_date: date) -> List[StatutoryDeductionType]:
        """Statutory deduction types active for a country on a date"""
        country = _require_country(country)
        query = self.db.query(StatutoryDeductionTypeDB).filter(StatutoryDeductionTypeDB.country == country)
        rows = as_of(query, StatutoryDeductionTypeDB, effective_date).order_by(
            StatutoryDeductionTypeDB.display_order, StatutoryDeductionTypeDB.statutory_code
        ).all()
        return [self._to_statutory_type(row) for row in rows]

    def get_rate_bands(self, statutory_type_ids: Iterable[int],
                       effective_date: date) -> Dict[int, List[StatutoryRateBand]]:
        """Rate bands per statutory type, ordered by lower bound"""
        type_ids = list(statutory_type_ids)
        bands: Dict[int, List[StatutoryRateBand]] = {type_id: [] for type_id in type_ids}
        if not type_ids:
            return bands
        query = self.db.query(StatutoryRateBandDB).filter(StatutoryRateBandDB.statutory_type_id.in_(type_ids))
        rows = as_of(query, StatutoryRateBandDB, effective_date).order_by(
            StatutoryRateBandDB.statutory_type_id,
            StatutoryRateBandDB.min_amount,
            StatutoryRateBandDB.display_order
        ).all()
        for row in rows:
            bands[row.statutory_type_id].append(self._to_rate_band(row))
        return bands

    def get_country_tax_settings(self, country: str, effective_date: date) -> List[CountryTaxSettings]:
        """All settings records active on the date, newest first"""
        country = _require_country(country)
        query = self.db.query(CountryTaxSettingsDB).filter(CountryTaxSettingsDB.country == country)
        rows = as_of(query, CountryTaxSettingsDB, effective_date).order_by(
            CountryTaxSettingsDB.effective_from.desc(), CountryTaxSettingsDB.id.desc()
        ).all()
        return [
            CountryTaxSettings(
                country=row.country,
                tax_calculation_method=row.tax_calculation_method,
                allow_mid_year_refunds=bool(row.allow_mid_year_refunds),
                refund_method=row.refund_method or 'automatic',
                refund_display_type=row.refund_display_type or 'reduced_tax',
                refund_line_item_label=row.refund_line_item_label or 'PAYE Refund',
                effective_from=row.effective_from,
                effective_to=row.effective_to,
            )
            for row in rows
        ]

    # ========== Relief ==========

    def get_relief_rules(self, country: str, effective_date: date) -> List[TaxReliefRule]:
        country = _require_country(country)
        query = self.db.query(TaxReliefRuleDB).filter(TaxReliefRuleDB.country == country)
        rows = as_of(query, TaxReliefRuleDB, effective_date).order_by(TaxReliefRuleDB.statutory_type_code).all()
        return [
            TaxReliefRule(
                id=row.id,
                country=row.country,
                statutory_type_code=row.statutory_type_code,
                statutory_type_name=row.statutory_type_name,
                relief_percentage=_column(row, 'relief_percentage'),
                annual_cap=_optional_column(row, 'annual_cap'),
                monthly_cap=_optional_column(row, 'monthly_cap'),
                applies_to_employee_contribution=bool(row.applies_to_employee_contribution),
                applies_to_employer_contribution=bool(row.applies_to_employer_contribution),
                effective_from=row.effective_from,
                effective_to=row.effective_to,
                legal_reference=row.legal_reference,
            )
            for row in rows
        ]

    def get_relief_schemes(self, country: str, effective_date: date) -> List[TaxReliefScheme]:
        country = _require_country(country)
        query = self.db.query(TaxReliefSchemeDB).filter(TaxReliefSchemeDB.country == country)
        rows = as_of(query, TaxReliefSchemeDB, effective_date).order_by(TaxReliefSchemeDB.scheme_code).all()
        return [self._to_relief_scheme(row) for row in rows]

    def get_employee_enrollments(self, employee_id: str, effective_date: date) -> List[EmployeeReliefEnrollment]:
        query = self.db.query(EmployeeReliefEnrollmentDB).filter(
            EmployeeReliefEnrollmentDB.employee_id == employee_id
        )
        rows = as_of(query, EmployeeReliefEnrollmentDB, effective_date).all()
        return [
            EmployeeReliefEnrollment(
                id=row.id,
                employee_id=row.employee_id,
                scheme_id=row.scheme_id,
                status=row.status,
                declared_amount=_column(row, 'declared_amount'),
                proof_verified=bool(row.proof_verified),
                effective_from=row.effective_from,
                effective_to=row.effective_to,
            )
            for row in rows
        ]

    # ========== Helper Methods ==========

    def _to_statutory_type(self, row: StatutoryDeductionTypeDB) -> StatutoryDeductionType:
        return StatutoryDeductionType(
            id=row.id,
            country=row.country,
            statutory_type=row.statutory_type,
            statutory_code=row.statutory_code,
            statutory_name=row.statutory_name,
            effective_from=row.effective_from,
            effective_to=row.effective_to,
            employee_portion=bool(row.employee_portion),
            employer_portion=bool(row.employer_portion),
            employee_annual_cap=_optional_column(row, 'employee_annual_cap'),
            employer_annual_cap=_optional_column(row, 'employer_annual_cap'),
            display_order=row.display_order or 0,
        )

    def _to_rate_band(self, row: StatutoryRateBandDB) -> StatutoryRateBand:
        return StatutoryRateBand(
            id=row.id,
            statutory_type_id=row.statutory_type_id,
            min_amount=_column(row, 'min_amount'),
            max_amount=_optional_column(row, 'max_amount'),
            employee_rate=_column(row, 'employee_rate'),
            employer_rate=_column(row, 'employer_rate'),
            calculation_method=row.calculation_method or 'percentage',
            per_monday_amount=_column(row, 'per_monday_amount'),
            employer_per_monday_amount=_column(row, 'employer_per_monday_amount'),
            fixed_amount=_column(row, 'fixed_amount'),
            employer_fixed_amount=_column(row, 'employer_fixed_amount'),
            min_age=row.min_age,
            max_age=row.max_age,
            pay_frequency=row.pay_frequency or 'monthly',
            band_name=row.band_name or '',
            display_order=row.display_order or 0,
            effective_from=row.effective_from,
            effective_to=row.effective_to,
        )

    def _to_relief_scheme(self, row: TaxReliefSchemeDB) -> TaxReliefScheme:
        return TaxReliefScheme(
            id=row.id,
            country=row.country,
            scheme_code=row.scheme_code,
            scheme_name=row.scheme_name,
            scheme_category=row.scheme_category,
            relief_type=row.relief_type,
            calculation_method=row.calculation_method,
            relief_value=_optional_column(row, 'relief_value'),
            relief_percentage=_optional_column(row, 'relief_percentage'),
            tiers=_tiers(row),
            annual_cap=_optional_column(row, 'annual_cap'),
            monthly_cap=_optional_column(row, 'monthly_cap'),
            min_age=row.min_age,
            max_age=row.max_age,
            requires_proof=bool(row.requires_proof),
            effective_from=row.effective_from,
            effective_to=row.effective_to,
        )


class PayPeriodRepository:
    """Pay calendar lookups"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_pay_period(self, pay_period_id: int) -> Optional[PayPeriod]:
        row = self.db.query(PayPeriodDB).filter_by(id=pay_period_id).first()
        if not row:
            return None
        return PayPeriod(
            id=row.id,
            period_start=row.period_start,
            period_end=row.period_end,
            pay_frequency=row.pay_frequency or 'monthly',
            monday_count=row.monday_count,
        )

    def save_pay_period(self, period_start: date, period_end: date,
                        pay_frequency: str = 'monthly', monday_count: Optional[int] = None) -> PayPeriodDB:
        period = PayPeriodDB(
            period_start=period_start,
            period_end=period_end,
            pay_frequency=pay_frequency,
            monday_count=monday_count
        )
        self.db.add(period)
        self.db.commit()
        self.db.refresh(period)
        return period


class PayrollHistoryRepository:
    """Payroll run history used for YTD and period aggregation"""

    def __init__(self, db_session: Session):
        self.db = db_session

    # ========== Run Queries ==========

    def get_runs_before(self, employee_id: str, tax_year: int, before: date,
                        exclude_run_id: Optional[str] = None) -> List[PayrollRunDB]:
        """Runs of the tax year in periods starting before the given date"""
        query = self._runs_for(employee_id, exclude_run_id).filter(
            and_(
                PayrollRunDB.tax_year == tax_year,
                PayrollRunDB.pay_period_start < before
            )
        )
        return query.order_by(PayrollRunDB.pay_period_start, PayrollRunDB.created_at).all()

    def get_runs_in_period(self, employee_id: str, period_start: date, period_end: date,
                           exclude_run_id: Optional[str] = None) -> List[PayrollRunDB]:
        """Runs whose period starts inside [period_start, period_end]"""
        query = self._runs_for(employee_id, exclude_run_id).filter(
            and_(
                PayrollRunDB.pay_period_start >= period_start,
                PayrollRunDB.pay_period_start <= period_end
            )
        )
        return query.order_by(PayrollRunDB.created_at).all()

    def get_runs(self, employee_id: str, tax_year: Optional[int] = None) -> List[PayrollRunDB]:
        query = self._runs_for(employee_id, None)
        if tax_year:
            query = query.filter_by(tax_year=tax_year)
        return query.order_by(PayrollRunDB.pay_period_start, PayrollRunDB.created_at).all()

    def get_opening_balance(self, employee_id: str, tax_year: int) -> Optional[OpeningBalanceDB]:
        return self.db.query(OpeningBalanceDB).filter(
            and_(
                OpeningBalanceDB.employee_id == employee_id,
                OpeningBalanceDB.tax_year == tax_year
            )
        ).first()

    # ========== Writes (caller side) ==========

    def save_opening_balance(self, employee_id: str, tax_year: int, effective_date: date,
                             ytd_gross_earnings=0, ytd_taxable_income=0, ytd_income_tax=0,
                             statutory: Optional[dict] = None, employer_statutory: Optional[dict] = None,
                             relief_claimed: Optional[dict] = None,
                             previous_employer_name: Optional[str] = None) -> OpeningBalanceDB:
        """Save opening balances; set once per employee and tax year"""
        balance = OpeningBalanceDB(
            employee_id=employee_id,
            tax_year=tax_year,
            effective_date=effective_date,
            previous_employer_name=previous_employer_name,
            ytd_gross_earnings=parse_decimal(ytd_gross_earnings, 'ytd_gross_earnings'),
            ytd_taxable_income=parse_decimal(ytd_taxable_income, 'ytd_taxable_income'),
            ytd_income_tax=parse_decimal(ytd_income_tax, 'ytd_income_tax'),
            ytd_statutory_json=_amounts_json(statutory, 'statutory'),
            ytd_employer_statutory_json=_amounts_json(employer_statutory, 'employer_statutory'),
            ytd_relief_json=_amounts_json(relief_claimed, 'relief_claimed'),
        )
        self.db.add(balance)
        self.db.commit()
        self.db.refresh(balance)
        return balance

    def save_run(self, result: OffCycleCalculationResult, employee_id: str, country: str,
                 pay_period_start: date, pay_period_end: Optional[date] = None,
                 run_type: str = 'regular', pay_period_id: Optional[int] = None,
                 run_id: Optional[str] = None) -> PayrollRunDB:
        """Persist a calculation result with its deduction and relief lines"""
        run = PayrollRunDB(
            employee_id=employee_id,
            pay_period_id=pay_period_id,
            pay_period_start=pay_period_start,
            pay_period_end=pay_period_end,
            tax_year=result.context.tax_year,
            run_type=run_type,
            country=_require_country(country),
            gross_pay=result.gross_pay,
            taxable_income=result.adjusted_taxable_income,
        )
        if run_id:
            run.id = run_id
        self.db.add(run)
        self.db.flush()  # Get the ID

        for deduction in result.deductions:
            self.db.add(PayrollRunDeductionDB(
                payroll_run_id=run.id,
                statutory_code=deduction.code,
                statutory_type=deduction.type,
                employee_amount=deduction.employee_amount,
                employer_amount=deduction.employer_amount,
                is_refund=deduction.is_refund
            ))

        for relief in result.tax_reliefs:
            self.db.add(PayrollRunReliefDB(
                payroll_run_id=run.id,
                relief_code=relief.code,
                source=relief.source,
                relief_type=relief.relief_type,
                amount=relief.amount
            ))

        self.db.commit()
        self.db.refresh(run)
        logger.info("Saved %s run %s for employee %s", run_type, run.id, employee_id)
        return run

    def delete_run(self, run_id: str) -> bool:
        run = self.db.query(PayrollRunDB).filter_by(id=run_id).first()
        if not run:
            return False
        self.db.delete(run)
        self.db.commit()
        return True

    # ========== Helper Methods ==========

    def _runs_for(self, employee_id: str, exclude_run_id: Optional[str]):
        query = self.db.query(PayrollRunDB).options(
            selectinload(PayrollRunDB.deductions),
            selectinload(PayrollRunDB.reliefs)
        ).filter(PayrollRunDB.employee_id == employee_id)
        if exclude_run_id:
            query = query.filter(PayrollRunDB.id != exclude_run_id)
        return query
