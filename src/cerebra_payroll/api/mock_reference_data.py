import calendar
import json
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.orm import Session

from ..database.models import (
    StatutoryDeductionTypeDB, StatutoryRateBandDB, CountryTaxSettingsDB, TaxReliefRuleDB,
    TaxReliefSchemeDB, EmployeeReliefEnrollmentDB, PayPeriodDB
)
from ..utils.formatters import format_percentage
from ..utils.tax_year import count_mondays

logger = logging.getLogger(__name__)


class MockReferenceData:
    """Sample statutory setup for a Trinidad and Tobago style payroll"""

    COUNTRY = "TT"

    MOCK_EMPLOYEES = [
        {"employee_id": "TT-0001", "name": "Anya Ramdeen", "age": 34, "pension_contribution": Decimal('1500.00')},
        {"employee_id": "TT-0002", "name": "Marcus Baptiste", "age": 67, "pension_contribution": Decimal('0')},
        {"employee_id": "TT-0003", "name": "Kezia Charles", "age": 22, "pension_contribution": Decimal('400.00')},
    ]

    # Annual PAYE schedule; the first 90,000 is the personal allowance
    PAYE_BANDS = [
        (Decimal('0'), Decimal('90000'), Decimal('0')),
        (Decimal('90000'), Decimal('1000000'), Decimal('25')),
        (Decimal('1000000'), None, Decimal('30')),
    ]

    # Monthly earnings classes: (from, to, employee per Monday, employer per Monday)
    NIS_CLASSES = [
        (Decimal('0'), Decimal('3000'), Decimal('25.50'), Decimal('51.00')),
        (Decimal('3000'), Decimal('6000'), Decimal('58.90'), Decimal('117.80')),
        (Decimal('6000'), Decimal('12000'), Decimal('104.40'), Decimal('208.80')),
        (Decimal('12000'), None, Decimal('154.80'), Decimal('309.60')),
    ]

    HEALTH_SURCHARGE = [
        (Decimal('0'), Decimal('1885'), Decimal('4.80')),
        (Decimal('1885'), None, Decimal('8.25')),
    ]

    def __init__(self, tax_year: int = 2024):
        self.tax_year = tax_year
        self.effective_from = date(tax_year, 1, 1)

    def seed(self, session: Session) -> Dict[str, List[int]]:
        """Insert the sample setup unless the country is already configured"""
        existing = session.query(StatutoryDeductionTypeDB).filter_by(country=self.COUNTRY).first()
        if existing:
            logger.info("Reference data for %s already present", self.COUNTRY)
            return {"pay_periods": self._pay_period_ids(session)}

        self._seed_statutory_types(session)
        session.add(CountryTaxSettingsDB(
            country=self.COUNTRY,
            tax_calculation_method='cumulative',
            allow_mid_year_refunds=True,
            refund_method='automatic',
            refund_display_type='separate_line_item',
            refund_line_item_label='PAYE Refund',
            effective_from=self.effective_from,
        ))
        session.add(TaxReliefRuleDB(
            country=self.COUNTRY,
            statutory_type_code='NIS',
            statutory_type_name='National Insurance',
            relief_percentage=Decimal('70'),
            applies_to_employee_contribution=True,
            applies_to_employer_contribution=False,
            effective_from=self.effective_from,
            legal_reference='Income Tax Act s.134',
        ))
        self._seed_schemes(session)
        self._seed_pay_periods(session)
        session.commit()

        logger.info("Seeded reference data for %s, tax year %s", self.COUNTRY, self.tax_year)
        return {"pay_periods": self._pay_period_ids(session)}

    def _seed_statutory_types(self, session: Session):
        paye = StatutoryDeductionTypeDB(
            country=self.COUNTRY, statutory_type='income_tax', statutory_code='PAYE',
            statutory_name='Pay As You Earn', employer_portion=False,
            display_order=3, effective_from=self.effective_from,
        )
        for index, (low, high, rate) in enumerate(self.PAYE_BANDS):
            paye.rate_bands.append(StatutoryRateBandDB(
                band_name=f"PAYE {format_percentage(rate)}", min_amount=low, max_amount=high,
                employee_rate=rate, employer_rate=Decimal('0'), calculation_method='percentage',
                pay_frequency='annual', display_order=index, effective_from=self.effective_from,
            ))

        nis = StatutoryDeductionTypeDB(
            country=self.COUNTRY, statutory_type='national_insurance', statutory_code='NIS',
            statutory_name='National Insurance', display_order=1, effective_from=self.effective_from,
        )
        for index, (low, high, employee, employer) in enumerate(self.NIS_CLASSES):
            nis.rate_bands.append(StatutoryRateBandDB(
                band_name=f"Class {index + 1}", min_amount=low, max_amount=high,
                calculation_method='per_monday', per_monday_amount=employee,
                employer_per_monday_amount=employer, min_age=16, max_age=65,
                pay_frequency='monthly', display_order=index, effective_from=self.effective_from,
            ))

        health = StatutoryDeductionTypeDB(
            country=self.COUNTRY, statutory_type='health_insurance', statutory_code='HSUR',
            statutory_name='Health Surcharge', employer_portion=False,
            display_order=2, effective_from=self.effective_from,
        )
        for index, (low, high, weekly) in enumerate(self.HEALTH_SURCHARGE):
            health.rate_bands.append(StatutoryRateBandDB(
                band_name=f"Health surcharge {weekly}", min_amount=low, max_amount=high,
                calculation_method='per_monday', per_monday_amount=weekly,
                employer_per_monday_amount=Decimal('0'),
                pay_frequency='monthly', display_order=index, effective_from=self.effective_from,
            ))

        session.add_all([paye, nis, health])

    def _seed_schemes(self, session: Session):
        pension = TaxReliefSchemeDB(
            country=self.COUNTRY, scheme_code='PENSION', scheme_name='Approved pension plan',
            scheme_category='retirement', relief_type='deduction',
            calculation_method='percentage_of_contribution', relief_percentage=Decimal('100'),
            annual_cap=Decimal('60000'), monthly_cap=Decimal('5000'),
            effective_from=self.effective_from,
        )
        tertiary = TaxReliefSchemeDB(
            country=self.COUNTRY, scheme_code='TERTIARY', scheme_name='Tertiary education expenses',
            scheme_category='education', relief_type='deduction', calculation_method='tiered',
            tiers_json=json.dumps([
                {"up_to": "500", "percentage": "100"},
                {"up_to": None, "percentage": "50"},
            ]),
            annual_cap=Decimal('60000'), max_age=30, requires_proof=True,
            effective_from=self.effective_from,
        )
        session.add_all([pension, tertiary])
        session.flush()

        for employee in self.MOCK_EMPLOYEES:
            if employee["pension_contribution"] > 0:
                session.add(EmployeeReliefEnrollmentDB(
                    employee_id=employee["employee_id"], scheme_id=pension.id, status='active',
                    declared_amount=employee["pension_contribution"], effective_from=self.effective_from,
                ))
        session.add(EmployeeReliefEnrollmentDB(
            employee_id="TT-0003", scheme_id=tertiary.id, status='active',
            declared_amount=Decimal('800.00'), proof_verified=True, effective_from=self.effective_from,
        ))

    def _seed_pay_periods(self, session: Session):
        for month in range(1, 13):
            start = date(self.tax_year, month, 1)
            end = date(self.tax_year, month, calendar.monthrange(self.tax_year, month)[1])
            session.add(PayPeriodDB(
                period_start=start, period_end=end, pay_frequency='monthly',
                monday_count=count_mondays(start, end),
            ))

    def _pay_period_ids(self, session: Session) -> List[int]:
        rows = session.query(PayPeriodDB).filter(
            PayPeriodDB.period_start >= date(self.tax_year, 1, 1),
            PayPeriodDB.period_start <= date(self.tax_year, 12, 31)
        ).order_by(PayPeriodDB.period_start).all()
        return [row.id for row in rows]
