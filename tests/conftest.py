import os
import tempfile
from datetime import date
from decimal import Decimal

import pytest

# Settings are read at import time; keep every test artefact out of the repo
_TMP = tempfile.mkdtemp(prefix="cerebra_payroll_tests_")
os.environ.setdefault("DATA_DIR", os.path.join(_TMP, "data"))
os.environ.setdefault("OUTPUT_DIR", os.path.join(_TMP, "output"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TMP, 'default.db')}")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from cerebra_payroll.database.db import init_db  # noqa: E402
from cerebra_payroll.database.models import (  # noqa: E402
    StatutoryDeductionTypeDB, StatutoryRateBandDB, CountryTaxSettingsDB, TaxReliefRuleDB,
    TaxReliefSchemeDB, EmployeeReliefEnrollmentDB, PayPeriodDB
)

YEAR_START = date(2024, 1, 1)


class ReferenceBuilder:
    """Insert reference rows for a test country"""

    def __init__(self, session, country="XX"):
        self.session = session
        self.country = country

    def statutory_type(self, code, statutory_type="income_tax", bands=(), effective_from=YEAR_START, **kwargs):
        row = StatutoryDeductionTypeDB(
            country=kwargs.pop("country", self.country),
            statutory_type=statutory_type,
            statutory_code=code,
            statutory_name=kwargs.pop("statutory_name", code.replace("_", " ").title()),
            effective_from=effective_from,
            **kwargs
        )
        for band in bands:
            band = dict(band)
            band.setdefault("effective_from", effective_from)
            row.rate_bands.append(StatutoryRateBandDB(**band))
        self.session.add(row)
        self.session.commit()
        return row

    def income_tax(self, code="INCOME_TAX", **kwargs):
        """Two annual bands: 0-50,000 at 10% and 50,000+ at 20%"""
        return self.statutory_type(code, "income_tax", bands=[
            {"min_amount": Decimal("0"), "max_amount": Decimal("50000"), "employee_rate": Decimal("10"),
             "employer_rate": Decimal("0"), "pay_frequency": "annual", "display_order": 0},
            {"min_amount": Decimal("50000"), "max_amount": None, "employee_rate": Decimal("20"),
             "employer_rate": Decimal("0"), "pay_frequency": "annual", "display_order": 1},
        ], employer_portion=False, **kwargs)

    def percentage_contribution(self, code="SOC", employee_rate="5", employer_rate="8", **kwargs):
        return self.statutory_type(code, "social_security", bands=[
            {"min_amount": Decimal("0"), "max_amount": None, "employee_rate": Decimal(employee_rate),
             "employer_rate": Decimal(employer_rate), "pay_frequency": "monthly"},
        ], **kwargs)

    def settings(self, effective_from=YEAR_START, **kwargs):
        kwargs.setdefault("tax_calculation_method", "cumulative")
        kwargs.setdefault("allow_mid_year_refunds", False)
        row = CountryTaxSettingsDB(country=self.country, effective_from=effective_from, **kwargs)
        self.session.add(row)
        self.session.commit()
        return row

    def relief_rule(self, code, percentage="100", **kwargs):
        row = TaxReliefRuleDB(
            country=self.country, statutory_type_code=code, statutory_type_name=code.title(),
            relief_percentage=Decimal(percentage), effective_from=kwargs.pop("effective_from", YEAR_START),
            **kwargs
        )
        self.session.add(row)
        self.session.commit()
        return row

    def scheme(self, code, relief_type="deduction", calculation_method="fixed_amount", **kwargs):
        row = TaxReliefSchemeDB(
            country=self.country, scheme_code=code, scheme_name=code.title(), relief_type=relief_type,
            calculation_method=calculation_method, effective_from=kwargs.pop("effective_from", YEAR_START),
            **kwargs
        )
        self.session.add(row)
        self.session.commit()
        return row

    def enroll(self, employee_id, scheme, **kwargs):
        kwargs.setdefault("status", "active")
        row = EmployeeReliefEnrollmentDB(
            employee_id=employee_id, scheme_id=scheme.id,
            effective_from=kwargs.pop("effective_from", YEAR_START), **kwargs
        )
        self.session.add(row)
        self.session.commit()
        return row

    def pay_period(self, start, end, pay_frequency="monthly", monday_count=None):
        row = PayPeriodDB(period_start=start, period_end=end, pay_frequency=pay_frequency,
                          monday_count=monday_count)
        self.session.add(row)
        self.session.commit()
        return row.id


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'payroll.db'}", connect_args={"check_same_thread": False})
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def reference(session):
    return ReferenceBuilder(session)
