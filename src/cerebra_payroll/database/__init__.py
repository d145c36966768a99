from .db import engine, SessionLocal, Base, init_db
from .models import (
    StatutoryDeductionTypeDB,
    StatutoryRateBandDB,
    CountryTaxSettingsDB,
    TaxReliefRuleDB,
    TaxReliefSchemeDB,
    EmployeeReliefEnrollmentDB,
    PayPeriodDB,
    OpeningBalanceDB,
    PayrollRunDB,
    PayrollRunDeductionDB,
    PayrollRunReliefDB
)
from .repository import ReferenceDataRepository, PayPeriodRepository, PayrollHistoryRepository, as_of

__all__ = [
    'engine',
    'SessionLocal',
    'Base',
    'init_db',
    'StatutoryDeductionTypeDB',
    'StatutoryRateBandDB',
    'CountryTaxSettingsDB',
    'TaxReliefRuleDB',
    'TaxReliefSchemeDB',
    'EmployeeReliefEnrollmentDB',
    'PayPeriodDB',
    'OpeningBalanceDB',
    'PayrollRunDB',
    'PayrollRunDeductionDB',
    'PayrollRunReliefDB',
    'ReferenceDataRepository',
    'PayPeriodRepository',
    'PayrollHistoryRepository',
    'as_of'
]
