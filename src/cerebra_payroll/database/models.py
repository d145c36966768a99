import uuid
from sqlalchemy import (
    Column, Integer, String, Date, Numeric, Text, DateTime, Boolean, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base


class EffectiveDatedMixin:
    """Validity window shared by every effective-dated reference table"""
    effective_from = Column(Date, nullable=False, index=True)
    effective_to = Column(Date, nullable=True, index=True)


class StatutoryDeductionTypeDB(EffectiveDatedMixin, Base):
    """Statutory deduction category for a country"""
    __tablename__ = "statutory_deduction_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    country = Column(String(2), nullable=False, index=True)
    statutory_type = Column(String(30), nullable=False)  # 'income_tax', 'social_security', ...
    statutory_code = Column(String(20), nullable=False)
    statutory_name = Column(String(255), nullable=False)
    description = Column(Text)

    employee_portion = Column(Boolean, default=True, nullable=False)
    employer_portion = Column(Boolean, default=True, nullable=False)
    employee_annual_cap = Column(Numeric(12, 2))
    employer_annual_cap = Column(Numeric(12, 2))
    display_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    rate_bands = relationship("StatutoryRateBandDB", back_populates="statutory_type_ref",
                              cascade="all, delete-orphan")

    def __repr__(self):
        return f"<StatutoryDeductionType(country={self.country}, code={self.statutory_code})>"


class StatutoryRateBandDB(EffectiveDatedMixin, Base):
    """One bracket of a statutory schedule"""
    __tablename__ = "statutory_rate_bands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    statutory_type_id = Column(Integer, ForeignKey('statutory_deduction_types.id'), nullable=False, index=True)
    band_name = Column(String(100))

    # Income range
    min_amount = Column(Numeric(14, 2), nullable=False, default=0)
    max_amount = Column(Numeric(14, 2))  # NULL = unbounded

    # Rates are percentages
    employee_rate = Column(Numeric(9, 4))
    employer_rate = Column(Numeric(9, 4))

    calculation_method = Column(String(20), nullable=False, default='percentage')  # 'percentage', 'per_monday', 'fixed'
    per_monday_amount = Column(Numeric(12, 2))
    employer_per_monday_amount = Column(Numeric(12, 2))
    fixed_amount = Column(Numeric(12, 2))
    employer_fixed_amount = Column(Numeric(12, 2))

    # Age gating
    min_age = Column(Integer)
    max_age = Column(Integer)

    pay_frequency = Column(String(20), nullable=False, default='monthly')
    display_order = Column(Integer, default=0, nullable=False)
    notes = Column(Text)

    # Relationships
    statutory_type_ref = relationship("StatutoryDeductionTypeDB", back_populates="rate_bands")

    def __repr__(self):
        return f"<StatutoryRateBand(type={self.statutory_type_id}, {self.min_amount}-{self.max_amount})>"


class CountryTaxSettingsDB(EffectiveDatedMixin, Base):
    """Per-country tax calculation policy"""
    __tablename__ = "country_tax_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    country = Column(String(2), nullable=False, index=True)
    tax_calculation_method = Column(String(20), nullable=False, default='cumulative')
    allow_mid_year_refunds = Column(Boolean, nullable=False, default=True)
    refund_method = Column(String(20), nullable=False, default='automatic')
    refund_display_type = Column(String(30), nullable=False, default='reduced_tax')
    refund_line_item_label = Column(String(100))
    description = Column(Text)

    def __repr__(self):
        return f"<CountryTaxSettings(country={self.country}, method={self.tax_calculation_method})>"


class TaxReliefRuleDB(EffectiveDatedMixin, Base):
    """Automatic relief on a statutory contribution"""
    __tablename__ = "tax_relief_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    country = Column(String(2), nullable=False, index=True)
    statutory_type_code = Column(String(20), nullable=False)
    statutory_type_name = Column(String(255), nullable=False)
    relief_percentage = Column(Numeric(7, 4), nullable=False, default=100)
    annual_cap = Column(Numeric(12, 2))
    monthly_cap = Column(Numeric(12, 2))
    applies_to_employee_contribution = Column(Boolean, nullable=False, default=True)
    applies_to_employer_contribution = Column(Boolean, nullable=False, default=False)
    description = Column(Text)
    legal_reference = Column(String(255))

    def __repr__(self):
        return f"<TaxReliefRule(country={self.country}, code={self.statutory_type_code})>"


class TaxReliefSchemeDB(EffectiveDatedMixin, Base):
    """Relief programme employees can enrol in"""
    __tablename__ = "tax_relief_schemes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    country = Column(String(2), nullable=False, index=True)
    scheme_code = Column(String(30), nullable=False)
    scheme_name = Column(String(255), nullable=False)
    scheme_category = Column(String(30))
    relief_type = Column(String(20), nullable=False)  # 'deduction', 'credit', 'exemption', 'reduced_rate'
    calculation_method = Column(String(30), nullable=False)
    relief_value = Column(Numeric(12, 2))
    relief_percentage = Column(Numeric(7, 4))
    tiers_json = Column(Text)  # [{"up_to": "1000", "percentage": "100"}, ...]
    annual_cap = Column(Numeric(12, 2))
    monthly_cap = Column(Numeric(12, 2))
    min_age = Column(Integer)
    max_age = Column(Integer)
    requires_proof = Column(Boolean, nullable=False, default=False)
    description = Column(Text)
    legal_reference = Column(String(255))

    # Relationships
    enrollments = relationship("EmployeeReliefEnrollmentDB", back_populates="scheme")

    def __repr__(self):
        return f"<TaxReliefScheme(country={self.country}, code={self.scheme_code})>"


class EmployeeReliefEnrollmentDB(EffectiveDatedMixin, Base):
    """Employee enrolment in a relief scheme"""
    __tablename__ = "employee_relief_enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String, nullable=False, index=True)
    scheme_id = Column(Integer, ForeignKey('tax_relief_schemes.id'), nullable=False)
    status = Column(String(20), nullable=False, default='active')  # 'active', 'suspended', 'ended'
    declared_amount = Column(Numeric(12, 2), default=0)
    proof_verified = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)

    # Relationships
    scheme = relationship("TaxReliefSchemeDB", back_populates="enrollments")

    def __repr__(self):
        return f"<EmployeeReliefEnrollment(employee={self.employee_id}, scheme={self.scheme_id})>"


class PayPeriodDB(Base):
    """Pay calendar period"""
    __tablename__ = "pay_periods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_start = Column(Date, nullable=False, index=True)
    period_end = Column(Date, nullable=False)
    pay_frequency = Column(String(20), nullable=False, default='monthly')
    monday_count = Column(Integer)

    def __repr__(self):
        return f"<PayPeriod(id={self.id}, {self.period_start} - {self.period_end})>"


class OpeningBalanceDB(Base):
    """Carried-forward YTD balances for an employee and tax year"""
    __tablename__ = "employee_opening_balances"
    __table_args__ = (UniqueConstraint('employee_id', 'tax_year', name='uq_opening_balance_employee_year'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String, nullable=False, index=True)
    tax_year = Column(Integer, nullable=False, index=True)
    effective_date = Column(Date, nullable=False)
    previous_employer_name = Column(String(255))
    previous_employer_tax_number = Column(String(50))

    ytd_gross_earnings = Column(Numeric(14, 2), default=0)
    ytd_taxable_income = Column(Numeric(14, 2), default=0)
    ytd_income_tax = Column(Numeric(14, 2), default=0)

    # Per statutory code amounts stored as JSON
    ytd_statutory_json = Column(Text)
    ytd_employer_statutory_json = Column(Text)
    ytd_relief_json = Column(Text)

    import_source = Column(String(30), default='manual')
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<OpeningBalance(employee={self.employee_id}, year={self.tax_year})>"


class PayrollRunDB(Base):
    """Persisted statutory calculation for one employee"""
    __tablename__ = "payroll_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    employee_id = Column(String, nullable=False, index=True)
    pay_period_id = Column(Integer, ForeignKey('pay_periods.id'))
    pay_period_start = Column(Date, nullable=False, index=True)
    pay_period_end = Column(Date)
    tax_year = Column(Integer, nullable=False, index=True)
    run_type = Column(String(20), nullable=False, default='regular')  # 'regular', 'off_cycle'
    country = Column(String(2), nullable=False)

    gross_pay = Column(Numeric(14, 2), nullable=False)
    taxable_income = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    deductions = relationship("PayrollRunDeductionDB", back_populates="payroll_run", cascade="all, delete-orphan")
    reliefs = relationship("PayrollRunReliefDB", back_populates="payroll_run", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<PayrollRun(id={self.id}, employee={self.employee_id}, type={self.run_type})>"


class PayrollRunDeductionDB(Base):
    """Statutory deduction line of a payroll run"""
    __tablename__ = "payroll_run_deductions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payroll_run_id = Column(String(36), ForeignKey('payroll_runs.id'), nullable=False, index=True)
    statutory_code = Column(String(20), nullable=False)
    statutory_type = Column(String(30))
    employee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    employer_amount = Column(Numeric(12, 2), nullable=False, default=0)
    is_refund = Column(Boolean, nullable=False, default=False)

    # Relationships
    payroll_run = relationship("PayrollRunDB", back_populates="deductions")

    def __repr__(self):
        return f"<PayrollRunDeduction(code={self.statutory_code}, employee={self.employee_amount})>"


class PayrollRunReliefDB(Base):
    """Relief ledger line of a payroll run"""
    __tablename__ = "payroll_run_reliefs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payroll_run_id = Column(String(36), ForeignKey('payroll_runs.id'), nullable=False, index=True)
    relief_code = Column(String(30), nullable=False)
    source = Column(String(20), nullable=False)  # 'statutory_rule', 'scheme'
    relief_type = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    payroll_run = relationship("PayrollRunDB", back_populates="reliefs")

    def __repr__(self):
        return f"<PayrollRunRelief(code={self.relief_code}, amount={self.amount})>"
