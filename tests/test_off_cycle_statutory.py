from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from cerebra_payroll.api.mock_reference_data import MockReferenceData
from cerebra_payroll.database.repository import PayrollHistoryRepository
from cerebra_payroll.exceptions import InvalidCalculationInputError, PayPeriodNotFoundError
from cerebra_payroll.processors.off_cycle_statutory import OffCycleStatutoryService

D = Decimal
JAN = date(2024, 1, 1)
FEB = date(2024, 2, 1)
MAR = date(2024, 3, 1)


@pytest.fixture
def service(session_factory):
    return OffCycleStatutoryService(session_factory=session_factory)


def save(session, result, employee_id, start, run_type="regular", pay_period_id=None, country="XX"):
    return PayrollHistoryRepository(session).save_run(
        result, employee_id, country, start, run_type=run_type, pay_period_id=pay_period_id
    )


def test_cumulative_tax_across_saved_runs(session, reference, service):
    reference.income_tax()
    reference.settings()

    january = service.calculate_regular_statutory("E1", JAN, "30000", "XX")
    assert january.deduction("INCOME_TAX").employee_amount == D("3000.00")
    save(session, january, "E1", JAN)

    february = service.calculate_regular_statutory("E1", FEB, "30000", "XX")
    income_tax = february.deduction("INCOME_TAX")

    assert income_tax.employee_amount == D("4000.00")
    assert income_tax.ytd_taxable_income == D("60000.00")
    assert income_tax.ytd_tax_paid == D("7000.00")
    assert february.context.ytd_amounts.run_count == 1


def test_off_cycle_split_matches_single_run(session, reference, service):
    reference.income_tax()
    reference.percentage_contribution()
    reference.settings()
    period_id = reference.pay_period(JAN, date(2024, 1, 31))

    single = service.calculate_regular_statutory("SINGLE", JAN, "30000", "XX")

    first = service.calculate_regular_statutory("SPLIT", JAN, "20000", "XX")
    save(session, first, "SPLIT", JAN, pay_period_id=period_id)
    second = service.calculate_off_cycle_statutory("SPLIT", period_id, "10000", "XX")

    assert second.deduction("SOC").employee_amount == D("500.00")
    assert second.deduction("SOC").employer_amount == D("800.00")
    assert second.deduction("INCOME_TAX").employee_amount == D("1000.00")
    assert first.total_employee_deductions + second.total_employee_deductions == single.total_employee_deductions
    assert (first.total_employer_contributions + second.total_employer_contributions
            == single.total_employer_contributions)


def test_recalculating_a_saved_run_excludes_it(session, reference, service):
    reference.income_tax()
    reference.settings()
    period_id = reference.pay_period(JAN, date(2024, 1, 31))

    save(session, service.calculate_regular_statutory("E1", JAN, "20000", "XX"), "E1", JAN,
         pay_period_id=period_id)
    bonus = service.calculate_off_cycle_statutory("E1", period_id, "10000", "XX")
    saved = save(session, bonus, "E1", JAN, run_type="off_cycle", pay_period_id=period_id)

    again = service.calculate_off_cycle_statutory("E1", period_id, "10000", "XX", exclude_run_id=saved.id)

    assert again.deduction("INCOME_TAX").employee_amount == bonus.deduction("INCOME_TAX").employee_amount
    assert again.context.period_amounts.run_count == 1


def test_off_cycle_takes_frequency_and_mondays_from_period(reference, service):
    reference.statutory_type("WEEKLY", "social_security", bands=[
        {"min_amount": D("0"), "max_amount": None, "calculation_method": "per_monday",
         "per_monday_amount": D("10"), "employer_per_monday_amount": D("20"), "pay_frequency": "monthly"},
    ])
    reference.settings()
    period_id = reference.pay_period(JAN, date(2024, 1, 31))

    result = service.calculate_off_cycle_statutory("E1", period_id, "1000", "XX")

    # January 2024 has five Mondays
    assert result.deduction("WEEKLY").employee_amount == D("50.00")
    assert result.deduction("WEEKLY").employer_amount == D("100.00")


def test_unknown_pay_period(service):
    with pytest.raises(PayPeriodNotFoundError) as excinfo:
        service.calculate_off_cycle_statutory("E1", 4242, "1000", "XX")
    assert excinfo.value.pay_period_id == 4242


@pytest.mark.parametrize("employee_id, gross, country", [
    ("E1", "-1", "XX"),
    ("E1", "lots", "XX"),
    ("E1", "NaN", "XX"),
    ("E1", "1000", ""),
    ("", "1000", "XX"),
])
def test_invalid_input_rejected(service, employee_id, gross, country):
    with pytest.raises(InvalidCalculationInputError):
        service.calculate_regular_statutory(employee_id, JAN, gross, country)


def test_unknown_pay_frequency_rejected(service):
    with pytest.raises(InvalidCalculationInputError):
        service.calculate_regular_statutory("E1", JAN, "1000", "XX", pay_frequency="lunar")


def test_failed_context_read_propagates(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}", connect_args={"check_same_thread": False})
    service = OffCycleStatutoryService(session_factory=sessionmaker(bind=engine))

    with pytest.raises(OperationalError):
        service.calculate_regular_statutory("E1", JAN, "1000", "XX")
    engine.dispose()


def test_sample_setup_with_relief_and_off_cycle(session, service):
    periods = MockReferenceData(2024).seed(session)["pay_periods"]
    assert MockReferenceData(2024).seed(session)["pay_periods"] == periods

    regular = service.calculate_regular_statutory("TT-0001", JAN, "18000", "TT", monday_count=5, employee_age=34)

    assert [d.code for d in regular.deductions] == ["NIS", "HSUR", "PAYE"]
    assert regular.deduction("NIS").employee_amount == D("774.00")
    assert regular.deduction("NIS").employer_amount == D("1548.00")
    assert regular.deduction("HSUR").employer_amount == D("0.00")
    assert {(l.code, l.amount) for l in regular.tax_reliefs} == {("NIS", D("541.80")), ("PENSION", D("1500.00"))}
    assert regular.adjusted_taxable_income == D("15958.20")
    # Below the annual personal allowance
    assert regular.deduction("PAYE").employee_amount == D("0.00")

    save(session, regular, "TT-0001", JAN, pay_period_id=periods[0], country="TT")
    bonus = service.calculate_off_cycle_statutory("TT-0001", periods[0], "2000", "TT", employee_age=34)

    assert bonus.deduction("NIS").employee_amount == D("0.00")
    assert bonus.deduction("HSUR").employee_amount == D("0.00")
    assert bonus.context.period_amounts.relief("PENSION") == D("1500.00")
    assert bonus.context.period_amounts.gross_pay == D("18000.00")
    # The pension allowance was used up by the regular run of the period
    assert "PENSION" not in {l.code for l in bonus.tax_reliefs}


def test_relief_ledger_stops_at_annual_cap(session, reference, service):
    reference.income_tax()
    reference.settings()
    union = reference.scheme("UNION", relief_value=D("1000"), annual_cap=D("1500"))
    reference.enroll("E1", union)

    granted = []
    for start in (JAN, FEB, MAR):
        result = service.calculate_regular_statutory("E1", start, "5000", "XX")
        granted.append(sum((l.amount for l in result.tax_reliefs if l.code == "UNION"), D("0")))
        save(session, result, "E1", start)

    assert granted == [D("1000.00"), D("500.00"), D("0")]


@pytest.mark.parametrize("method, scheme_kwargs, enroll_kwargs", [
    ("fixed_amount", {"relief_value": D("1000")}, {}),
    ("percentage_of_contribution", {"relief_percentage": D("100")}, {"declared_amount": D("1000")}),
])
def test_off_cycle_split_does_not_regrant_period_relief(session, reference, service, method, scheme_kwargs,
                                                        enroll_kwargs):
    reference.income_tax()
    reference.settings()
    union = reference.scheme("UNION", calculation_method=method, **scheme_kwargs)
    reference.enroll("SINGLE", union, **enroll_kwargs)
    reference.enroll("SPLIT", union, **enroll_kwargs)
    period_id = reference.pay_period(JAN, date(2024, 1, 31))

    single = service.calculate_regular_statutory("SINGLE", JAN, "30000", "XX")

    first = service.calculate_regular_statutory("SPLIT", JAN, "20000", "XX")
    save(session, first, "SPLIT", JAN, pay_period_id=period_id)
    second = service.calculate_off_cycle_statutory("SPLIT", period_id, "10000", "XX")

    assert single.deduction("INCOME_TAX").employee_amount == D("2900.00")
    assert second.adjusted_taxable_income == D("10000.00")
    assert "UNION" not in {l.code for l in second.tax_reliefs}
    assert (first.deduction("INCOME_TAX").employee_amount + second.deduction("INCOME_TAX").employee_amount
            == single.deduction("INCOME_TAX").employee_amount)


def test_off_cycle_keeps_proportional_relief(session, reference, service):
    reference.income_tax()
    reference.settings()
    saving = reference.scheme("SAVING", calculation_method="percentage_of_income", relief_percentage=D("10"))
    reference.enroll("E1", saving)
    period_id = reference.pay_period(JAN, date(2024, 1, 31))

    save(session, service.calculate_regular_statutory("E1", JAN, "20000", "XX"), "E1", JAN,
         pay_period_id=period_id)
    bonus = service.calculate_off_cycle_statutory("E1", period_id, "10000", "XX")

    assert [(l.code, l.amount) for l in bonus.tax_reliefs] == [("SAVING", D("1000.00"))]


def test_unconfigured_country_refunds_overpayment(session, reference, service):
    reference.income_tax()
    PayrollHistoryRepository(session).save_opening_balance("E1", 2024, JAN, ytd_income_tax="5000")

    result = service.calculate_regular_statutory("E1", JAN, "10000", "XX")
    income_tax = result.deduction("INCOME_TAX")

    assert result.context.allow_mid_year_refunds is True
    assert income_tax.is_refund
    assert income_tax.employee_amount == D("-4000.00")
