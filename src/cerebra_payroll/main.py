import logging
from decimal import Decimal

from .api.mock_reference_data import MockReferenceData
from .config.settings import LOG_LEVEL
from .database.db import SessionLocal, init_db
from .database.repository import PayPeriodRepository, PayrollHistoryRepository
from .processors.off_cycle_statutory import OffCycleStatutoryService
from .processors.statutory_report_generator import StatutoryReportGenerator
from .utils.formatters import format_currency

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Seed sample data and run a quarter of payroll for one employee"""
    logger.info("Starting statutory deduction engine demo")

    # Initialize database
    logger.info("Initializing database...")
    init_db()

    mock = MockReferenceData()
    employee = mock.MOCK_EMPLOYEES[0]
    service = OffCycleStatutoryService()

    with SessionLocal() as session:
        period_ids = mock.seed(session)["pay_periods"]
        history = PayrollHistoryRepository(session)
        # Start from a clean history so the demo is repeatable
        for run in history.get_runs(employee["employee_id"], mock.tax_year):
            history.delete_run(run.id)

        periods = PayPeriodRepository(session)
        results = []
        for period_id, gross in zip(period_ids[:3], (Decimal('18000'), Decimal('18000'), Decimal('18000'))):
            period = periods.get_pay_period(period_id)
            result = service.calculate_regular_statutory(
                employee["employee_id"], period.period_start, gross, mock.COUNTRY,
                monday_count=period.monday_count, employee_age=employee["age"],
            )
            history.save_run(result, employee["employee_id"], mock.COUNTRY, period.period_start,
                             period.period_end, pay_period_id=period.id)
            results.append(("regular", period, result))

        # Bonus paid in the third month
        bonus_period = periods.get_pay_period(period_ids[2])
        bonus = service.calculate_off_cycle_statutory(
            employee["employee_id"], bonus_period.id, Decimal('25000'), mock.COUNTRY,
            employee_age=employee["age"],
        )
        history.save_run(bonus, employee["employee_id"], mock.COUNTRY, bonus_period.period_start,
                         bonus_period.period_end, run_type='off_cycle', pay_period_id=bonus_period.id)
        results.append(("off-cycle", bonus_period, bonus))

    print("=" * 60)
    print(f"Statutory deductions for {employee['name']} ({employee['employee_id']})")
    print("=" * 60)
    for run_type, period, result in results:
        print(f"\n{period.period_start:%B %Y} {run_type}: gross {format_currency(result.gross_pay, 'TT$')}")
        for deduction in result.deductions:
            refund = " (refund)" if deduction.is_refund else ""
            print(f"  {deduction.code:<6} employee {format_currency(deduction.employee_amount):>12}"
                  f"  employer {format_currency(deduction.employer_amount):>12}{refund}")
        print(f"  Total  employee {format_currency(result.total_employee_deductions):>12}"
              f"  employer {format_currency(result.total_employer_contributions):>12}")

    report = StatutoryReportGenerator().generate(bonus, employee["employee_id"])
    print(f"\nAudit report: {report}")
    print("=" * 60)


if __name__ == "__main__":
    main()
