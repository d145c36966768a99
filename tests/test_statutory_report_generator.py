from datetime import date
from pathlib import Path

import openpyxl

from cerebra_payroll.processors.off_cycle_statutory import OffCycleStatutoryService
from cerebra_payroll.processors.statutory_report_generator import StatutoryReportGenerator


def test_report_lists_deductions_and_reliefs(tmp_path, reference, session_factory):
    reference.income_tax()
    reference.percentage_contribution()
    reference.settings()
    reference.relief_rule("SOC", percentage="50")
    result = OffCycleStatutoryService(session_factory).calculate_regular_statutory(
        "E1", date(2024, 1, 1), "30000", "XX"
    )

    filepath = StatutoryReportGenerator(tmp_path / "reports").generate(result, "E1")

    assert Path(filepath).parent == tmp_path / "reports"
    assert Path(filepath).name.startswith("statutory_E1_2024_")

    ws = openpyxl.load_workbook(filepath).active
    assert ws.title == "Statutory 2024"
    assert ws["A1"].value == "Statutory deductions - employee E1"

    column_a = [cell.value for cell in ws["A"]]
    assert "SOC" in column_a
    assert "INCOME_TAX" in column_a
    assert "Tax reliefs" in column_a
    assert "Total" in column_a
    total_row = column_a.index("Total") + 1
    assert ws[f"D{total_row}"].value == float(result.total_employee_deductions)


def test_report_lists_warnings(tmp_path, reference, session_factory):
    reference.statutory_type("EMPTY", "social_security")
    result = OffCycleStatutoryService(session_factory).calculate_regular_statutory(
        "E1", date(2024, 1, 1), "1000", "XX"
    )

    filepath = StatutoryReportGenerator(tmp_path).generate(result, "E1")
    column_a = [cell.value for cell in openpyxl.load_workbook(filepath).active["A"]]

    assert "Warnings" in column_a
    assert any(value and "No rate bands for EMPTY" in str(value) for value in column_a)
