import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import openpyxl
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill

from ..config.settings import OUTPUT_DIR
from ..models.calculation import OffCycleCalculationResult

logger = logging.getLogger(__name__)


class StatutoryReportGenerator:
    """Excel audit report of a statutory calculation"""

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir) if output_dir else OUTPUT_DIR / "reports"
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def generate(self, result: OffCycleCalculationResult, employee_id: str) -> str:
        """Write deductions, reliefs and the calculation context to an xlsx file"""
        context = result.context

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"Statutory {context.tax_year}"

        # Set column widths
        for column, width in zip("ABCDEFGH", (16, 30, 20, 16, 16, 18, 18, 12)):
            ws.column_dimensions[column].width = width

        # Define styles
        bold_font = Font(bold=True)
        header_fill = PatternFill(start_color="B4C7E7", end_color="B4C7E7", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        # Title
        row = 1
        ws[f'A{row}'] = f"Statutory deductions - employee {employee_id}"
        ws[f'A{row}'].font = Font(bold=True, size=14)
        row += 1
        ws[f'A{row}'] = "Tax year"
        ws[f'B{row}'] = context.tax_year
        row += 1
        ws[f'A{row}'] = "Method"
        ws[f'B{row}'] = context.tax_calculation_method
        row += 1
        ws[f'A{row}'] = "Mid-year refunds"
        ws[f'B{row}'] = "Yes" if context.allow_mid_year_refunds else "No"
        row += 1
        ws[f'A{row}'] = "Gross pay"
        ws[f'B{row}'] = float(result.gross_pay)
        row += 1
        ws[f'A{row}'] = "Adjusted taxable income"
        ws[f'B{row}'] = float(result.adjusted_taxable_income)

        # Deduction lines
        row += 2
        headers = ["Code", "Name", "Type", "Employee", "Employer", "YTD taxable", "YTD paid", "Refund"]
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = Alignment(horizontal='center')

        for deduction in result.deductions:
            row += 1
            values = [
                deduction.code,
                deduction.name,
                deduction.type,
                float(deduction.employee_amount),
                float(deduction.employer_amount),
                float(deduction.ytd_taxable_income) if deduction.ytd_taxable_income is not None else None,
                float(deduction.ytd_tax_paid) if deduction.ytd_tax_paid is not None else None,
                "Yes" if deduction.is_refund else "",
            ]
            for col, value in enumerate(values, start=1):
                cell = ws.cell(row=row, column=col, value=value)
                cell.border = thin_border
                if isinstance(value, float):
                    cell.number_format = '#,##0.00'

        # Totals
        row += 1
        ws[f'A{row}'] = "Total"
        ws[f'A{row}'].font = bold_font
        ws[f'D{row}'] = float(result.total_employee_deductions)
        ws[f'E{row}'] = float(result.total_employer_contributions)
        ws[f'D{row}'].font = bold_font
        ws[f'E{row}'].font = bold_font
        ws[f'D{row}'].number_format = '#,##0.00'
        ws[f'E{row}'].number_format = '#,##0.00'

        # Relief lines
        if result.tax_reliefs:
            row += 2
            ws[f'A{row}'] = "Tax reliefs"
            ws[f'A{row}'].font = bold_font
            row += 1
            for col, header in enumerate(["Code", "Name", "Source", "Type", "Amount"], start=1):
                cell = ws.cell(row=row, column=col, value=header)
                cell.font = bold_font
                cell.fill = header_fill
            for relief in result.tax_reliefs:
                row += 1
                ws.cell(row=row, column=1, value=relief.code)
                ws.cell(row=row, column=2, value=relief.name)
                ws.cell(row=row, column=3, value=relief.source)
                ws.cell(row=row, column=4, value=relief.relief_type)
                ws.cell(row=row, column=5, value=float(relief.amount)).number_format = '#,##0.00'

        # Context used
        row += 2
        ws[f'A{row}'] = "Context"
        ws[f'A{row}'].font = bold_font
        context_rows = [
            ("Opening taxable income", context.opening_balances.ytd_taxable_income),
            ("YTD taxable income", context.ytd_amounts.taxable_income),
            ("YTD runs", context.ytd_amounts.run_count),
            ("Period taxable income", context.period_amounts.taxable_income),
            ("Period runs", context.period_amounts.run_count),
        ]
        for label, value in context_rows:
            row += 1
            ws[f'A{row}'] = label
            ws[f'B{row}'] = float(value) if not isinstance(value, int) else value

        if result.warnings:
            row += 2
            ws[f'A{row}'] = "Warnings"
            ws[f'A{row}'].font = bold_font
            for warning in result.warnings:
                row += 1
                ws[f'A{row}'] = warning

        timestamp = datetime.now().strftime('%Y%m%d%H%M%S')
        filename = f"statutory_{employee_id}_{context.tax_year}_{timestamp}.xlsx"
        filepath = self.output_dir / filename
        wb.save(filepath)

        logger.info("Statutory report written to %s", filepath)
        return str(filepath)
