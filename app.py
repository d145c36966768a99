import logging
from datetime import date
from pathlib import Path

from flask import Flask, request, jsonify, send_file

from cerebra_payroll.config.settings import OUTPUT_DIR, SECRET_KEY, DEBUG, LOG_LEVEL
from cerebra_payroll.database.db import init_db, SessionLocal
from cerebra_payroll.database.repository import (
    ReferenceDataRepository, PayPeriodRepository, PayrollHistoryRepository
)
from cerebra_payroll.exceptions import InvalidCalculationInputError, PayPeriodNotFoundError, ReferenceDataError
from cerebra_payroll.processors.off_cycle_statutory import OffCycleStatutoryService
from cerebra_payroll.processors.statutory_report_generator import StatutoryReportGenerator
from cerebra_payroll.utils.validators import validate_country_code

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _parse_date(value, field):
    if not value:
        raise InvalidCalculationInputError(f"'{field}' is required")
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidCalculationInputError(f"'{field}' must be an ISO date, got {value!r}") from None


def _optional_int(data, field):
    value = data.get(field)
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidCalculationInputError(f"'{field}' must be an integer, got {value!r}") from None


def create_app(session_factory=SessionLocal, output_dir=None):
    app = Flask(__name__)
    app.config['SECRET_KEY'] = SECRET_KEY
    app.config['DEBUG'] = DEBUG

    reports_dir = Path(output_dir) if output_dir else OUTPUT_DIR / 'reports'
    service = OffCycleStatutoryService(session_factory=session_factory)

    def run_calculation(data):
        """Regular run when no pay period id is given, off-cycle otherwise"""
        employee_id = data.get('employee_id')
        common = dict(
            exclude_run_id=data.get('exclude_run_id'),
            monday_count=_optional_int(data, 'monday_count'),
            employee_age=_optional_int(data, 'employee_age'),
        )
        if data.get('pay_period_id') is not None:
            pay_period_id = _optional_int(data, 'pay_period_id')
            result = service.calculate_off_cycle_statutory(
                employee_id, pay_period_id, data.get('gross_pay'), data.get('country_code'), **common
            )
            return result, 'off_cycle', pay_period_id

        period_start = _parse_date(data.get('pay_period_start'), 'pay_period_start')
        result = service.calculate_regular_statutory(
            employee_id, period_start, data.get('gross_pay'), data.get('country_code'),
            pay_frequency=data.get('pay_frequency') or 'monthly', **common
        )
        return result, 'regular', None

    def persist(data, result, run_type, pay_period_id):
        with session_factory() as session:
            if pay_period_id is not None:
                period = PayPeriodRepository(session).get_pay_period(pay_period_id)
                start, end = period.period_start, period.period_end
            else:
                start = _parse_date(data.get('pay_period_start'), 'pay_period_start')
                end = _parse_date(data['pay_period_end'], 'pay_period_end') if data.get('pay_period_end') else None
            run = PayrollHistoryRepository(session).save_run(
                result, data.get('employee_id'), data.get('country_code'), start, end,
                run_type=run_type, pay_period_id=pay_period_id, run_id=data.get('run_id'),
            )
            return run.id

    # ============================================================================
    # Error handlers
    # ============================================================================

    @app.errorhandler(PayPeriodNotFoundError)
    def pay_period_not_found(e):
        return jsonify({'success': False, 'message': str(e)}), 404

    @app.errorhandler(InvalidCalculationInputError)
    def invalid_input(e):
        return jsonify({'success': False, 'message': str(e)}), 400

    @app.errorhandler(ReferenceDataError)
    def bad_reference_data(e):
        logger.error("Unreadable reference data: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500

    # ============================================================================
    # API Endpoints
    # ============================================================================

    @app.route('/api/statutory/regular', methods=['POST'])
    def calculate_regular():
        """Statutory deductions for a regular run"""
        data = request.get_json(silent=True) or {}
        data.pop('pay_period_id', None)
        result, run_type, _ = run_calculation(data)

        response = {'success': True, 'result': result.to_dict()}
        if data.get('persist'):
            response['run_id'] = persist(data, result, run_type, None)
        return jsonify(response)

    @app.route('/api/statutory/off-cycle', methods=['POST'])
    def calculate_off_cycle():
        """Statutory deductions for an off-cycle run in an existing pay period"""
        data = request.get_json(silent=True) or {}
        if data.get('pay_period_id') is None:
            raise InvalidCalculationInputError("'pay_period_id' is required")
        result, run_type, pay_period_id = run_calculation(data)

        response = {'success': True, 'result': result.to_dict()}
        if data.get('persist'):
            response['run_id'] = persist(data, result, run_type, pay_period_id)
        return jsonify(response)

    @app.route('/api/statutory/types/<country>')
    def get_statutory_types(country):
        """Statutory types and rate bands in force for a country"""
        if not validate_country_code(country.upper()):
            raise InvalidCalculationInputError(f"Invalid country code '{country}'")
        as_of = _parse_date(request.args.get('date'), 'date') if request.args.get('date') else date.today()
        with session_factory() as session:
            repo = ReferenceDataRepository(session)
            types = repo.get_statutory_types(country, as_of)
            bands = repo.get_rate_bands([t.id for t in types], as_of)

        return jsonify({
            'country': country.upper(),
            'date': as_of.isoformat(),
            'types': [
                {
                    'code': t.statutory_code,
                    'name': t.statutory_name,
                    'type': t.statutory_type,
                    'employee_portion': t.employee_portion,
                    'employer_portion': t.employer_portion,
                    'bands': [
                        {
                            'name': b.band_name,
                            'min_amount': str(b.min_amount),
                            'max_amount': None if b.max_amount is None else str(b.max_amount),
                            'calculation_method': b.calculation_method,
                            'employee_rate': str(b.employee_rate),
                            'employer_rate': str(b.employer_rate),
                            'pay_frequency': b.pay_frequency,
                        }
                        for b in bands.get(t.id, [])
                    ],
                }
                for t in types
            ],
        })

    @app.route('/api/statutory/report', methods=['POST'])
    def generate_report():
        """Calculate and write the audit workbook"""
        data = request.get_json(silent=True) or {}
        result, _, _ = run_calculation(data)
        filepath = StatutoryReportGenerator(reports_dir).generate(result, data.get('employee_id'))
        return jsonify({
            'success': True,
            'message': 'Statutory report generated successfully',
            'file': Path(filepath).name,
        })

    @app.route('/api/download/<path:filename>')
    def download_file(filename):
        """Download a generated report"""
        filepath = reports_dir / Path(filename).name
        if filepath.exists():
            return send_file(filepath, as_attachment=True)
        return jsonify({'error': 'File not found'}), 404

    return app


init_db()
app = create_app()

if __name__ == '__main__':
    app.run(debug=DEBUG, port=5000)
