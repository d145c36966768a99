from datetime import date

import pytest

from app import create_app


@pytest.fixture
def client(session_factory, tmp_path):
    app = create_app(session_factory=session_factory, output_dir=tmp_path)
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def configured(reference):
    reference.income_tax()
    reference.settings()
    return reference


def test_regular_calculation(client, configured):
    response = client.post('/api/statutory/regular', json={
        'employee_id': 'E1', 'pay_period_start': '2024-01-01', 'gross_pay': '70000', 'country_code': 'XX',
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    income_tax = body['result']['deductions'][0]
    assert income_tax['code'] == 'INCOME_TAX'
    assert income_tax['employee_amount'] == '9000.00'
    assert 'run_id' not in body


def test_persisted_run_feeds_next_period(client, configured):
    first = client.post('/api/statutory/regular', json={
        'employee_id': 'E1', 'pay_period_start': '2024-01-01', 'pay_period_end': '2024-01-31',
        'gross_pay': '30000', 'country_code': 'XX', 'persist': True,
    }).get_json()
    assert first['run_id']

    second = client.post('/api/statutory/regular', json={
        'employee_id': 'E1', 'pay_period_start': '2024-02-01', 'gross_pay': '30000', 'country_code': 'XX',
    }).get_json()
    assert second['result']['deductions'][0]['employee_amount'] == '4000.00'


def test_off_cycle_calculation(client, configured):
    period_id = configured.pay_period(date(2024, 1, 1), date(2024, 1, 31))

    response = client.post('/api/statutory/off-cycle', json={
        'employee_id': 'E1', 'pay_period_id': period_id, 'gross_pay': '10000', 'country_code': 'XX',
        'persist': True,
    })

    body = response.get_json()
    assert response.status_code == 200
    assert body['result']['deductions'][0]['employee_amount'] == '1000.00'
    assert body['run_id']


def test_off_cycle_unknown_period(client, configured):
    response = client.post('/api/statutory/off-cycle', json={
        'employee_id': 'E1', 'pay_period_id': 999, 'gross_pay': '100', 'country_code': 'XX',
    })

    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_off_cycle_requires_period(client):
    response = client.post('/api/statutory/off-cycle', json={'employee_id': 'E1', 'gross_pay': '100'})
    assert response.status_code == 400


@pytest.mark.parametrize('payload', [
    {'employee_id': 'E1', 'pay_period_start': '2024-01-01', 'gross_pay': '-5', 'country_code': 'XX'},
    {'employee_id': 'E1', 'pay_period_start': 'January', 'gross_pay': '5', 'country_code': 'XX'},
    {'employee_id': 'E1', 'gross_pay': '5', 'country_code': 'XX'},
    {'employee_id': 'E1', 'pay_period_start': '2024-01-01', 'gross_pay': '5', 'country_code': 'XX',
     'monday_count': 'four'},
])
def test_bad_input_is_a_client_error(client, payload):
    response = client.post('/api/statutory/regular', json=payload)

    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_statutory_types_endpoint(client, configured):
    response = client.get('/api/statutory/types/xx?date=2024-06-01')

    body = response.get_json()
    assert response.status_code == 200
    assert body['country'] == 'XX'
    assert [t['code'] for t in body['types']] == ['INCOME_TAX']
    assert [b['pay_frequency'] for b in body['types'][0]['bands']] == ['annual', 'annual']
    assert body['types'][0]['bands'][1]['max_amount'] is None


def test_statutory_types_rejects_bad_country(client):
    assert client.get('/api/statutory/types/XYZ').status_code == 400


def test_report_and_download(client, configured):
    response = client.post('/api/statutory/report', json={
        'employee_id': 'E1', 'pay_period_start': '2024-01-01', 'gross_pay': '30000', 'country_code': 'XX',
    })

    body = response.get_json()
    assert response.status_code == 200
    assert body['file'].endswith('.xlsx')

    download = client.get(f"/api/download/{body['file']}")
    assert download.status_code == 200
    assert client.get('/api/download/missing.xlsx').status_code == 404
