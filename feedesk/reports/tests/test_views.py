import json

import pytest
from django.urls import reverse

from ledger.tests.factories import make_line, make_payment, make_student, make_template


@pytest.fixture
def stocked(store):
    store.set_fee_templates([make_template('tuition')])
    store.set_students([make_student('a', fees=[make_line('a1', '100.00', template_id='tuition')])])
    store.set_payments([make_payment('p1', 'a', '25.00', allocations=[('a1', '25.00')])])
    return store


@pytest.mark.parametrize('name, prefix', [
    ('students_csv', 'students-'),
    ('payments_csv', 'payments-'),
    ('outstanding_csv', 'outstanding-balances-'),
    ('fee_templates_csv', 'fee-templates-'),
])
def test_csv_downloads(client, stocked, name, prefix):
    response = client.get(reverse(name))
    assert response.status_code == 200
    assert response['Content-Type'] == 'text/csv; charset=utf-8'
    disposition = response['Content-Disposition']
    assert disposition.startswith(f'attachment; filename="{prefix}')
    assert disposition.endswith('.csv"')
    assert response.content.decode('utf-8').count('\n') == 2


def test_payments_csv_rejects_bad_range(client, stocked):
    response = client.get(reverse('payments_csv'), {'from': 'someday'})
    assert response.status_code == 400


def test_backup_download(client, stocked):
    response = client.get(reverse('backup_json'))
    assert response['Content-Type'] == 'application/json'
    data = json.loads(response.content)
    assert data['students'][0]['id'] == 'a'


def test_invoice_download_issues_number(client, stocked):
    response = client.get(reverse('invoice', args=['a']))
    assert response.status_code == 200
    assert 'invoice-S-a-INV-' in response['Content-Disposition']
    assert stocked.get_student('a').invoice_number.startswith('INV-')

    inline = client.get(reverse('invoice', args=['a']), {'inline': '1'})
    assert 'Content-Disposition' not in inline
    assert stocked.get_student('a').invoice_number.encode() in inline.content


def test_invoice_for_unknown_student(client, stocked):
    assert client.get(reverse('invoice', args=['nobody'])).status_code == 404
