import json

import pytest
from django.urls import reverse

from ledger.invoicing import InvoiceSequencer
from ledger.tests.factories import aware, make_line, make_student, make_template


def post_json(client, url, payload=None):
    return client.post(url, json.dumps(payload or {}), content_type='application/json')


@pytest.fixture
def roster(store):
    store.set_fee_templates([make_template('tuition', 'Tuition', '500.00')])
    store.set_students([
        make_student('a', grade='5th', fees=[make_line('a1', '100.00')]),
        make_student('b', grade='5th', first_name='Bob', last_name='Builder'),
    ])
    return store


# ── Students ──────────────────────────────────────────────────────────────────

def test_student_list_and_search(client, roster):
    response = client.get(reverse('students'))
    assert response.status_code == 200
    assert response.json()['count'] == 2

    response = client.get(reverse('students'), {'q': 'bob'})
    data = response.json()
    assert [s['id'] for s in data['students']] == ['b']
    assert data['students'][0]['paymentStatus'] == 'paid'


def test_create_student_accepts_camel_case(client, roster):
    response = post_json(client, reverse('students'), {
        'studentId': 'S-900', 'firstName': 'Grace', 'lastName': 'Hopper',
        'grade': '5th', 'feeTemplates': ['tuition'],
    })
    assert response.status_code == 201
    body = response.json()
    assert body['studentId'] == 'S-900'
    assert body['assignedFees'][0]['templateId'] == 'tuition'
    assert body['totalFees'] == '500.00'


def test_create_student_reports_form_errors(client, roster):
    response = post_json(client, reverse('students'), {'firstName': 'NoGrade'})
    assert response.status_code == 400
    body = response.json()
    assert 'grade' in body['fields']
    assert body['errors']


def test_student_detail_update_and_delete(client, roster):
    url = reverse('student_detail', args=['b'])
    assert client.get(url).json()['firstName'] == 'Bob'

    response = post_json(client, url, {'notes': 'allergic to peanuts'})
    assert response.status_code == 200
    assert roster.get_student('b').notes == 'allergic to peanuts'
    assert roster.get_student('b').first_name == 'Bob'

    assert client.delete(url).status_code == 200
    assert roster.get_student('b') is None
    assert client.get(url).status_code == 404


def test_adhoc_fee_and_line_removal(client, roster):
    response = post_json(client, reverse('student_adhoc_fee', args=['b']), {'title': 'Trip', 'amount': '30'})
    assert response.status_code == 201
    line_id = response.json()['feeLine']['id']

    response = post_json(client, reverse('student_fee_line_delete', args=['b', line_id]))
    assert response.status_code == 200
    assert roster.get_student('b').assigned_fees == []


# ── Payments ──────────────────────────────────────────────────────────────────

def test_record_payment_with_allocations(client, roster):
    response = post_json(client, reverse('payments'), {
        'studentId': 'a', 'amount': '40.00', 'method': 'Cash',
        'allocations': [{'feeLineId': 'a1', 'amount': '40.00'}],
    })
    assert response.status_code == 201
    body = response.json()
    assert body['payment']['appliedTo'] == [{'feeLineId': 'a1', 'amount': '40.00'}]
    assert body['feeLines'][0]['status'] == 'partial'

    listing = client.get(reverse('payments'), {'student': 'a'}).json()
    assert len(listing['payments']) == 1


def test_over_allocation_is_a_400(client, roster):
    response = post_json(client, reverse('payments'), {
        'studentId': 'a', 'amount': '200.00', 'method': 'Cash',
        'allocations': [{'feeLineId': 'a1', 'amount': '150.00'}],
    })
    assert response.status_code == 400
    assert roster.get_payments() == []


def test_allocation_to_foreign_line_is_a_404(client, roster):
    response = post_json(client, reverse('payments'), {
        'studentId': 'b', 'amount': '20.00', 'method': 'Cash',
        'allocations': [{'feeLineId': 'a1', 'amount': '20.00'}],
    })
    assert response.status_code == 404


def test_unknown_payment_method_is_rejected(client, roster):
    response = post_json(client, reverse('payments'), {'studentId': 'a', 'amount': '5', 'method': 'Barter'})
    assert response.status_code == 400
    assert 'method' in response.json()['fields']


def test_auto_allocate_preview(client, roster):
    response = post_json(client, reverse('auto_allocate_preview', args=['a']), {'amount': '150'})
    assert response.json() == {'allocations': [{'feeLineId': 'a1', 'amount': '100.00'}], 'leftover': '50.00'}


# ── Fee templates & bulk assignment ───────────────────────────────────────────

def test_fee_template_crud(client, roster):
    response = post_json(client, reverse('fee_templates'), {
        'title': 'Bus', 'category': 'transport', 'amount': '45', 'frequency': 'monthly', 'dueDay': 5,
    })
    assert response.status_code == 201
    pk = response.json()['id']
    assert response.json()['dueDay'] == 5

    response = post_json(client, reverse('fee_template_detail', args=[pk]), {'amount': '50'})
    assert response.json()['amount'] == '50.00'
    assert response.json()['title'] == 'Bus'

    assert client.delete(reverse('fee_template_detail', args=[pk])).status_code == 200
    assert roster.get_fee_template(pk) is None


def test_bulk_assign_and_unassign(client, roster):
    response = post_json(client, reverse('bulk_assign'), {'templateId': 'tuition', 'mode': 'grade', 'grade': '5th'})
    assert response.json()['newlyAssigned'] == 2

    response = post_json(client, reverse('bulk_assign'), {
        'templateId': 'tuition', 'mode': 'individual', 'studentIds': ['a'],
    })
    assert response.json() == {'newlyAssigned': 0, 'alreadyAssigned': 1, 'studentIds': []}

    counts = client.get(reverse('fee_templates')).json()['feeTemplates']
    assert counts[0]['assignedCount'] == 2

    response = post_json(client, reverse('bulk_unassign', args=['tuition']))
    assert response.json()['linesRemoved'] == 2


def test_unassign_that_would_orphan_is_a_409(client, roster):
    post_json(client, reverse('bulk_assign'), {'templateId': 'tuition', 'mode': 'individual', 'studentIds': ['b']})
    line_id = roster.get_student('b').assigned_fees[0].id
    post_json(client, reverse('payments'), {
        'studentId': 'b', 'amount': '10', 'method': 'Cash',
        'allocations': [{'feeLineId': line_id, 'amount': '10'}],
    })

    response = post_json(client, reverse('bulk_unassign', args=['tuition']))
    assert response.status_code == 409
    assert len(response.json()['paymentIds']) == 1


def test_bulk_assign_needs_a_grade(client, roster):
    response = post_json(client, reverse('bulk_assign'), {'templateId': 'tuition', 'mode': 'grade'})
    assert response.status_code == 400


# ── School-wide ───────────────────────────────────────────────────────────────

def test_settings_partial_update(client, roster):
    response = post_json(client, reverse('school_settings'), {'schoolName': 'Hillside', 'currency': 'eur'})
    assert response.status_code == 200
    assert response.json()['schoolName'] == 'Hillside'
    assert roster.get_settings().currency == 'EUR'
    assert roster.get_settings().invoice_prefix == 'INV'


def test_invoice_number_is_issued_once(client, roster):
    first = post_json(client, reverse('invoice_number', args=['a'])).json()['invoiceNumber']
    again = post_json(client, reverse('invoice_number', args=['a'])).json()['invoiceNumber']
    assert first == again
    assert first.endswith('-0001')


def test_settings_cannot_rewind_the_invoice_counter(client, roster):
    first = post_json(client, reverse('invoice_number', args=['a'])).json()['invoiceNumber']
    post_json(client, reverse('invoice_number', args=['b']))

    response = post_json(client, reverse('school_settings'), {'invoiceSeq': 1, 'schoolName': 'Hillside'})
    assert response.status_code == 200
    assert roster.get_settings().invoice_seq == 3

    issued = InvoiceSequencer(roster).next_invoice_number()
    assert issued != first
    assert issued.endswith('-0003')


def test_import_and_clear(client, roster):
    backup = roster.export_data()
    assert post_json(client, reverse('clear_data'), {'confirm': True}).status_code == 200
    assert roster.get_students() == []

    response = client.post(reverse('import_backup'), backup, content_type='application/json')
    assert response.status_code == 200
    assert [s.id for s in roster.get_students()] == ['a', 'b']

    response = client.post(reverse('import_backup'), '{"payments": []}', content_type='application/json')
    assert response.status_code == 400


def test_clear_requires_confirmation(client, roster):
    assert post_json(client, reverse('clear_data')).status_code == 400
    assert len(roster.get_students()) == 2


def test_get_on_post_only_endpoint(client, roster):
    assert client.get(reverse('bulk_assign')).status_code == 405


def test_stale_stored_status_is_rederived_on_read(client, store):
    store.set_students([make_student('s1', fees=[make_line('l1', '100.00', due=aware(2020, 1, 1))])])
    assert store.get_student('s1').assigned_fees[0].status == 'open'

    detail = client.get(reverse('student_detail', args=['s1'])).json()
    assert detail['assignedFees'][0]['status'] == 'overdue'

    listing = client.get(reverse('students')).json()
    assert listing['students'][0]['assignedFees'][0]['status'] == 'overdue'
