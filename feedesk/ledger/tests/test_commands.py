from io import StringIO

from django.core.management import call_command

from ledger.tests.factories import aware, make_line, make_student


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


def test_backfill_invoice_numbers(store):
    store.set_students([make_student('a'), make_student('b', invoice_number='INV-2024-0009')])
    output = run('backfill_invoice_numbers')

    assert 'Numbered 1 student(s).' in output
    assert store.get_student('a').invoice_number.endswith('-0001')
    assert store.get_student('b').invoice_number == 'INV-2024-0009'


def test_refresh_fee_statuses(store):
    store.set_students([make_student('a', fees=[make_line('a1', due=aware(2020, 1, 1))])])
    output = run('refresh_fee_statuses')

    assert '1 fee line(s) changed status.' in output
    assert store.get_student('a').assigned_fees[0].status == 'overdue'
    assert '0 fee line(s)' in run('refresh_fee_statuses')
