from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from ledger.tests.factories import make_student


@pytest.fixture
def roster(store):
    store.set_students([
        make_student('a', grade='5th'),
        make_student('b', grade='6th'),
        make_student('c', grade='5th', status='inactive'),
    ])
    return store


def test_generate_for_a_grade(roster, tmp_path):
    out = StringIO()
    call_command('generate_invoices', str(tmp_path), '--grade', '5th', '--active-only', '--pause', '0', stdout=out)

    assert 'Wrote 1 invoice(s).' in out.getvalue()
    assert [p.name for p in tmp_path.iterdir()] == [f'invoice-S-a-{roster.get_student("a").invoice_number}.html']


def test_unknown_student_is_an_error(roster, tmp_path):
    with pytest.raises(CommandError):
        call_command('generate_invoices', str(tmp_path), '--student', 'nobody')


def test_nothing_to_invoice(roster, tmp_path):
    out = StringIO()
    call_command('generate_invoices', str(tmp_path), '--grade', '12th', stdout=out)
    assert 'No students to invoice.' in out.getvalue()
