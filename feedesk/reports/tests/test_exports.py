import csv
import io
from datetime import date

import pytest

from ledger.entities import SchoolSettings
from ledger.tests.factories import aware, make_line, make_payment, make_student, make_template
from reports import exports


def rows(content):
    return list(csv.reader(io.StringIO(content)))


@pytest.fixture
def ledger():
    students = [
        make_student(
            'a', fees=[
                make_line('a1', '100.00', due=aware(2025, 1, 10), title='Tuition', applied=[('p1', '30.00')]),
                make_line('a2', '20.00', title='Books'),
            ],
            guardian_name='Grace', contact_email='ada@example.com',
        ),
        make_student('b', first_name='Bob', last_name='Builder, Jr.',
                     fees=[make_line('b1', '200.00', title='Tuition')]),
        make_student('c', first_name='Cy', fees=[make_line('c1', '10.00', applied=[('p3', '10.00')])]),
    ]
    payments = [
        make_payment('p1', 'a', '30.00', date=aware(2025, 1, 5), allocations=[('a1', '30.00')]),
        make_payment('p2', 'gone', '15.00', date=aware(2025, 1, 12)),
        make_payment('p3', 'c', '10.00', date=aware(2025, 1, 15, 18, 30), allocations=[('c1', '10.00')]),
        make_payment('p4', 'a', '5.00', date=aware(2025, 2, 1), allocations=[('deleted-line', '5.00')]),
    ]
    return students, payments


def test_students_csv(ledger):
    students, payments = ledger
    table = rows(exports.students_csv(students, payments, SchoolSettings()))

    assert table[0] == exports.STUDENT_HEADERS
    assert table[1][:5] == ['S-a', 'Ada', 'Lovelace', '5th', 'active']
    assert table[1][9:12] == ['120.00', '35.00', '85.00']
    assert table[2][2] == 'Builder, Jr.'


def test_cells_with_commas_quotes_and_newlines_are_quoted():
    student = make_student('q', notes='Said "no", then\nleft')
    content = exports.students_csv([student], [], SchoolSettings())
    assert '"Said ""no"", then\nleft"' in content
    assert content.endswith('\n')
    assert rows(content)[1][-1] == 'Said "no", then\nleft'


def test_payments_csv_resolves_or_marks_references(ledger):
    students, payments = ledger
    table = rows(exports.payments_csv(students, payments, SchoolSettings()))

    assert table[0] == exports.PAYMENT_HEADERS
    by_amount = {row[4]: row for row in table[1:]}
    assert by_amount['30.00'][6] == 'Tuition: $30.00'
    assert by_amount['15.00'][1:3] == ['Unknown', 'Unknown Student']
    assert by_amount['15.00'][6] == 'Not applied'
    assert by_amount['5.00'][6] == 'Unknown Fee'


def test_payments_csv_newest_first_within_range(ledger):
    students, payments = ledger
    table = rows(exports.payments_csv(
        students, payments, SchoolSettings(date_format='yyyy-MM-dd'),
        start='2025-01-05', end='2025-01-15',
    ))
    assert [row[0] for row in table[1:]] == ['2025-01-15', '2025-01-12', '2025-01-05']


def test_bare_end_date_covers_the_whole_day(ledger):
    _, payments = ledger
    selected = exports.payments_in_range(payments, end=date(2025, 1, 15))
    assert [p.id for p in selected] == ['p3', 'p2', 'p1']


def test_unparseable_range_raises(ledger):
    _, payments = ledger
    with pytest.raises(ValueError):
        exports.payments_in_range(payments, start='last tuesday')


def test_outstanding_csv_largest_balance_first(ledger):
    students, payments = ledger
    table = rows(exports.outstanding_csv(students, payments, now=aware(2025, 1, 20)))

    assert table[0] == exports.OUTSTANDING_HEADERS
    assert [row[0] for row in table[1:]] == ['S-b', 'S-a']
    assert table[1][5] == '200.00'
    assert table[1][6] == 'None'
    assert table[2][5] == '85.00'
    assert table[2][6] == 'Tuition'


def test_fee_templates_csv_counts_assigned_students():
    templates = [make_template('tuition', due_day=15), make_template('bus', 'Bus', '40.00')]
    students = [
        make_student('a', fees=[make_line('x', template_id='tuition')]),
        make_student('b', fees=[make_line('y', template_id='tuition')]),
    ]
    table = rows(exports.fee_templates_csv(templates, students))

    assert table[0] == exports.FEE_TEMPLATE_HEADERS
    assert table[1] == ['Tuition', 'tuition', '500.00', 'one-time', '15', '2', '']
    assert table[2][4:6] == ['', '0']
