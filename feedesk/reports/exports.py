"""
reports/exports.py
──────────────────
CSV projections of the ledger for download.

Amounts are plain two-decimal numbers ('1234.50') except inside the
"Applied To" column of the payments export, which reads like a sentence
and uses the school currency.  Cells containing a comma, double quote or
newline are quoted with inner quotes doubled (csv.QUOTE_MINIMAL).

References that no longer resolve are rendered, never raised: a payment
allocation whose fee line is gone shows as "Unknown Fee", a payment whose
student was deleted as "Unknown" / "Unknown Student".
"""

import csv
import io
from datetime import date, datetime, time

from django.utils import timezone

from core.utils import format_amount, format_currency, format_date, parse_instant
from ledger import engine
from ledger.assignment import students_with_template

STUDENT_HEADERS = [
    'Student ID', 'First Name', 'Last Name', 'Grade', 'Status',
    'Contact Phone', 'Contact Email', 'Guardian Name', 'Enrollment Date',
    'Total Fees', 'Total Paid', 'Outstanding Balance', 'Notes',
]
PAYMENT_HEADERS = [
    'Payment Date', 'Student ID', 'Student Name', 'Grade', 'Amount',
    'Method', 'Applied To', 'Notes',
]
OUTSTANDING_HEADERS = [
    'Student ID', 'Student Name', 'Grade', 'Contact Email', 'Guardian Name',
    'Outstanding Balance', 'Overdue Fees',
]
FEE_TEMPLATE_HEADERS = [
    'Fee Name', 'Category', 'Amount', 'Frequency', 'Due Day',
    'Assigned Students', 'Notes',
]


def to_csv(rows):
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator='\n')
    writer.writerows(rows)
    return buf.getvalue()


# ── Students ──────────────────────────────────────────────────────────────────

def students_csv(students, payments, school_settings):
    rows = [STUDENT_HEADERS]
    for s in students:
        rows.append([
            s.student_id,
            s.first_name,
            s.last_name,
            s.grade,
            str(s.status),
            s.contact_phone,
            s.contact_email,
            s.guardian_name,
            format_date(s.enrollment_date, school_settings.date_format),
            format_amount(engine.total_fees(s)),
            format_amount(engine.total_paid(s, payments)),
            format_amount(engine.compute_outstanding(s, payments)),
            s.notes,
        ])
    return to_csv(rows)


# ── Payments ──────────────────────────────────────────────────────────────────

def _range_bound(value, end=False):
    """
    Aware datetime for a range bound.  A bare date used as the end bound
    covers that whole day.
    """
    if value in (None, ''):
        return None
    if isinstance(value, date) and not isinstance(value, datetime) and end:
        return timezone.make_aware(datetime.combine(value, time.max))
    if isinstance(value, str) and end and len(value.strip()) == 10:
        return parse_instant(value).replace(hour=23, minute=59, second=59, microsecond=999999)
    return parse_instant(value)


def payments_in_range(payments, start=None, end=None):
    """Payments with ``start <= date <= end`` (either bound optional), newest first."""
    start = _range_bound(start)
    end   = _range_bound(end, end=True)
    selected = [
        p for p in payments
        if p.date
        and (start is None or p.date >= start)
        and (end is None or p.date <= end)
    ]
    return sorted(selected, key=lambda p: p.date, reverse=True)


def applied_to_text(payment, student, currency):
    if not payment.applied_to:
        return 'Not applied'
    parts = []
    for allocation in payment.applied_to:
        line = student.fee_line(allocation.fee_line_id) if student else None
        if line is None:
            parts.append('Unknown Fee')
        else:
            parts.append(f'{line.title}: {format_currency(allocation.amount, currency)}')
    return '; '.join(parts)


def payments_csv(students, payments, school_settings, start=None, end=None):
    by_id = {s.id: s for s in students}
    rows  = [PAYMENT_HEADERS]
    for p in payments_in_range(payments, start, end):
        student = by_id.get(p.student_id)
        rows.append([
            format_date(p.date, school_settings.date_format),
            student.student_id if student else 'Unknown',
            student.full_name if student else 'Unknown Student',
            student.grade if student else '',
            format_amount(p.amount),
            p.method,
            applied_to_text(p, student, school_settings.currency),
            p.notes,
        ])
    return to_csv(rows)


# ── Outstanding balances ──────────────────────────────────────────────────────

def outstanding_csv(students, payments, now=None):
    """Students who still owe something, largest balance first."""
    now = now or timezone.now()
    owing = [(s, engine.compute_outstanding(s, payments)) for s in students]
    owing = sorted((pair for pair in owing if pair[1] > 0), key=lambda pair: pair[1], reverse=True)

    rows = [OUTSTANDING_HEADERS]
    for s, outstanding in owing:
        overdue = [f.title for f in s.assigned_fees if engine.is_past_due(f, now)]
        rows.append([
            s.student_id,
            s.full_name,
            s.grade,
            s.contact_email,
            s.guardian_name,
            format_amount(outstanding),
            '; '.join(overdue) or 'None',
        ])
    return to_csv(rows)


# ── Fee templates ─────────────────────────────────────────────────────────────

def fee_templates_csv(templates, students):
    rows = [FEE_TEMPLATE_HEADERS]
    for t in templates:
        rows.append([
            t.title,
            str(t.category),
            format_amount(t.amount),
            str(t.frequency),
            '' if t.due_day is None else str(t.due_day),
            str(len(students_with_template(students, t.id))),
            t.notes,
        ])
    return to_csv(rows)
