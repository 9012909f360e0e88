"""
reports/views.py
────────────────
Download endpoints: CSV reports, the JSON backup and single invoices.
Filenames carry today's date, e.g. ``students-2025-01-20.csv``.
"""

from django.core.exceptions import ValidationError
from django.http import HttpResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from datastore.store import get_store
from ledger.invoicing import InvoiceSequencer
from ledger.services import require_student
from ledger.views.utils import json_errors

from . import exports
from .invoices import invoice_filename, render_invoice_html


def _attachment(content, content_type, filename):
    response = HttpResponse(content, content_type=content_type)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def _csv(content, name):
    return _attachment(content, 'text/csv; charset=utf-8', f'{name}-{timezone.localdate():%Y-%m-%d}.csv')


@require_GET
def students_csv_view(req):
    store = get_store()
    return _csv(
        exports.students_csv(store.get_students(), store.get_payments(), store.get_settings()),
        'students',
    )


@json_errors
@require_GET
def payments_csv_view(req):
    """``?from=YYYY-MM-DD&to=YYYY-MM-DD`` limits the range (both inclusive)."""
    store = get_store()
    try:
        content = exports.payments_csv(
            store.get_students(), store.get_payments(), store.get_settings(),
            start=req.GET.get('from'), end=req.GET.get('to'),
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return _csv(content, 'payments')


@require_GET
def outstanding_csv_view(req):
    store = get_store()
    return _csv(exports.outstanding_csv(store.get_students(), store.get_payments()), 'outstanding-balances')


@require_GET
def fee_templates_csv_view(req):
    store = get_store()
    return _csv(exports.fee_templates_csv(store.get_fee_templates(), store.get_students()), 'fee-templates')


@require_GET
def backup_json_view(req):
    return _attachment(
        get_store().export_data(),
        'application/json',
        f'school-fees-backup-{timezone.localdate():%Y-%m-%d}.json',
    )


@json_errors
@require_GET
def invoice_view(req, student_pk):
    """
    The student's invoice as an HTML attachment.  The first invoice for a
    student issues their invoice number; later ones reuse it.
    """
    store   = get_store()
    student = require_student(store, student_pk)
    student = InvoiceSequencer(store).assign_if_missing(student)
    html = render_invoice_html(
        student, store.get_payments(), store.get_settings(),
        student.invoice_number, timezone.now(),
    )
    if req.GET.get('inline'):
        return HttpResponse(html, content_type='text/html; charset=utf-8')
    return _attachment(html, 'text/html; charset=utf-8', invoice_filename(student, student.invoice_number))
