"""
reports/invoices.py
───────────────────
Printable HTML invoices.

build_invoice_context(student, payments, school_settings, invoice_number, invoice_date)
    Everything the template needs, already computed: fee lines with what
    was applied and what is left, the student's payments newest first,
    totals and the outstanding balance.

render_invoice_html(...)
    Render reports/invoice.html with that context.

generate_invoices(store, student_pks, output_dir, pause=…)
    Number (if needed) and render invoices for several students, one after
    the other, writing ``invoice-<studentId>-<invoiceNumber>.html`` files.
"""

import logging
import os
import time
from datetime import timedelta

from django.conf import settings as django_settings
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.text import get_valid_filename

from ledger import engine
from ledger.invoicing import InvoiceSequencer

logger = logging.getLogger(__name__)

PAYMENT_TERMS_DAYS = 30


def invoice_filename(student, invoice_number, extension='html'):
    """A bare file name; path separators and other unsafe characters are dropped."""
    return get_valid_filename(f'invoice-{student.student_id}-{invoice_number}.{extension}')


def build_invoice_context(student, payments, school_settings, invoice_number, invoice_date=None):
    invoice_date = invoice_date or timezone.now()
    student = engine.refresh_student(student, invoice_date)
    own = sorted(engine.student_payments(student, payments), key=lambda p: p.date, reverse=True)

    return {
        'school':         school_settings,
        'currency':       school_settings.currency,
        'date_format':    school_settings.date_format,
        'student':        student,
        'invoice_number': invoice_number,
        'invoice_date':   invoice_date,
        'due_date':       invoice_date + timedelta(days=PAYMENT_TERMS_DAYS),
        'fee_lines': [
            {
                'line':    f,
                'applied': f.total_applied,
                'balance': f.balance,
            }
            for f in student.assigned_fees
        ],
        'payments':       own,
        'total_fees':     engine.total_fees(student),
        'total_paid':     engine.total_paid(student, payments),
        'outstanding':    engine.compute_outstanding(student, payments),
    }


def render_invoice_html(student, payments, school_settings, invoice_number, invoice_date=None):
    context = build_invoice_context(student, payments, school_settings, invoice_number, invoice_date)
    return render_to_string('reports/invoice.html', context)


def generate_invoices(store, student_pks, output_dir, pause=None, sleep=time.sleep, clock=timezone.now):
    """
    Render one invoice file per student in *student_pks*, sequentially,
    pausing *pause* seconds between files.  Students without an invoice
    number get one first.  Unknown ids are skipped with a warning.

    There is no rollback: a failure part-way leaves the files (and invoice
    numbers) already produced in place.  Returns the written paths.
    """
    if pause is None:
        pause = getattr(django_settings, 'FEEDESK_INVOICE_PAUSE', 1.0)
    sequencer = InvoiceSequencer(store, clock=clock)
    os.makedirs(output_dir, exist_ok=True)

    written = []
    for index, student_pk in enumerate(student_pks):
        student = store.get_student(student_pk)
        if student is None:
            logger.warning(f'Skipping invoice for unknown student {student_pk}')
            continue
        if index and pause:
            sleep(pause)

        student = sequencer.assign_if_missing(student)
        html = render_invoice_html(
            student, store.get_payments(), store.get_settings(),
            student.invoice_number, clock(),
        )
        path = os.path.join(output_dir, invoice_filename(student, student.invoice_number))
        with open(path, 'w', encoding='utf-8') as fh:
            fh.write(html)
        written.append(path)
        logger.info(f'Wrote invoice {student.invoice_number} for {student.student_id} to {path}')

    return written
