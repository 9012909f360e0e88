"""
ledger/invoicing.py
───────────────────
Invoice numbers: ``<prefix>-<year>-<seq>``, e.g. ``INV-2025-0001``.

The sequence lives in SchoolSettings.invoice_seq (the *next* number to
hand out).  ``next_invoice_number`` advances it through the store's
optimistic read-modify-write, so two concurrent callers can never be
issued the same number; a number whose student write later fails is
simply skipped, never reused.
"""

import logging
from dataclasses import replace

from django.utils import timezone

logger = logging.getLogger(__name__)


def format_invoice_number(seq, year, prefix='INV'):
    return f'{prefix or "INV"}-{year}-{int(seq):04d}'


class InvoiceSequencer:
    def __init__(self, store, clock=timezone.now):
        self.store = store
        self.clock = clock

    def next_invoice_number(self):
        """Issue the next number and persist ``seq + 1``."""
        issued = {}

        def advance(school_settings):
            issued['seq']    = school_settings.invoice_seq
            issued['prefix'] = school_settings.invoice_prefix
            return school_settings.updated(invoice_seq=school_settings.invoice_seq + 1)

        self.store.update_settings(advance)
        number = format_invoice_number(issued['seq'], self.clock().year, issued['prefix'])
        logger.info(f'Issued invoice number {number}')
        return number

    def assign_if_missing(self, student):
        """
        The student's invoice number, issuing and persisting one first if
        they have none.  Returns the (possibly updated) student.
        """
        if student.invoice_number:
            return student

        number = self.next_invoice_number()
        claimed = {}

        def claim(students):
            result = []
            for s in students:
                if s.id == student.id:
                    # Another writer may have numbered the student meanwhile.
                    if not s.invoice_number:
                        s.invoice_number = number
                    claimed['student'] = s
                result.append(s)
            return result

        self.store.modify_students(claim)
        if 'student' not in claimed:
            logger.warning(f'Invoice number {number} issued for unknown student {student.id}')
            return replace(student, invoice_number=number)
        return claimed['student']

    def backfill(self):
        """Number every student who has no invoice number yet, in roster order."""
        numbered = []
        for student in self.store.get_students():
            if not student.invoice_number:
                numbered.append(self.assign_if_missing(student))
        logger.info(f'Backfilled invoice numbers for {len(numbered)} student(s)')
        return numbered
