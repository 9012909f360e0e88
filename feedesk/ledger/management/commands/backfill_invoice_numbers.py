"""
ledger/management/commands/backfill_invoice_numbers.py
──────────────────────────────────────────────────────
Give every student without an invoice number one, in roster order.
Students that already have a number keep it.
"""

from django.core.management.base import BaseCommand

from datastore.store import get_store
from ledger.invoicing import InvoiceSequencer


class Command(BaseCommand):
    help = 'Assign invoice numbers to every student who does not have one yet'

    def handle(self, *args, **options):
        numbered = InvoiceSequencer(get_store()).backfill()
        for student in numbered:
            self.stdout.write(f'  ✓ {student.student_id} {student.full_name}: {student.invoice_number}')
        self.stdout.write(self.style.SUCCESS(f'Numbered {len(numbered)} student(s).'))
