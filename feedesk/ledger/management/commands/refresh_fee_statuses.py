"""
ledger/management/commands/refresh_fee_statuses.py
──────────────────────────────────────────────────
Re-derive every stored fee-line status.  Run daily (cron) so lines whose
due date passed overnight show as overdue.
"""

from django.core.management.base import BaseCommand

from datastore.store import get_store
from ledger.services import refresh_statuses


class Command(BaseCommand):
    help = 'Recompute fee-line statuses (open / partial / paid / overdue)'

    def handle(self, *args, **options):
        changed = refresh_statuses(get_store())
        self.stdout.write(self.style.SUCCESS(f'{changed} fee line(s) changed status.'))
