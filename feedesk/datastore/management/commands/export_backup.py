"""
datastore/management/commands/export_backup.py
──────────────────────────────────────────────
Write a full JSON backup to a file (or stdout) and record it as the last
backup.
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from datastore.store import get_store


class Command(BaseCommand):
    help = 'Export all students, fee templates, payments and settings as JSON'

    def add_arguments(self, parser):
        parser.add_argument(
            'path', nargs='?',
            help='Output file (default: school-fees-backup-YYYY-MM-DD.json; "-" for stdout)',
        )

    def handle(self, *args, **options):
        raw  = get_store().export_data()
        path = options['path'] or f'school-fees-backup-{timezone.localdate():%Y-%m-%d}.json'

        if path == '-':
            self.stdout.write(raw)
            return

        with open(path, 'w', encoding='utf-8') as fh:
            fh.write(raw)
        self.stdout.write(self.style.SUCCESS(f'Backup written to {path}'))
