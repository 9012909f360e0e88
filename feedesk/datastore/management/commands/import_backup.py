"""
datastore/management/commands/import_backup.py
──────────────────────────────────────────────
Replace all stored data with a JSON backup.  A backup that fails
validation imports nothing.
"""

from django.core.management.base import BaseCommand, CommandError

from datastore.exceptions import ImportDataError
from datastore.store import get_store


class Command(BaseCommand):
    help = 'Import a JSON backup, replacing all current data'

    def add_arguments(self, parser):
        parser.add_argument('path', help='Backup file produced by export_backup')
        parser.add_argument(
            '--yes', action='store_true',
            help='Do not ask for confirmation before replacing current data',
        )

    def handle(self, *args, **options):
        try:
            with open(options['path'], encoding='utf-8') as fh:
                raw = fh.read()
        except OSError as exc:
            raise CommandError(f'Cannot read {options["path"]}: {exc}') from exc

        if not options['yes']:
            answer = input('This replaces ALL current data. Continue? [y/N] ')
            if answer.strip().lower() not in ('y', 'yes'):
                self.stdout.write(self.style.WARNING('Import cancelled.'))
                return

        try:
            get_store().load_backup(raw)
        except ImportDataError as exc:
            raise CommandError('; '.join(exc.messages)) from exc
        self.stdout.write(self.style.SUCCESS('Data imported successfully.'))
