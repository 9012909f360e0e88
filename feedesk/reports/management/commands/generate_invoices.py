"""
reports/management/commands/generate_invoices.py
────────────────────────────────────────────────
Write HTML invoices for some or all students into a directory, one file
at a time with a pause in between (FEEDESK_INVOICE_PAUSE seconds).
"""

from django.core.management.base import BaseCommand, CommandError

from datastore.store import get_store
from reports.invoices import generate_invoices


class Command(BaseCommand):
    help = 'Generate HTML invoice files for students'

    def add_arguments(self, parser):
        parser.add_argument('output_dir', help='Directory to write invoice files into')
        parser.add_argument(
            '--student', action='append', dest='students', default=[],
            help='Internal id of a student to invoice (repeatable; default: all)',
        )
        parser.add_argument('--grade', help='Only students in this grade')
        parser.add_argument('--active-only', action='store_true', help='Skip inactive students')
        parser.add_argument('--pause', type=float, help='Seconds between invoices')

    def handle(self, *args, **options):
        store    = get_store()
        students = store.get_students()

        if options['students']:
            known   = {s.id for s in students}
            missing = [pk for pk in options['students'] if pk not in known]
            if missing:
                raise CommandError(f'Unknown student(s): {", ".join(missing)}')
            selected = options['students']
        else:
            selected = [
                s.id for s in students
                if (not options['grade'] or s.grade == options['grade'])
                and (not options['active_only'] or s.is_active)
            ]

        if not selected:
            self.stdout.write(self.style.WARNING('No students to invoice.'))
            return

        self.stdout.write(f'Generating {len(selected)} invoice(s)...')
        written = generate_invoices(store, selected, options['output_dir'], pause=options['pause'])
        for path in written:
            self.stdout.write(f'  ✓ {path}')
        self.stdout.write(self.style.SUCCESS(f'Wrote {len(written)} invoice(s).'))
