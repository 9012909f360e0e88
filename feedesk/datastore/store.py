"""
datastore/store.py
──────────────────
EntityStore – durable home of the four collections (students, fee
templates, payments, settings) plus a metadata record.

Each collection is one JSON document under a namespaced key and is always
read and written whole.  Writes go through ``_mutate`` which re-reads the
document, applies the change and writes back with the revision it read; if
another writer got there first the change is replayed on fresh data, up to
FEEDESK_WRITE_RETRIES times.

Observers register with ``on_change(callback)`` and are told the collection
name after every write.  The store holds no ledger rules: it validates
shape, not money.
"""

import json
import logging
from dataclasses import replace
from decimal import Decimal
from functools import lru_cache

from django.conf import settings as django_settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from ledger.entities import AppMetadata, FeeTemplate, Payment, SchoolSettings, Student

from .backends import get_backend
from .exceptions import ConcurrentWriteError, ImportDataError, StorageReadError
from .signals import document_changed

logger = logging.getLogger(__name__)

STORAGE_PREFIX = 'tfm:v0:'

STUDENTS      = 'students'
FEE_TEMPLATES = 'feeTemplates'
PAYMENTS      = 'payments'
SETTINGS      = 'settings'
METADATA      = 'metadata'

COLLECTIONS = (STUDENTS, FEE_TEMPLATES, PAYMENTS, SETTINGS, METADATA)


class LedgerJSONEncoder(DjangoJSONEncoder):
    """Money goes out as a JSON number; everything else as DjangoJSONEncoder does it."""

    def default(self, o):
        if isinstance(o, Decimal):
            return float(o)
        return super().default(o)


def _dumps(value, indent=None):
    return json.dumps(value, cls=LedgerJSONEncoder, indent=indent)


class EntityStore:
    def __init__(self, backend=None, prefix=None, retries=None):
        self.backend = backend or get_backend()
        self.prefix  = prefix if prefix is not None else getattr(
            django_settings, 'FEEDESK_STORAGE_PREFIX', STORAGE_PREFIX,
        )
        self.retries = retries if retries is not None else getattr(
            django_settings, 'FEEDESK_WRITE_RETRIES', 3,
        )

    def __repr__(self):
        return f'<EntityStore {type(self.backend).__name__} prefix={self.prefix!r}>'

    # ── Raw documents ─────────────────────────────────────────────────────────

    def _key(self, name):
        return f'{self.prefix}{name}'

    def _load(self, name, default):
        """Return ``(document, revision)``; *default* when never written."""
        key = self._key(name)
        raw, revision = self.backend.read(key)
        if raw is None:
            return default, revision
        try:
            return json.loads(raw), revision
        except ValueError as exc:
            logger.error(f'Error reading {key} from storage: {exc}')
            raise StorageReadError(key, exc) from exc

    def _save(self, name, document, expected_revision=None):
        revision = self.backend.write(self._key(name), _dumps(document), expected_revision)
        document_changed.send(sender=self, key=name)
        return revision

    def _mutate(self, name, default, change):
        """
        Read-modify-write *name* with an optimistic revision check.
        *change* receives the decoded document and returns the new one;
        it may run more than once, so it must not have side effects.
        """
        for attempt in range(self.retries + 1):
            document, revision = self._load(name, default)
            updated = change(document)
            try:
                self._save(name, updated, expected_revision=revision)
                return updated
            except ConcurrentWriteError:
                if attempt == self.retries:
                    logger.error(f'Giving up on {name} after {attempt + 1} conflicting writes')
                    raise
                logger.warning(f'Concurrent write on {name}; retrying ({attempt + 1})')

    def atomic(self):
        """Context manager: writes inside land together or not at all."""
        return self.backend.atomic()

    # ── Observers ─────────────────────────────────────────────────────────────

    def on_change(self, callback):
        """
        Call ``callback(collection_name)`` after every write through this
        store.  Returns a function that unsubscribes.
        """
        def receiver(sender, key, **kwargs):
            callback(key)

        document_changed.connect(receiver, sender=self, weak=False)

        def unsubscribe():
            document_changed.disconnect(receiver, sender=self)

        return unsubscribe

    # ── Students ──────────────────────────────────────────────────────────────

    def get_students(self):
        documents, _ = self._load(STUDENTS, [])
        return [Student.from_dict(d) for d in documents]

    def set_students(self, students):
        self._save(STUDENTS, [s.to_dict() for s in students])

    def get_student(self, student_pk):
        return next((s for s in self.get_students() if s.id == student_pk), None)

    def modify_students(self, change):
        """
        Read-modify-write the whole roster.  *change* takes the current list
        of Students and returns the new list; it is replayed on fresh data if
        another writer interleaves, so it must not have side effects beyond
        its return value.
        """
        def apply(documents):
            return [s.to_dict() for s in change([Student.from_dict(d) for d in documents])]

        return [Student.from_dict(d) for d in self._mutate(STUDENTS, [], apply)]

    def add_student(self, student):
        self.modify_students(lambda students: students + [student])

    def update_student(self, student_pk, **changes):
        """
        Merge *changes* (attribute names) into the stored student and write
        the whole record back.  Returns the updated Student, or None when no
        student has that id.
        """
        def change(students):
            return [replace(s, **changes) if s.id == student_pk else s for s in students]

        students = self.modify_students(change)
        return next((s for s in students if s.id == student_pk), None)

    def replace_student(self, student):
        """Overwrite the stored record that has ``student.id``."""
        self.modify_students(lambda students: [student if s.id == student.id else s for s in students])

    def delete_student(self, student_pk):
        self.modify_students(lambda students: [s for s in students if s.id != student_pk])

    # ── Fee templates ─────────────────────────────────────────────────────────

    def get_fee_templates(self):
        documents, _ = self._load(FEE_TEMPLATES, [])
        return [FeeTemplate.from_dict(d) for d in documents]

    def set_fee_templates(self, templates):
        self._save(FEE_TEMPLATES, [t.to_dict() for t in templates])

    def get_fee_template(self, template_pk):
        return next((t for t in self.get_fee_templates() if t.id == template_pk), None)

    def modify_fee_templates(self, change):
        def apply(documents):
            return [t.to_dict() for t in change([FeeTemplate.from_dict(d) for d in documents])]

        return [FeeTemplate.from_dict(d) for d in self._mutate(FEE_TEMPLATES, [], apply)]

    def add_fee_template(self, template):
        self.modify_fee_templates(lambda templates: templates + [template])

    def update_fee_template(self, template_pk, **changes):
        def change(templates):
            return [replace(t, **changes) if t.id == template_pk else t for t in templates]

        templates = self.modify_fee_templates(change)
        return next((t for t in templates if t.id == template_pk), None)

    def delete_fee_template(self, template_pk):
        self.modify_fee_templates(lambda templates: [t for t in templates if t.id != template_pk])

    # ── Payments ──────────────────────────────────────────────────────────────

    def get_payments(self):
        documents, _ = self._load(PAYMENTS, [])
        return [Payment.from_dict(d) for d in documents]

    def set_payments(self, payments):
        self._save(PAYMENTS, [p.to_dict() for p in payments])

    def add_payment(self, payment):
        self._mutate(PAYMENTS, [], lambda docs: docs + [payment.to_dict()])

    # ── Settings & metadata ───────────────────────────────────────────────────

    def get_settings(self):
        document, _ = self._load(SETTINGS, {})
        return SchoolSettings.from_dict(document)

    def set_settings(self, school_settings):
        self._save(SETTINGS, school_settings.to_dict())

    def update_settings(self, change):
        """
        Read-modify-write the settings.  *change* takes a SchoolSettings and
        returns the new one; returns what was written.
        """
        def apply(document):
            return change(SchoolSettings.from_dict(document)).to_dict()

        return SchoolSettings.from_dict(self._mutate(SETTINGS, {}, apply))

    def get_metadata(self):
        document, _ = self._load(METADATA, {})
        return AppMetadata.from_dict(document)

    def set_metadata(self, metadata):
        self._save(METADATA, metadata.to_dict())

    # ── Backup & restore ──────────────────────────────────────────────────────

    def export_data(self):
        """
        Serialize every collection plus metadata and an export timestamp into
        one JSON document.  Records the export as the last backup.
        """
        now = timezone.now()
        metadata = self.get_metadata()
        metadata.last_backup = now
        data = {
            'students':     [s.to_dict() for s in self.get_students()],
            'feeTemplates': [t.to_dict() for t in self.get_fee_templates()],
            'payments':     [p.to_dict() for p in self.get_payments()],
            'settings':     self.get_settings().to_dict(),
            'metadata':     metadata.to_dict(),
            'exportedAt':   now.isoformat(),
        }
        self.set_metadata(metadata)
        return _dumps(data, indent=2)

    def import_data(self, raw):
        """
        Replace all collections from a backup produced by ``export_data``.
        Returns True on success, False (after logging why) on rejection.
        """
        try:
            self.load_backup(raw)
        except ImportDataError as exc:
            logger.error(f'Error importing data: {"; ".join(exc.messages)}')
            return False
        return True

    def load_backup(self, raw):
        """
        Like ``import_data`` but raises ImportDataError.  Every record is
        decoded before anything is written, so a bad backup imports nothing.
        Sections other than ``students`` fall back to empty / current values.
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ImportDataError(f'Backup is not valid JSON: {exc}') from exc
        if not isinstance(data, dict) or not isinstance(data.get('students'), list):
            raise ImportDataError('Invalid data format: a "students" list is required.')

        try:
            students  = [Student.from_dict(d) for d in data['students']]
            templates = [FeeTemplate.from_dict(d) for d in data.get('feeTemplates') or []]
            payments  = [Payment.from_dict(d) for d in data.get('payments') or []]
            school_settings = (
                SchoolSettings.from_dict(data['settings'])
                if data.get('settings') else self.get_settings()
            )
            metadata = (
                AppMetadata.from_dict(data['metadata'])
                if data.get('metadata') else self.get_metadata()
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ImportDataError(f'Backup contains a malformed record: {exc}') from exc

        with self.atomic():
            self.set_students(students)
            self.set_fee_templates(templates)
            self.set_payments(payments)
            self.set_settings(school_settings)
            self.set_metadata(metadata)
        logger.info(
            f'Imported {len(students)} students, {len(templates)} fee templates, '
            f'{len(payments)} payments'
        )

    def clear_all_data(self):
        with self.atomic():
            for name in COLLECTIONS:
                self.backend.delete(self._key(name))
        for name in COLLECTIONS:
            document_changed.send(sender=self, key=name)
        logger.info('Cleared all stored data')


@lru_cache(maxsize=None)
def get_store():
    """The process-wide store built from settings.  ``get_store.cache_clear()`` resets it."""
    return EntityStore()
