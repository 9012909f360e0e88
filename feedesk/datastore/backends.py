"""
datastore/backends.py
─────────────────────
Persistence ports for the entity store.

Every backend stores opaque strings under string keys and keeps a revision
counter per key (0 = never written).  ``write`` with an ``expected_revision``
refuses to overwrite a document that changed since it was read.

MemoryBackend   – a dict behind a lock; used by tests and scratch sessions.
DatabaseBackend – one StoredDocument row per key.
"""

import copy
import logging
import threading
from contextlib import contextmanager

from django.conf import settings
from django.db import transaction
from django.utils.module_loading import import_string

from .exceptions import ConcurrentWriteError

logger = logging.getLogger(__name__)


class BaseBackend:
    def read(self, key):
        """Return ``(raw, revision)``; ``(None, 0)`` when *key* was never written."""
        raise NotImplementedError

    def write(self, key, raw, expected_revision=None):
        """Store *raw* under *key* and return the new revision."""
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def keys(self, prefix=''):
        raise NotImplementedError

    @contextmanager
    def atomic(self):
        """Group several writes so they land together or not at all."""
        yield


class MemoryBackend(BaseBackend):
    def __init__(self):
        self._data = {}
        self._lock = threading.RLock()

    def read(self, key):
        with self._lock:
            return self._data.get(key, (None, 0))

    def write(self, key, raw, expected_revision=None):
        with self._lock:
            current = self._data.get(key, (None, 0))[1]
            if expected_revision is not None and expected_revision != current:
                raise ConcurrentWriteError(key, expected_revision, current)
            self._data[key] = (raw, current + 1)
            return current + 1

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix=''):
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    @contextmanager
    def atomic(self):
        with self._lock:
            snapshot = copy.copy(self._data)
            try:
                yield
            except BaseException:
                self._data = snapshot
                raise


class DatabaseBackend(BaseBackend):
    def read(self, key):
        from .models import StoredDocument

        row = StoredDocument.objects.filter(key=key).values_list('value', 'revision').first()
        if row is None:
            return None, 0
        return row

    def write(self, key, raw, expected_revision=None):
        from .models import StoredDocument

        with transaction.atomic():
            doc = StoredDocument.objects.select_for_update().filter(key=key).first()
            current = doc.revision if doc else 0
            if expected_revision is not None and expected_revision != current:
                raise ConcurrentWriteError(key, expected_revision, current)
            if doc is None:
                doc = StoredDocument.objects.create(key=key, value=raw, revision=1)
            else:
                doc.value    = raw
                doc.revision = current + 1
                doc.save(update_fields=['value', 'revision', 'updated_at'])
            return doc.revision

    def delete(self, key):
        from .models import StoredDocument

        StoredDocument.objects.filter(key=key).delete()

    def keys(self, prefix=''):
        from .models import StoredDocument

        return list(
            StoredDocument.objects
            .filter(key__startswith=prefix)
            .order_by('key')
            .values_list('key', flat=True)
        )

    @contextmanager
    def atomic(self):
        with transaction.atomic():
            yield


def get_backend(path=None):
    """Instantiate the backend named by *path* or FEEDESK_STORAGE_BACKEND."""
    path = path or getattr(settings, 'FEEDESK_STORAGE_BACKEND', 'datastore.backends.DatabaseBackend')
    logger.debug(f'Using storage backend {path}')
    return import_string(path)()
