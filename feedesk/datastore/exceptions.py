"""
datastore/exceptions.py
───────────────────────
Errors raised at the storage boundary.

A key that was never written is not an error (callers get the default);
a key whose content cannot be decoded is, so "no data" and "failed to read"
never look the same.
"""

from django.core.exceptions import ValidationError


class StorageError(Exception):
    pass


class StorageReadError(StorageError):
    def __init__(self, key, reason):
        super().__init__(f'Could not read {key!r}: {reason}')
        self.key = key


class ConcurrentWriteError(StorageError):
    """Someone else wrote the document between our read and our write."""

    def __init__(self, key, expected, actual):
        super().__init__(
            f'{key!r} changed underneath us (expected revision {expected}, found {actual})'
        )
        self.key      = key
        self.expected = expected
        self.actual   = actual


class ImportDataError(ValidationError):
    """A backup document was rejected; nothing was imported."""
