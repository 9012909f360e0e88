"""
datastore/signals.py
────────────────────
``document_changed`` is sent by an EntityStore after every successful write
or delete.  ``sender`` is the store, ``key`` the collection name
('students', 'feeTemplates', 'payments', 'settings', 'metadata').

Observers usually go through ``EntityStore.on_change`` rather than
connecting here directly.
"""

from django.dispatch import Signal

document_changed = Signal()
