"""
Shared pytest fixtures.

Every test runs against a fresh in-memory store unless it builds its own
(e.g. a database-backed one).
"""

import pytest

from datastore.backends import MemoryBackend
from datastore.store import EntityStore, get_store
from ledger.tests.factories import aware


@pytest.fixture(autouse=True)
def memory_storage(settings):
    settings.FEEDESK_STORAGE_BACKEND = 'datastore.backends.MemoryBackend'
    settings.FEEDESK_INVOICE_PAUSE = 0
    get_store.cache_clear()
    yield
    get_store.cache_clear()


@pytest.fixture
def store():
    """The process-wide store the views use, backed by memory."""
    return get_store()


@pytest.fixture
def memory_store():
    return EntityStore(backend=MemoryBackend())


@pytest.fixture
def now():
    return aware(2025, 1, 20, 10, 0)
