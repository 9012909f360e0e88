"""
core/context_processors.py
──────────────────────────
Global template context injected into every request.

Registered in settings.py → TEMPLATES[0]['OPTIONS']['context_processors'].
"""

import logging

from datastore.exceptions import StorageError

logger = logging.getLogger(__name__)


def school_settings(request):
    """
    Injects the school's settings so every page can show the school name
    and format money in the school's currency:

        school          – the SchoolSettings record (defaults when unset)
        school_name     – shortcut for the page header
        school_currency – ISO code used by the currency filters
    """
    # Import here to avoid circular imports during app startup
    from datastore.store import get_store

    try:
        settings = get_store().get_settings()
    except StorageError as exc:
        logger.error(f'School settings unavailable for {request.path}: {exc}')
        return {}

    return {
        'school':          settings,
        'school_name':     settings.school_name,
        'school_currency': settings.currency,
    }
