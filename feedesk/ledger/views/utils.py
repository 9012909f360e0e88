"""
ledger/views/utils.py
─────────────────────
Shared helpers for the JSON view modules.
Nothing here imports from other view modules (no circular imports).
"""

import json
import logging
import re
from functools import wraps

from django.core.exceptions import ValidationError
from django.http import HttpResponseNotAllowed, JsonResponse

from datastore.exceptions import ConcurrentWriteError, StorageReadError

from ..exceptions import OrphanedPaymentsError, ReferentialIntegrityError

logger = logging.getLogger(__name__)


# ── Method guards ─────────────────────────────────────────────────────────────

def require_POST_or_405(view_fn):
    """Decorator: return 405 for any non-POST request."""
    @wraps(view_fn)
    def wrapper(req, *args, **kwargs):
        if req.method != 'POST':
            return HttpResponseNotAllowed(['POST'])
        return view_fn(req, *args, **kwargs)
    return wrapper


# ── Error mapping ─────────────────────────────────────────────────────────────

def error_response(messages, status=400, **extra):
    return JsonResponse({'errors': list(messages), **extra}, status=status)


def form_error_response(form):
    """400 with every form error flattened, plus the per-field breakdown."""
    fields = {name: [e['message'] for e in errors] for name, errors in form.errors.get_json_data().items()}
    flat = [message for messages in fields.values() for message in messages]
    return error_response(flat, fields=fields)


def json_errors(view_fn):
    """
    Decorator: turn ledger and storage exceptions into JSON error responses.

    ValidationError            → 400
    ReferentialIntegrityError  → 404 (409 when it would orphan payments)
    ConcurrentWriteError       → 409
    StorageReadError           → 500
    """
    @wraps(view_fn)
    def wrapper(req, *args, **kwargs):
        try:
            return view_fn(req, *args, **kwargs)
        except ValidationError as exc:
            return error_response(exc.messages, status=400)
        except OrphanedPaymentsError as exc:
            return error_response([str(exc)], status=409, paymentIds=exc.payment_ids)
        except ReferentialIntegrityError as exc:
            return error_response([str(exc)], status=404)
        except ConcurrentWriteError as exc:
            logger.warning(f'{req.method} {req.path}: {exc}')
            return error_response(['The data changed while saving; please try again.'], status=409)
        except StorageReadError as exc:
            logger.error(f'{req.method} {req.path}: {exc}')
            return error_response(['Stored data could not be read.'], status=500)
    return wrapper


# ── Request payloads ──────────────────────────────────────────────────────────

_CAMEL = re.compile(r'(?<!^)(?=[A-Z])')


def snake_case(key):
    return _CAMEL.sub('_', key).lower()


def read_payload(req):
    """
    Top-level request fields with camelCase keys turned into snake_case.
    JSON bodies are decoded; form posts come back as a plain dict with
    list values kept for repeated keys.
    """
    if req.content_type == 'application/json':
        try:
            data = json.loads(req.body or b'{}')
        except ValueError as exc:
            raise ValidationError(f'Request body is not valid JSON: {exc}') from exc
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object.')
    else:
        data = {
            key: values if len(values) > 1 else values[0]
            for key, values in req.POST.lists()
        }
    return {snake_case(key): value for key, value in data.items()}


def flag(value):
    """Truthiness of a query-string or payload flag ('1', 'true', True …)."""
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in ('1', 'true', 'yes', 'on')
