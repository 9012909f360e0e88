"""
ledger/views/school.py
──────────────────────
School-wide endpoints: settings, status refresh, invoice numbering,
backup import and the full data wipe.
"""

import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from datastore.store import get_store

from .. import services
from ..forms import SettingsForm
from ..invoicing import InvoiceSequencer
from .utils import error_response, flag, form_error_response, json_errors, read_payload, require_POST_or_405

logger = logging.getLogger(__name__)


# ── Settings ──────────────────────────────────────────────────────────────────

@json_errors
@require_http_methods(['GET', 'POST'])
def school_settings_json(req):
    """
    GET  – the effective settings (stored values merged over defaults).
    POST – update; fields left out keep their current value.
    """
    store   = get_store()
    current = store.get_settings()

    if req.method == 'POST':
        initial = {
            'school_name':    current.school_name,
            'currency':       current.currency,
            'academic_year':  current.academic_year,
            'invoice_prefix': current.invoice_prefix,
            'date_format':    current.date_format,
        }
        form = SettingsForm({**initial, **read_payload(req)})
        if not form.is_valid():
            return form_error_response(form)
        changes = form.changes()
        current = store.update_settings(lambda s: s.updated(**changes))
        logger.info(f'Updated school settings: {", ".join(sorted(changes))}')

    return JsonResponse(current.to_dict())


# ── Maintenance ───────────────────────────────────────────────────────────────

@json_errors
@require_POST_or_405
def refresh_statuses_view(req):
    changed = services.refresh_statuses(get_store())
    return JsonResponse({'changed': changed})


@json_errors
@require_POST_or_405
def invoice_number_view(req, student_pk):
    """The student's invoice number, issuing one on first use."""
    store   = get_store()
    student = services.require_student(store, student_pk)
    student = InvoiceSequencer(store).assign_if_missing(student)
    return JsonResponse({'studentId': student.id, 'invoiceNumber': student.invoice_number})


@json_errors
@require_POST_or_405
def backfill_invoice_numbers_view(req):
    numbered = InvoiceSequencer(get_store()).backfill()
    return JsonResponse({
        'numbered': [{'studentId': s.id, 'invoiceNumber': s.invoice_number} for s in numbered],
    })


# ── Backup & wipe ─────────────────────────────────────────────────────────────

@json_errors
@require_POST_or_405
def import_backup_view(req):
    """
    Replace everything with an uploaded backup (``file``) or a raw JSON
    body.  A rejected backup changes nothing.
    """
    upload = req.FILES.get('file')
    raw = upload.read().decode('utf-8') if upload else req.body.decode('utf-8')
    get_store().load_backup(raw)
    return JsonResponse({'imported': True})


@json_errors
@require_POST_or_405
def clear_data_view(req):
    if not flag(req.POST.get('confirm') or read_payload(req).get('confirm')):
        return error_response(['Pass confirm=1 to delete all data.'])
    get_store().clear_all_data()
    return JsonResponse({'cleared': True})
