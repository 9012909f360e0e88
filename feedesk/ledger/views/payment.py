"""
ledger/views/payment.py
───────────────────────
Payment endpoints: list, record (manual or auto-applied allocations) and
an auto-allocation preview.
"""

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_http_methods

from core.utils import parse_instant
from datastore.store import get_store

from .. import engine, services
from ..forms import PaymentForm
from .utils import form_error_response, json_errors, read_payload, require_POST_or_405


def _bound(value, name):
    try:
        return parse_instant(value)
    except ValueError as exc:
        raise ValidationError(f'Invalid {name} date: {value}') from exc


@json_errors
@require_http_methods(['GET', 'POST'])
def payments_json(req):
    """
    GET  – payments newest first, optionally for one ``student`` and within
           ``from`` / ``to`` (inclusive).
    POST – record a payment; ``autoApply`` spreads it over the student's
           open fee lines, otherwise ``allocations`` say where it goes.
    """
    store = get_store()

    if req.method == 'POST':
        form = PaymentForm(read_payload(req), school_settings=store.get_settings())
        if not form.is_valid():
            return form_error_response(form)
        data = form.cleaned_data
        payment, student = services.record_payment(
            store,
            data['student_id'],
            data['amount'],
            data['method'],
            date=data['date'],
            allocations=data['allocations'],
            notes=data['notes'],
            auto_apply=data['auto_apply'],
        )
        return JsonResponse({
            'payment':         payment.to_dict(),
            'unappliedAmount': payment.unapplied_amount,
            'feeLines':        [f.to_dict() for f in engine.refresh_student(student).assigned_fees],
        }, status=201)

    start = _bound(req.GET.get('from'), 'start')
    end   = _bound(req.GET.get('to'), 'end')
    payments = [
        p for p in store.get_payments()
        if (not req.GET.get('student') or p.student_id == req.GET['student'])
        and (start is None or p.date >= start)
        and (end is None or p.date <= end)
    ]
    payments.sort(key=lambda p: p.date, reverse=True)
    return JsonResponse({'payments': [p.to_dict() for p in payments]})


@json_errors
@require_POST_or_405
def auto_allocate_preview_view(req, student_pk):
    """What auto-apply would allocate for ``amount``; nothing is recorded."""
    payload = read_payload(req)
    allocations, leftover = services.preview_auto_allocation(
        get_store(), student_pk, payload.get('amount'), now=timezone.now(),
    )
    return JsonResponse({
        'allocations': [a.to_dict() for a in allocations],
        'leftover':    leftover,
    })
