"""
ledger/views/student.py
───────────────────────
Student roster endpoints: list/search, create, detail, edit, delete, and
the per-student fee editing (template selection, ad-hoc fees, removal).
"""

from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_http_methods

from datastore.store import get_store

from .. import engine, services
from ..forms import AdhocFeeForm, StudentForm
from .utils import flag, form_error_response, json_errors, read_payload, require_POST_or_405


def student_json(student, payments, now=None):
    """
    A stored student plus the balance figures shown next to it.  Fee-line
    statuses are re-derived as of *now*; the stored ones are only a cache.
    """
    student = engine.refresh_student(student, now)
    return {**student.to_dict(), **services.student_summary(student, payments, now)}


def _as_list(value):
    if value in (None, ''):
        return []
    return value if isinstance(value, list) else [value]


def _form_initial(student):
    return {
        'student_id':      student.student_id,
        'first_name':      student.first_name,
        'last_name':       student.last_name,
        'grade':           student.grade,
        'enrollment_date': student.enrollment_date,
        'status':          student.status,
        'contact_phone':   student.contact_phone,
        'contact_email':   student.contact_email,
        'guardian_name':   student.guardian_name,
        'notes':           student.notes,
    }


# ── Roster ────────────────────────────────────────────────────────────────────

@json_errors
@require_http_methods(['GET', 'POST'])
def students_json(req):
    """
    GET  – the roster, filtered by ``q``, ``grade``, ``status`` and
           ``balance`` (paid / partial / unpaid / outstanding / overdue).
    POST – create a student; ``feeTemplates`` assigns templates right away.
    """
    store = get_store()

    if req.method == 'POST':
        payload = read_payload(req)
        payload['fee_templates'] = _as_list(payload.get('fee_templates'))
        form = StudentForm(
            payload,
            school_settings=store.get_settings(),
            fee_templates=store.get_fee_templates(),
        )
        if not form.is_valid():
            return form_error_response(form)
        student = services.create_student(
            store,
            template_ids=form.cleaned_data['fee_templates'],
            **form.student_fields(),
        )
        return JsonResponse(student_json(student, []), status=201)

    now      = timezone.now()
    payments = store.get_payments()
    students = services.search_students(
        store.get_students(),
        payments,
        query=req.GET.get('q', ''),
        grade=req.GET.get('grade', 'all'),
        status=req.GET.get('status', 'all'),
        balance=req.GET.get('balance', services.BalanceFilter.ALL),
        now=now,
    )
    return JsonResponse({
        'count':    len(students),
        'students': [student_json(s, payments, now) for s in students],
    })


@json_errors
@require_http_methods(['GET', 'POST', 'DELETE'])
def student_detail_json(req, student_pk):
    """
    GET    – the student, their balances and their payments (newest first).
    POST   – edit; fields left out of the payload keep their stored value.
    DELETE – remove the student (their payments stay on record).
    """
    store   = get_store()
    student = services.require_student(store, student_pk)

    if req.method == 'DELETE':
        services.delete_student(store, student_pk)
        return JsonResponse({'deleted': student_pk})

    if req.method == 'POST':
        payload = read_payload(req)
        form = StudentForm(
            {**_form_initial(student), **payload},
            initial=_form_initial(student),
            school_settings=store.get_settings(),
        )
        if not form.is_valid():
            return form_error_response(form)
        student = services.update_student(store, student_pk, **form.student_fields())

    payments = store.get_payments()
    own = sorted(
        engine.student_payments(student, payments),
        key=lambda p: p.date, reverse=True,
    )
    return JsonResponse({
        **student_json(student, payments),
        'payments': [p.to_dict() for p in own],
    })


# ── Fee lines on one student ──────────────────────────────────────────────────

@json_errors
@require_POST_or_405
def student_fee_templates_view(req, student_pk):
    """Replace the student's template selection (``feeTemplates``: [ids])."""
    store   = get_store()
    payload = read_payload(req)
    student = services.set_student_fees(
        store,
        student_pk,
        [str(pk) for pk in _as_list(payload.get('fee_templates'))],
        allow_orphans=flag(payload.get('allow_orphans')),
    )
    return JsonResponse(student_json(student, store.get_payments()))


@json_errors
@require_POST_or_405
def student_adhoc_fee_view(req, student_pk):
    store = get_store()
    form  = AdhocFeeForm(read_payload(req))
    if not form.is_valid():
        return form_error_response(form)
    student, line = services.add_adhoc_fee(
        store,
        student_pk,
        form.cleaned_data['title'],
        form.cleaned_data['amount'],
        due_date=form.cleaned_data['due_date'],
    )
    return JsonResponse({'feeLine': line.to_dict(), 'student': student_json(student, store.get_payments())},
                        status=201)


@json_errors
@require_POST_or_405
def student_fee_line_delete_view(req, student_pk, fee_line_id):
    store   = get_store()
    payload = read_payload(req)
    student = services.remove_student_fee(
        store, student_pk, fee_line_id,
        allow_orphans=flag(payload.get('allow_orphans')),
    )
    return JsonResponse(student_json(student, store.get_payments()))
