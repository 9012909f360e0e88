"""
ledger/views/fee.py
───────────────────
Fee template endpoints and the bulk assign / unassign workflow.
"""

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from datastore.store import get_store

from .. import assignment, services
from ..forms import BulkAssignForm, FeeTemplateForm
from .utils import flag, form_error_response, json_errors, read_payload, require_POST_or_405


def template_json(template, students):
    return {
        **template.to_dict(),
        'assignedCount': len(assignment.students_with_template(students, template.id)),
    }


def _form_initial(template):
    return {
        'title':     template.title,
        'category':  template.category,
        'amount':    template.amount,
        'frequency': template.frequency,
        'due_day':   template.due_day,
        'notes':     template.notes,
    }


@json_errors
@require_http_methods(['GET', 'POST'])
def fee_templates_json(req):
    store = get_store()

    if req.method == 'POST':
        form = FeeTemplateForm(read_payload(req))
        if not form.is_valid():
            return form_error_response(form)
        template = services.create_fee_template(store, **form.cleaned_data)
        return JsonResponse(template_json(template, []), status=201)

    students = store.get_students()
    return JsonResponse({
        'feeTemplates': [template_json(t, students) for t in store.get_fee_templates()],
    })


@json_errors
@require_http_methods(['GET', 'POST', 'DELETE'])
def fee_template_detail_json(req, template_pk):
    """
    GET    – the template and how many students carry it.
    POST   – edit; already-issued fee lines keep their snapshot.
    DELETE – delete; ``?strip=1`` also removes its lines from students,
             ``&allow_orphans=1`` even where payments were applied to them.
    """
    store    = get_store()
    template = services.require_fee_template(store, template_pk)

    if req.method == 'DELETE':
        result = services.delete_fee_template(
            store, template_pk,
            strip_lines=flag(req.GET.get('strip')),
            allow_orphans=flag(req.GET.get('allow_orphans')),
        )
        return JsonResponse({
            'deleted':          template_pk,
            'studentsUpdated':  len(result.updated) if result else 0,
            'orphanedPayments': result.orphaned_payment_ids if result else [],
        })

    if req.method == 'POST':
        form = FeeTemplateForm({**_form_initial(template), **read_payload(req)})
        if not form.is_valid():
            return form_error_response(form)
        template = services.update_fee_template(store, template_pk, **form.cleaned_data)

    return JsonResponse(template_json(template, store.get_students()))


# ── Bulk assignment ───────────────────────────────────────────────────────────

@json_errors
@require_POST_or_405
def bulk_assign_view(req):
    """
    Assign a template by grade (active students only) or to an explicit
    selection.  Students who already carry it are counted, not touched.
    """
    form = BulkAssignForm(read_payload(req))
    if not form.is_valid():
        return form_error_response(form)
    data   = form.cleaned_data
    result = services.assign_template(
        get_store(),
        data['template_id'],
        data['mode'],
        grade=data.get('grade'),
        student_ids=data.get('student_ids') or (),
    )
    return JsonResponse({
        'newlyAssigned':   result.newly_assigned_count,
        'alreadyAssigned': result.already_assigned_count,
        'studentIds':      [s.id for s in result.updated],
    })


@json_errors
@require_POST_or_405
def bulk_unassign_view(req, template_pk):
    payload = read_payload(req)
    result  = services.unassign_template(
        get_store(), template_pk,
        allow_orphans=flag(payload.get('allow_orphans')),
    )
    return JsonResponse({
        'studentsUpdated':  len(result.updated),
        'linesRemoved':     len(result.removed_lines),
        'orphanedPayments': result.orphaned_payment_ids,
    })
