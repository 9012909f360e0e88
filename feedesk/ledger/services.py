"""
ledger/services.py
──────────────────
Ledger operations wired to an EntityStore.

Views and management commands call these; the rules themselves live in
engine.py and assignment.py.  Each function reads what it needs, applies
the rule, and writes the result back through the store's read-modify-write
helpers, so a change computed on stale data is replayed instead of
overwriting someone else's write.  Functions raise ReferentialIntegrityError
for unknown ids and ValidationError for bad input; nothing is written when
they do.

Functions
─────────
record_payment(store, student_pk, amount, method, …)
    Validate, allocate (manually or automatically) and persist a payment.

assign_template(store, template_pk, mode, grade=None, student_ids=())
unassign_template(store, template_pk, allow_orphans=False)
    Bulk fee assignment over a grade or an explicit selection.

refresh_statuses(store, now=None)
    Re-derive every fee line's status (catches newly elapsed due dates).

create_student / update_student / delete_student
add_adhoc_fee / remove_student_fee / set_student_fees
create_fee_template / update_fee_template / delete_fee_template
search_students(students, payments, …)
"""

import logging
import uuid
from dataclasses import replace

from django.core.exceptions import ValidationError
from django.utils import timezone

from core.utils import ZERO, to_money

from . import assignment, engine
from .entities import FeeTemplate, Student, StudentStatus
from .exceptions import ReferentialIntegrityError

logger = logging.getLogger(__name__)


def _find(students, student_pk):
    student = next((s for s in students if s.id == student_pk), None)
    if student is None:
        raise ReferentialIntegrityError(f'Unknown student {student_pk}.')
    return student


def require_student(store, student_pk):
    return _find(store.get_students(), student_pk)


def require_fee_template(store, template_pk):
    template = store.get_fee_template(template_pk)
    if template is None:
        raise ReferentialIntegrityError(f'Unknown fee template {template_pk}.')
    return template


# ── Payments ──────────────────────────────────────────────────────────────────

def record_payment(store, student_pk, amount, method, date=None, allocations=None,
                   notes='', auto_apply=False, now=None):
    """
    Record a payment for one student and apply it to their fee lines.

    With *auto_apply* the allocations are computed by ``engine.auto_allocate``
    (any amount that fits nowhere stays unapplied credit); otherwise the
    caller's *allocations* are used as given and validated strictly.
    The student update and the new payment are written in one atomic block.
    Returns ``(payment, updated_student)``.
    """
    now = now or timezone.now()
    outcome = {}

    def apply(students):
        student = _find(students, student_pk)
        chosen = allocations or []
        if auto_apply:
            chosen, leftover = engine.auto_allocate(student, amount, now)
            outcome['leftover'] = leftover
        payment, updated = engine.apply_payment(
            student, amount, method, date or now, chosen, notes=notes, now=now,
        )
        outcome['payment'] = payment
        outcome['student'] = updated
        return [updated if s.id == student_pk else s for s in students]

    with store.atomic():
        store.modify_students(apply)
        store.add_payment(outcome['payment'])

    payment = outcome['payment']
    logger.info(
        f'Recorded payment {payment.id} of {payment.amount} ({payment.method}) '
        f'for student {student_pk} across {len(payment.applied_to)} fee line(s)'
    )
    if outcome.get('leftover', ZERO) > ZERO:
        logger.info(f'Payment {payment.id} left {outcome["leftover"]} unapplied')
    return payment, outcome['student']


def preview_auto_allocation(store, student_pk, amount, now=None):
    """What auto-apply would do for *amount*, without recording anything."""
    student = require_student(store, student_pk)
    try:
        amount = to_money(amount)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if amount <= ZERO:
        raise ValidationError('Payment amount must be greater than zero.', code='amount')
    return engine.auto_allocate(student, amount, now)


def dangling_allocations(students, payments):
    """
    ``(payment_id, fee_line_id)`` pairs whose fee line no longer exists on
    the payment's student, e.g. after an orphaning unassignment.
    """
    lines = {s.id: {f.id for f in s.assigned_fees} for s in students}
    dangling = [
        (p.id, a.fee_line_id)
        for p in payments
        for a in p.applied_to
        if a.fee_line_id not in lines.get(p.student_id, set())
    ]
    if dangling:
        logger.warning(f'{len(dangling)} payment allocation(s) point at missing fee lines')
    return dangling


# ── Bulk assignment ───────────────────────────────────────────────────────────

def assign_template(store, template_pk, mode, grade=None, student_ids=(), reference=None):
    """
    Assign a fee template to every selected student who does not carry it
    yet.  The whole roster is written once, so the batch lands completely or
    not at all.  Returns an ``AssignmentResult``.
    """
    template  = require_fee_template(store, template_pk)
    reference = reference or timezone.now()
    outcome   = {}

    def apply(students):
        targets = assignment.select_targets(students, mode, grade=grade, student_ids=student_ids)
        result  = assignment.bulk_assign(template, targets, reference)
        outcome['result'] = result
        updated = {s.id: s for s in result.updated}
        return [updated.get(s.id, s) for s in students]

    store.modify_students(apply)
    result = outcome['result']
    logger.info(
        f'Assigned "{template.title}" to {result.newly_assigned_count} student(s); '
        f'{result.already_assigned_count} already had it'
    )
    return result


def unassign_template(store, template_pk, allow_orphans=False):
    """Remove a template's fee lines from every student that carries them."""
    template = require_fee_template(store, template_pk)
    outcome  = {}

    def apply(students):
        result = assignment.bulk_unassign(
            template,
            assignment.students_with_template(students, template.id),
            allow_orphans=allow_orphans,
        )
        outcome['result'] = result
        updated = {s.id: s for s in result.updated}
        return [updated.get(s.id, s) for s in students]

    store.modify_students(apply)
    result = outcome['result']
    logger.info(
        f'Unassigned "{template.title}" from {len(result.updated)} student(s), '
        f'removing {len(result.removed_lines)} fee line(s)'
    )
    return result


# ── Status maintenance ────────────────────────────────────────────────────────

def refresh_statuses(store, now=None):
    """
    Re-derive the stored status of every fee line.  Returns the number of
    lines whose status changed; nothing is written when none did.
    """
    now = now or timezone.now()
    outcome = {'changed': 0}

    def count_changes(before, after):
        return sum(
            1
            for old, new in zip(before.assigned_fees, after.assigned_fees)
            if old.status != new.status
        )

    students = store.get_students()
    if not any(count_changes(s, engine.refresh_student(s, now)) for s in students):
        return 0

    def apply(students):
        refreshed = [engine.refresh_student(s, now) for s in students]
        outcome['changed'] = sum(count_changes(a, b) for a, b in zip(students, refreshed))
        return refreshed

    store.modify_students(apply)
    logger.info(f'Refreshed fee statuses: {outcome["changed"]} line(s) changed')
    return outcome['changed']


# ── Students ──────────────────────────────────────────────────────────────────

REQUIRED_STUDENT_FIELDS = ('student_id', 'first_name', 'last_name', 'grade')


def _check_student(student, students):
    missing = [name for name in REQUIRED_STUDENT_FIELDS if not str(getattr(student, name) or '').strip()]
    if missing:
        raise ValidationError(
            [ValidationError(f'{name.replace("_", " ").capitalize()} is required.', code='required')
             for name in missing]
        )
    if student.status not in StudentStatus.values:
        raise ValidationError(f'Unknown status {student.status!r}.', code='status')
    clash = next(
        (s for s in students if s.id != student.id and s.student_id == student.student_id), None,
    )
    if clash is not None:
        raise ValidationError(
            f'Student ID {student.student_id} is already used by {clash.full_name}.', code='unique',
        )


def create_student(store, template_ids=(), reference=None, **fields):
    """
    Add a student.  *template_ids* are fee templates to assign straight
    away (in template order).  Returns the stored Student.
    """
    for name in REQUIRED_STUDENT_FIELDS:
        fields.setdefault(name, '')
    student = Student(id=fields.pop('id', None) or str(uuid.uuid4()), **fields)
    templates = store.get_fee_templates()
    if template_ids:
        student = assignment.set_student_templates(student, templates, template_ids, reference)

    def apply(students):
        _check_student(student, students)
        return students + [student]

    store.modify_students(apply)
    logger.info(f'Created student {student.student_id} ({student.full_name})')
    return student


def update_student(store, student_pk, **changes):
    """Merge *changes* into the student and write the whole record back."""
    if 'id' in changes or 'assigned_fees' in changes:
        raise ValidationError('Student id and fee lines cannot be edited here.')
    outcome = {}

    def apply(students):
        updated = replace(_find(students, student_pk), **changes)
        _check_student(updated, students)
        outcome['student'] = updated
        return [updated if s.id == student_pk else s for s in students]

    store.modify_students(apply)
    return outcome['student']


def delete_student(store, student_pk):
    """
    Remove a student.  Their payments stay on record (payments are
    append-only) and simply no longer resolve to a name.
    """
    student = require_student(store, student_pk)
    paid = engine.student_payments(student, store.get_payments())
    store.delete_student(student_pk)
    if paid:
        logger.warning(
            f'Deleted student {student.student_id}; {len(paid)} payment(s) keep referring to them'
        )
    else:
        logger.info(f'Deleted student {student.student_id}')
    return student


def _modify_one(store, student_pk, change):
    outcome = {}

    def apply(students):
        updated = change(_find(students, student_pk))
        outcome['student'] = updated
        return [updated if s.id == student_pk else s for s in students]

    store.modify_students(apply)
    return outcome['student']


def add_adhoc_fee(store, student_pk, title, amount, due_date=None, reference=None):
    """Charge a one-off fee that has no template behind it."""
    if not (title or '').strip():
        raise ValidationError('A fee title is required.', code='required')
    try:
        amount = to_money(amount)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if amount <= ZERO:
        raise ValidationError('Fee amount must be greater than zero.', code='amount')
    line = assignment.create_adhoc_fee_line(title.strip(), amount, due_date, reference)

    student = _modify_one(
        store, student_pk,
        lambda s: replace(s, assigned_fees=s.assigned_fees + [line]),
    )
    logger.info(f'Added ad-hoc fee "{line.title}" ({line.amount}) to student {student.student_id}')
    return student, line


def remove_student_fee(store, student_pk, fee_line_id, allow_orphans=False):
    def change(student):
        if student.fee_line(fee_line_id) is None:
            raise ReferentialIntegrityError(
                f'Fee line {fee_line_id} does not belong to student {student_pk}.'
            )
        return assignment.remove_fee_line(student, fee_line_id, allow_orphans=allow_orphans)

    return _modify_one(store, student_pk, change)


def set_student_fees(store, student_pk, template_ids, reference=None, allow_orphans=False):
    """Make the student's template-backed fee lines match *template_ids*."""
    templates = store.get_fee_templates()
    known = {t.id for t in templates}
    unknown = [pk for pk in template_ids if pk not in known]
    if unknown:
        raise ReferentialIntegrityError(f'Unknown fee template(s) {", ".join(unknown)}.')
    reference = reference or timezone.now()

    return _modify_one(
        store, student_pk,
        lambda s: assignment.set_student_templates(
            s, templates, template_ids, reference, allow_orphans=allow_orphans,
        ),
    )


# ── Fee templates ─────────────────────────────────────────────────────────────

def _check_template(template):
    if not (template.title or '').strip():
        raise ValidationError('A fee title is required.', code='required')
    if template.amount < ZERO:
        raise ValidationError('Fee amount cannot be negative.', code='amount')
    if template.due_day is not None and not 1 <= template.due_day <= 31:
        raise ValidationError('Due day must be between 1 and 31.', code='due_day')


def create_fee_template(store, **fields):
    template = FeeTemplate(id=fields.pop('id', None) or str(uuid.uuid4()), **fields)
    _check_template(template)
    store.add_fee_template(template)
    logger.info(f'Created fee template "{template.title}" ({template.amount})')
    return template


def update_fee_template(store, template_pk, **changes):
    """
    Edit a template.  Fee lines already issued from it keep the title and
    amount they were created with.
    """
    require_fee_template(store, template_pk)
    if 'id' in changes:
        raise ValidationError('A fee template id cannot be edited.')
    outcome = {}

    def apply(templates):
        result = []
        for t in templates:
            if t.id == template_pk:
                t = replace(t, **changes)
                _check_template(t)
                outcome['template'] = t
            result.append(t)
        return result

    store.modify_fee_templates(apply)
    return outcome['template']


def delete_fee_template(store, template_pk, strip_lines=False, allow_orphans=False):
    """
    Delete a template.  With *strip_lines* its fee lines are also removed
    from every student (same orphan rule as ``unassign_template``); the
    unassignment and the deletion are written in one atomic block.
    Returns the UnassignResult, or None without *strip_lines*.
    """
    template = require_fee_template(store, template_pk)
    result = None
    with store.atomic():
        if strip_lines:
            result = unassign_template(store, template_pk, allow_orphans=allow_orphans)
        store.delete_fee_template(template_pk)
    logger.info(f'Deleted fee template "{template.title}"')
    return result


# ── Search / filter ───────────────────────────────────────────────────────────

class BalanceFilter:
    ALL         = 'all'
    PAID        = 'paid'
    PARTIAL     = 'partial'
    UNPAID      = 'unpaid'
    OUTSTANDING = 'outstanding'
    OVERDUE     = 'overdue'

    values = [ALL, PAID, PARTIAL, UNPAID, OUTSTANDING, OVERDUE]


def search_students(students, payments, query='', grade='all', status='all',
                    balance=BalanceFilter.ALL, now=None):
    """
    Students matching every given filter, in roster order.  *query* matches
    first name, last name or the school's student ID, case-insensitively.
    """
    query = (query or '').strip().lower()
    result = []
    for student in students:
        if query and not any(
            query in value.lower()
            for value in (student.first_name, student.last_name, student.student_id)
        ):
            continue
        if grade and grade != 'all' and student.grade != grade:
            continue
        if status and status != 'all' and student.status != status:
            continue
        if balance in (BalanceFilter.PAID, BalanceFilter.PARTIAL, BalanceFilter.UNPAID):
            if engine.payment_status(student, payments) != balance:
                continue
        elif balance == BalanceFilter.OUTSTANDING:
            if engine.compute_outstanding(student, payments) == ZERO:
                continue
        elif balance == BalanceFilter.OVERDUE:
            if not engine.has_overdue_fees(student, now):
                continue
        result.append(student)
    return result


def student_summary(student, payments, now=None):
    """The balance figures shown next to a student."""
    return {
        'totalFees':       engine.total_fees(student),
        'totalPaid':       engine.total_paid(student, payments),
        'outstanding':     engine.compute_outstanding(student, payments),
        'unappliedCredit': engine.unapplied_credit(student, payments),
        'paymentStatus':   engine.payment_status(student, payments),
        'hasOverdueFees':  engine.has_overdue_fees(student, now),
    }
