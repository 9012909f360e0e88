"""
ledger/assignment.py
────────────────────
Turning fee templates into fee lines on students, and taking them off again.

A fee line is a snapshot: title and amount are copied from the template at
assignment time, so editing a template later never changes lines already
issued.  Lines are only ever appended or filtered out; removing a line that
already carries payment allocations is refused unless the caller opts in,
because those allocations would be lost.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace

from django.utils import timezone

from core.utils import add_month, clamp_day, local_day, start_of_day, to_money

from .entities import FeeLine, FeeStatus
from .exceptions import OrphanedPaymentsError

logger = logging.getLogger(__name__)


class TargetMode:
    GRADE      = 'grade'
    INDIVIDUAL = 'individual'

    choices = [
        (GRADE,      'Assign by grade'),
        (INDIVIDUAL, 'Select individual students'),
    ]


# ── Fee-line construction ─────────────────────────────────────────────────────

def compute_due_date(due_day, reference=None):
    """
    Due date for a template's *due_day* as seen from *reference*: that day in
    the reference month, or the same day next month if that day's local
    midnight is strictly before *reference* (so a template due today rolls
    forward unless *reference* is exactly midnight).  The day is clamped to
    the month's length (31 → 30, 28 …).
    Returns an aware local-midnight datetime, or None without a due day.
    """
    if not due_day:
        return None
    reference = reference or timezone.now()
    today = local_day(reference)
    due = start_of_day(clamp_day(today.year, today.month, due_day))
    if due < reference:
        year, month = add_month(today.year, today.month)
        due = start_of_day(clamp_day(year, month, due_day))
    return due


def instantiate_fee_line(template, reference=None, line_id=None):
    """A new open FeeLine copied from *template* as of *reference*."""
    reference = reference or timezone.now()
    return FeeLine(
        id=line_id or str(uuid.uuid4()),
        template_id=template.id,
        title=template.title,
        amount=template.amount,
        due_date=compute_due_date(template.due_day, reference),
        created_at=reference,
        status=FeeStatus.OPEN,
        payments_applied=[],
    )


def create_adhoc_fee_line(title, amount, due_date=None, reference=None):
    """A FeeLine with no template behind it (one-off charges)."""
    return FeeLine(
        id=str(uuid.uuid4()),
        template_id=None,
        title=title,
        amount=to_money(amount),
        due_date=due_date,
        created_at=reference or timezone.now(),
        status=FeeStatus.OPEN,
        payments_applied=[],
    )


def has_template(student, template_id):
    return any(fee.template_id == template_id for fee in student.assigned_fees)


# ── Target selection ──────────────────────────────────────────────────────────

def select_targets(students, mode, grade=None, student_ids=()):
    """
    Students a bulk assignment applies to: every *active* student in *grade*,
    or the students whose ids are in *student_ids* (any status), in roster
    order.
    """
    if mode == TargetMode.GRADE:
        return [s for s in students if s.grade == grade and s.is_active]
    if mode == TargetMode.INDIVIDUAL:
        wanted = set(student_ids)
        return [s for s in students if s.id in wanted]
    raise ValueError(f'Unknown assignment mode: {mode!r}')


def students_with_template(students, template_id):
    return [s for s in students if has_template(s, template_id)]


# ── Bulk assign / unassign ────────────────────────────────────────────────────

@dataclass
class AssignmentResult:
    updated: list = field(default_factory=list)
    already_assigned: list = field(default_factory=list)

    @property
    def newly_assigned_count(self):
        return len(self.updated)

    @property
    def already_assigned_count(self):
        return len(self.already_assigned)


def bulk_assign(template, targets, reference=None):
    """
    Append a fresh line for *template* to every target that does not already
    carry one.  All lines in one batch share the same reference instant (so
    the same due date) but each gets its own id.  Targets that already have
    the template are reported, not touched.
    """
    reference = reference or timezone.now()
    result = AssignmentResult()
    for student in targets:
        if has_template(student, template.id):
            result.already_assigned.append(student)
            continue
        line = instantiate_fee_line(template, reference)
        result.updated.append(replace(student, assigned_fees=student.assigned_fees + [line]))
    return result


@dataclass
class UnassignResult:
    updated: list = field(default_factory=list)
    removed_lines: list = field(default_factory=list)
    orphaned_payment_ids: list = field(default_factory=list)


def _paid_into(lines):
    return sorted({p.payment_id for line in lines for p in line.payments_applied})


def bulk_unassign(template, students, allow_orphans=False):
    """
    Remove every line that came from *template* from each student.

    Lines that already carry payment allocations would leave those payments
    pointing at a line that no longer exists.  That is refused with
    OrphanedPaymentsError unless *allow_orphans* is set, in which case the
    allocations are dropped with the lines and the payment ids are reported.
    """
    result = UnassignResult()
    for student in students:
        removed = [f for f in student.assigned_fees if f.template_id == template.id]
        if not removed:
            continue
        result.removed_lines.extend(removed)
        result.updated.append(replace(
            student,
            assigned_fees=[f for f in student.assigned_fees if f.template_id != template.id],
        ))

    result.orphaned_payment_ids = _paid_into(result.removed_lines)
    if result.orphaned_payment_ids and not allow_orphans:
        raise OrphanedPaymentsError(
            f'"{template.title}" has payments recorded against it on '
            f'{len(result.orphaned_payment_ids)} payment(s); removing it would orphan them.',
            result.orphaned_payment_ids,
        )
    if result.orphaned_payment_ids:
        logger.warning(
            f'Unassigning "{template.title}" orphans allocations of payments '
            f'{", ".join(result.orphaned_payment_ids)}'
        )
    return result


def remove_fee_line(student, fee_line_id, allow_orphans=False):
    """Copy of *student* without the line *fee_line_id* (same orphan rule as above)."""
    line = student.fee_line(fee_line_id)
    if line is None:
        return student
    orphaned = _paid_into([line])
    if orphaned and not allow_orphans:
        raise OrphanedPaymentsError(
            f'"{line.title}" has payments recorded against it; removing it would orphan them.',
            orphaned,
        )
    return replace(student, assigned_fees=[f for f in student.assigned_fees if f.id != fee_line_id])


def set_student_templates(student, templates, selected_ids, reference=None, allow_orphans=False):
    """
    Make the student's template-backed lines match *selected_ids*: keep ad-hoc
    lines and lines of still-selected templates, drop deselected ones, and
    add lines for newly selected templates (in *templates* order).
    """
    selected = set(selected_ids)
    dropped = [f for f in student.assigned_fees if f.template_id and f.template_id not in selected]
    orphaned = _paid_into(dropped)
    if orphaned and not allow_orphans:
        raise OrphanedPaymentsError(
            'Deselected fees have payments recorded against them.', orphaned,
        )

    kept = [f for f in student.assigned_fees if not f.template_id or f.template_id in selected]
    reference = reference or timezone.now()
    added = [
        instantiate_fee_line(t, reference)
        for t in templates
        if t.id in selected and not has_template(student, t.id)
    ]
    return replace(student, assigned_fees=kept + added)
