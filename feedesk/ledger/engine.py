"""
ledger/engine.py
────────────────
The fee-ledger rules.  Pure functions over ledger entities: nothing here
reads or writes storage, and inputs are never mutated (updated records are
returned as copies).

Balances
    compute_outstanding(student, payments)  – assigned fees minus payments
                                              recorded for the student, ≥ 0
    total_fees / total_paid / unapplied_credit / payment_status

Fee-line status
    derive_status(fee_line, now)            – paid > partial > overdue > open
    refresh_student(student, now)           – re-derive every line

Payments
    validate_allocations(...)               – every rule apply_payment enforces
    apply_payment(...)                      – new Payment + updated Student
    auto_allocate(student, amount, now)     – overdue first, then soonest due

Outstanding balance is deliberately based on *payments recorded* rather
than on allocations, so a payment never allocated to a line still reduces
what the student owes.  ``unapplied_credit`` reports the difference.
"""

import copy
import uuid
from dataclasses import replace
from datetime import datetime, timezone as dt_timezone

from django.core.exceptions import ValidationError
from django.utils import timezone

from core.utils import ZERO, is_overdue, money_sum, parse_instant, to_money

from .entities import Allocation, AppliedPayment, FeeStatus, Payment
from .exceptions import AllocationError, ReferentialIntegrityError


# ── Balances ──────────────────────────────────────────────────────────────────

def total_fees(student):
    return money_sum(fee.amount for fee in student.assigned_fees)


def student_payments(student, payments):
    return [p for p in payments if p.student_id == student.id]


def total_paid(student, payments):
    return money_sum(p.amount for p in student_payments(student, payments))


def compute_outstanding(student, payments):
    """Total assigned fees minus total recorded payments, floored at zero."""
    return max(ZERO, total_fees(student) - total_paid(student, payments))


def applied_total(payment):
    return money_sum(a.amount for a in payment.applied_to)


def unapplied_credit(student, payments):
    """Sum of the student's payment amounts that were never allocated to a line."""
    return money_sum(p.unapplied_amount for p in student_payments(student, payments))


def payment_status(student, payments):
    """'paid' (nothing outstanding), 'partial' (owes but has paid) or 'unpaid'."""
    if compute_outstanding(student, payments) == ZERO:
        return 'paid'
    if student_payments(student, payments):
        return 'partial'
    return 'unpaid'


# ── Fee-line status ───────────────────────────────────────────────────────────

def total_applied(fee_line):
    return money_sum(p.amount for p in fee_line.payments_applied)


def derive_status(fee_line, now=None):
    """
    Status from amount, allocations and due date alone.  A fully paid line
    is 'paid' even if it was paid late; 'overdue' only applies to lines with
    nothing applied whose due date is before the start of today.
    """
    applied = total_applied(fee_line)
    if applied >= fee_line.amount:
        return FeeStatus.PAID
    if applied > ZERO:
        return FeeStatus.PARTIAL
    if fee_line.due_date and is_overdue(fee_line.due_date, now):
        return FeeStatus.OVERDUE
    return FeeStatus.OPEN


def refresh_fee_line(fee_line, now=None):
    return replace(fee_line, status=derive_status(fee_line, now))


def refresh_student(student, now=None):
    """Copy of *student* with every fee line's status re-derived."""
    return replace(
        student,
        assigned_fees=[refresh_fee_line(f, now) for f in student.assigned_fees],
    )


def is_past_due(fee_line, now=None):
    """
    Due date already passed (by the clock, not the calendar day) and the
    line is not settled.  Used for ordering and overdue reporting.
    """
    now = now or timezone.now()
    return bool(fee_line.due_date) and fee_line.due_date < now and fee_line.balance > ZERO


def has_overdue_fees(student, now=None):
    return any(is_past_due(f, now) for f in student.assigned_fees)


# ── Recording payments ────────────────────────────────────────────────────────

def _as_allocations(allocations):
    result = []
    for item in allocations:
        if isinstance(item, Allocation):
            result.append(Allocation(item.fee_line_id, item.amount))
        elif isinstance(item, dict):
            fee_line_id = item.get('feeLineId', item.get('fee_line_id'))
            if not fee_line_id:
                raise ValidationError('Every allocation needs a fee line id.')
            try:
                result.append(Allocation(fee_line_id, to_money(item.get('amount'))))
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
        else:
            fee_line_id, amount = item
            try:
                result.append(Allocation(fee_line_id, to_money(amount)))
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
    return result


def validate_allocations(student, amount, allocations):
    """
    Raise unless *allocations* can be applied to *student* for a payment of
    *amount*.  Returns the allocations normalised to ``Allocation`` objects.

    - the payment amount is positive
    - every fee line exists on the student (ReferentialIntegrityError)
    - every allocation is positive and each line appears once
    - no allocation exceeds the line's remaining balance
    - the allocations together do not exceed the payment
    """
    try:
        amount = to_money(amount)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if amount <= ZERO:
        raise ValidationError('Payment amount must be greater than zero.', code='amount')

    allocations = _as_allocations(allocations)

    lines = {f.id: f for f in student.assigned_fees}
    missing = [a.fee_line_id for a in allocations if a.fee_line_id not in lines]
    if missing:
        raise ReferentialIntegrityError(
            f'Fee line(s) {", ".join(missing)} do not belong to student {student.id}.'
        )

    seen = set()
    for allocation in allocations:
        if allocation.fee_line_id in seen:
            raise ValidationError(
                f'Fee line {allocation.fee_line_id} appears more than once.', code='duplicate',
            )
        seen.add(allocation.fee_line_id)
        if allocation.amount <= ZERO:
            raise ValidationError('Allocation amounts must be greater than zero.', code='allocation')
        line = lines[allocation.fee_line_id]
        remaining = line.amount - total_applied(line)
        if allocation.amount > remaining:
            raise AllocationError(
                f'Cannot apply {allocation.amount} to "{line.title}": '
                f'only {max(ZERO, remaining)} remains.',
                code='exceeds_balance',
            )

    applied = money_sum(a.amount for a in allocations)
    if applied > amount:
        raise AllocationError(
            f'Allocations total {applied}, more than the payment of {amount}.',
            code='exceeds_payment',
        )
    return allocations


def apply_payment(student, amount, method, date, allocations, notes='', payment_id=None, now=None):
    """
    Record a payment of *amount* for *student* split per *allocations*.

    Returns ``(payment, updated_student)``.  Every affected fee line gains one
    ``paymentsApplied`` entry and has its status re-derived; other lines are
    left untouched.  Nothing is returned (and nothing changes) if validation
    fails.
    """
    allocations = validate_allocations(student, amount, allocations)
    if not (method or '').strip():
        raise ValidationError('A payment method is required.', code='method')
    try:
        date = parse_instant(date) or timezone.now()
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    payment = Payment(
        id=payment_id or str(uuid.uuid4()),
        student_id=student.id,
        date=date,
        amount=amount,
        method=method.strip(),
        notes=notes or '',
        applied_to=allocations,
    )

    by_line = {a.fee_line_id: a.amount for a in allocations}
    updated_fees = []
    for fee in student.assigned_fees:
        if fee.id in by_line:
            fee = replace(
                fee,
                payments_applied=fee.payments_applied + [AppliedPayment(payment.id, by_line[fee.id])],
            )
            fee = refresh_fee_line(fee, now)
        updated_fees.append(copy.deepcopy(fee))

    return payment, replace(student, assigned_fees=updated_fees)


def _auto_sort_key(fee_line, now):
    # Overdue lines first, then by due date; undated lines go last.
    due = fee_line.due_date
    return (
        0 if is_past_due(fee_line, now) else 1,
        0 if due else 1,
        due or datetime.max.replace(tzinfo=dt_timezone.utc),
    )


def auto_allocate(student, amount, now=None):
    """
    Greedy allocation of *amount* across the student's fee lines: overdue
    lines first, then ascending due date, undated lines last; ties keep
    assignment order.  Each line absorbs up to its remaining balance.

    Returns ``(allocations, leftover)`` where *leftover* is whatever could
    not be placed.
    """
    now = now or timezone.now()
    remaining_to_apply = to_money(amount)
    allocations = []

    for fee in sorted(student.assigned_fees, key=lambda f: _auto_sort_key(f, now)):
        if remaining_to_apply <= ZERO:
            break
        balance = fee.amount - total_applied(fee)
        if balance > ZERO:
            portion = min(remaining_to_apply, balance)
            allocations.append(Allocation(fee.id, portion))
            remaining_to_apply -= portion

    return allocations, max(ZERO, remaining_to_apply)
