from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from ledger import engine
from ledger.entities import Allocation, FeeStatus
from ledger.exceptions import AllocationError, ReferentialIntegrityError
from ledger.tests.factories import aware, make_line, make_payment, make_student


# ── Balances ──────────────────────────────────────────────────────────────────

def test_outstanding_is_fees_minus_recorded_payments():
    student  = make_student(fees=[make_line('a', '100.00'), make_line('b', '50.00')])
    payments = [make_payment('p1', student.id, '30.00'), make_payment('p2', 'someone-else', '99.00')]
    assert engine.compute_outstanding(student, payments) == Decimal('120.00')


def test_outstanding_never_goes_negative():
    student  = make_student(fees=[make_line('a', '100.00')])
    payments = [make_payment('p1', student.id, '250.00')]
    assert engine.compute_outstanding(student, payments) == Decimal('0.00')


def test_unallocated_payment_still_reduces_outstanding():
    student  = make_student(fees=[make_line('a', '100.00')])
    payments = [make_payment('p1', student.id, '40.00')]
    assert engine.compute_outstanding(student, payments) == Decimal('60.00')
    assert engine.unapplied_credit(student, payments) == Decimal('40.00')
    assert engine.applied_total(payments[0]) == Decimal('0.00')


@pytest.mark.parametrize('paid, expected', [
    ([], 'unpaid'),
    (['40.00'], 'partial'),
    (['100.00'], 'paid'),
])
def test_payment_status(paid, expected):
    student  = make_student(fees=[make_line('a', '100.00')])
    payments = [make_payment(f'p{i}', student.id, amt) for i, amt in enumerate(paid)]
    assert engine.payment_status(student, payments) == expected


# ── Status derivation ─────────────────────────────────────────────────────────

def test_status_walks_forward_as_payments_accumulate(now):
    past_due = now - timedelta(days=10)
    seen = [
        engine.derive_status(make_line(amount='100.00', due=past_due, applied=[('p', amt)] if amt else []), now)
        for amt in ('0', '1', '50', '99.99', '100')
    ]
    assert seen == [FeeStatus.OVERDUE, FeeStatus.PARTIAL, FeeStatus.PARTIAL, FeeStatus.PARTIAL, FeeStatus.PAID]


def test_paid_line_is_never_overdue(now):
    line = make_line(amount='100.00', due=now - timedelta(days=30), applied=[('p1', '100.00')])
    assert engine.derive_status(line, now) == FeeStatus.PAID


def test_line_due_today_is_open(now):
    assert engine.derive_status(make_line(due=aware(2025, 1, 20)), now) == FeeStatus.OPEN
    assert engine.derive_status(make_line(due=aware(2025, 1, 19)), now) == FeeStatus.OVERDUE
    assert engine.derive_status(make_line(), now) == FeeStatus.OPEN


def test_refresh_student_rewrites_stale_statuses(now):
    stale = make_line('a', due=now - timedelta(days=3))
    assert stale.status == FeeStatus.OPEN
    refreshed = engine.refresh_student(make_student(fees=[stale]), now)
    assert refreshed.assigned_fees[0].status == FeeStatus.OVERDUE
    assert stale.status == FeeStatus.OPEN


# ── Applying payments ─────────────────────────────────────────────────────────

def test_apply_payment_records_each_allocation_once(now):
    student = make_student(fees=[make_line('a', '100.00'), make_line('b', '80.00'), make_line('c', '10.00')])

    payment, updated = engine.apply_payment(
        student, '120.00', 'Cash', now,
        [{'feeLineId': 'a', 'amount': '100.00'}, {'feeLineId': 'b', 'amount': '20.00'}],
        notes='January', now=now,
    )

    assert payment.student_id == student.id
    assert payment.amount == Decimal('120.00')
    assert payment.applied_to == [Allocation('a', '100.00'), Allocation('b', '20.00')]

    lines = {f.id: f for f in updated.assigned_fees}
    assert [(p.payment_id, p.amount) for p in lines['a'].payments_applied] == [(payment.id, Decimal('100.00'))]
    assert [(p.payment_id, p.amount) for p in lines['b'].payments_applied] == [(payment.id, Decimal('20.00'))]
    assert lines['c'].payments_applied == []
    assert lines['a'].status == FeeStatus.PAID
    assert lines['b'].status == FeeStatus.PARTIAL
    for line in lines.values():
        assert line.total_applied <= line.amount

    # The input student is left untouched.
    assert student.assigned_fees[0].payments_applied == []


def test_payment_ids_are_unique(now):
    student = make_student(fees=[make_line('a', '100.00')])
    first, _  = engine.apply_payment(student, '10', 'Cash', now, [], now=now)
    second, _ = engine.apply_payment(student, '10', 'Cash', now, [], now=now)
    assert first.id != second.id


def test_over_application_is_rejected(now):
    student = make_student(fees=[make_line('a', '100.00', applied=[('old', '80.00')])])
    with pytest.raises(AllocationError) as info:
        engine.apply_payment(student, '30.00', 'Cash', now, [('a', '30.00')], now=now)
    assert info.value.code == 'exceeds_balance'


def test_allocations_cannot_exceed_payment(now):
    student = make_student(fees=[make_line('a', '100.00'), make_line('b', '100.00')])
    with pytest.raises(AllocationError) as info:
        engine.apply_payment(student, '50.00', 'Cash', now, [('a', '30.00'), ('b', '30.00')], now=now)
    assert info.value.code == 'exceeds_payment'


def test_unknown_fee_line_fails_whole_payment(now):
    student = make_student(fees=[make_line('a', '100.00')])
    with pytest.raises(ReferentialIntegrityError):
        engine.apply_payment(student, '50.00', 'Cash', now, [('a', '20.00'), ('ghost', '10.00')], now=now)
    assert student.assigned_fees[0].payments_applied == []


@pytest.mark.parametrize('amount, allocations, method', [
    ('0', [], 'Cash'),
    ('-5', [], 'Cash'),
    ('10', [('a', '0')], 'Cash'),
    ('10', [('a', '5'), ('a', '5')], 'Cash'),
    ('10', [], '   '),
    ('10', [('a', 'abc')], 'Cash'),
    ('10', [{'feeLineId': 'a', 'amount': 'abc'}], 'Cash'),
    ('ten', [], 'Cash'),
])
def test_invalid_payments(now, amount, allocations, method):
    student = make_student(fees=[make_line('a', '100.00')])
    with pytest.raises(ValidationError):
        engine.apply_payment(student, amount, method, now, allocations, now=now)


# ── Auto-allocation ───────────────────────────────────────────────────────────

def test_auto_allocate_pays_overdue_first(now):
    overdue = make_line('overdue', '50.00', due=now - timedelta(days=10))
    upcoming = make_line('upcoming', '100.00', due=now + timedelta(days=5))
    student = make_student(fees=[upcoming, overdue])

    allocations, leftover = engine.auto_allocate(student, '120.00', now)

    assert allocations == [Allocation('overdue', '50.00'), Allocation('upcoming', '70.00')]
    assert leftover == Decimal('0.00')


def test_auto_allocate_orders_by_due_date_then_undated(now):
    student = make_student(fees=[
        make_line('undated', '10.00'),
        make_line('later', '10.00', due=now + timedelta(days=20)),
        make_line('sooner', '10.00', due=now + timedelta(days=2)),
        make_line('settled', '10.00', due=now - timedelta(days=40), applied=[('p', '10.00')]),
    ])

    allocations, leftover = engine.auto_allocate(student, '45.00', now)

    assert [a.fee_line_id for a in allocations] == ['sooner', 'later', 'undated']
    assert leftover == Decimal('15.00')


def test_auto_allocate_respects_partial_balances(now):
    student = make_student(fees=[make_line('a', '100.00', applied=[('p', '75.00')])])
    allocations, leftover = engine.auto_allocate(student, '30.00', now)
    assert allocations == [Allocation('a', '25.00')]
    assert leftover == Decimal('5.00')


def test_auto_allocation_passes_validation(now):
    student = make_student(fees=[
        make_line('a', '60.00', due=now - timedelta(days=1)),
        make_line('b', '60.00'),
    ])
    allocations, _ = engine.auto_allocate(student, '100.00', now)
    payment, updated = engine.apply_payment(student, '100.00', 'Cash', now, allocations, now=now)
    assert payment.unapplied_amount == Decimal('0.00')
    assert [f.status for f in updated.assigned_fees] == [FeeStatus.PAID, FeeStatus.PARTIAL]
