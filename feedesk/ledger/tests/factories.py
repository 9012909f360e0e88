"""Builders for ledger records used across the test suites."""

from datetime import datetime

from django.utils import timezone

from ledger.entities import Allocation, AppliedPayment, FeeLine, FeeTemplate, Payment, Student


def aware(*args):
    return timezone.make_aware(datetime(*args))


def make_line(line_id='line-1', amount='100.00', due=None, applied=(), template_id=None, title=None):
    return FeeLine(
        id=line_id,
        template_id=template_id,
        title=title or f'Fee {line_id}',
        amount=amount,
        due_date=due,
        created_at=aware(2025, 1, 1),
        payments_applied=[AppliedPayment(pid, amt) for pid, amt in applied],
    )


def make_student(pk='stu-1', fees=(), grade='5th', status='active', **extra):
    return Student(
        id=pk,
        student_id=extra.pop('student_id', f'S-{pk}'),
        first_name=extra.pop('first_name', 'Ada'),
        last_name=extra.pop('last_name', 'Lovelace'),
        grade=grade,
        status=status,
        assigned_fees=list(fees),
        **extra,
    )


def make_template(pk='tpl-1', title='Tuition', amount='500.00', due_day=None, **extra):
    return FeeTemplate(id=pk, title=title, amount=amount, due_day=due_day, **extra)


def make_payment(pk='pay-1', student_pk='stu-1', amount='50.00', date=None, allocations=(), method='Cash'):
    return Payment(
        id=pk,
        student_id=student_pk,
        date=date or aware(2025, 1, 10),
        amount=amount,
        method=method,
        applied_to=[Allocation(line_id, amt) for line_id, amt in allocations],
    )
