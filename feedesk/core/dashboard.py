"""
core/dashboard.py
─────────────────
Headline figures for the dashboard, computed from the stored collections.

build_dashboard(students, payments, now=None) returns a plain dict:

    total_students / active_students
    total_collected      – every payment ever recorded
    total_outstanding    – Σ outstanding balance per student
    overdue_students     – students with an unpaid line past its due date
    total_fees           – Σ every assigned fee line
    collection_rate      – collected / fees, in percent
    this_month_collected / last_month_collected / monthly_growth (percent)
    average_fee_per_student / average_payment
    payment_methods      – {method: count}, most used first
    grades               – {grade: student count}, largest first
    recent_payments      – the five newest payments with the student's name
"""

from collections import Counter
from decimal import Decimal

from django.utils import timezone

from ledger import engine

from .utils import CENT, ZERO, money_sum


def _percent(part, whole):
    if not whole:
        return ZERO
    return (Decimal(part) / Decimal(whole) * 100).quantize(CENT)


def _average(total, count):
    if not count:
        return ZERO
    return (Decimal(total) / count).quantize(CENT)


def _month_total(payments, year, month):
    total = ZERO
    for p in payments:
        if not p.date:
            continue
        local = timezone.localtime(p.date)
        if local.year == year and local.month == month:
            total += p.amount
    return total


def build_dashboard(students, payments, now=None):
    now   = now or timezone.now()
    local = timezone.localtime(now)

    total_collected = money_sum(p.amount for p in payments)
    total_fees      = money_sum(engine.total_fees(s) for s in students)

    last_year, last_month = (local.year - 1, 12) if local.month == 1 else (local.year, local.month - 1)
    this_month_collected = _month_total(payments, local.year, local.month)
    last_month_collected = _month_total(payments, last_year, last_month)

    names  = {s.id: s.full_name for s in students}
    recent = sorted((p for p in payments if p.date), key=lambda p: p.date, reverse=True)[:5]

    return {
        'total_students':          len(students),
        'active_students':         sum(1 for s in students if s.is_active),
        'total_collected':         total_collected,
        'total_outstanding':       money_sum(engine.compute_outstanding(s, payments) for s in students),
        'overdue_students':        sum(1 for s in students if engine.has_overdue_fees(s, now)),
        'total_fees':              total_fees,
        'collection_rate':         _percent(total_collected, total_fees),
        'this_month_collected':    this_month_collected,
        'last_month_collected':    last_month_collected,
        'monthly_growth':          _percent(this_month_collected - last_month_collected, last_month_collected),
        'average_fee_per_student': _average(total_fees, len(students)),
        'average_payment':         _average(total_collected, len(payments)),
        'payment_methods':         dict(Counter(p.method for p in payments).most_common()),
        'grades':                  dict(Counter(s.grade for s in students).most_common()),
        'recent_payments': [
            {
                'id':          p.id,
                'studentName': names.get(p.student_id, 'Unknown Student'),
                'amount':      p.amount,
                'method':      p.method,
                'date':        p.date,
                'daysAgo':     (now - p.date).days,
            }
            for p in recent
        ],
    }
