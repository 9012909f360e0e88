from decimal import Decimal

from core.dashboard import build_dashboard
from ledger.tests.factories import aware, make_line, make_payment, make_student


def test_dashboard_figures(now):
    students = [
        make_student('a', fees=[make_line('a1', '100.00', due=aware(2025, 1, 5))], grade='5th'),
        make_student('b', fees=[make_line('b1', '300.00')], grade='5th'),
        make_student('c', status='inactive', grade='6th'),
    ]
    payments = [
        make_payment('p1', 'b', '150.00', date=aware(2025, 1, 15), method='Cash'),
        make_payment('p2', 'b', '50.00', date=aware(2024, 12, 28), method='Online'),
        make_payment('p3', 'b', '10.00', date=aware(2024, 12, 1), method='Cash'),
    ]

    stats = build_dashboard(students, payments, now)

    assert stats['total_students'] == 3
    assert stats['active_students'] == 2
    assert stats['total_collected'] == Decimal('210.00')
    assert stats['total_fees'] == Decimal('400.00')
    assert stats['total_outstanding'] == Decimal('190.00')    # 100 + (300 - 210)
    assert stats['overdue_students'] == 1
    assert stats['collection_rate'] == Decimal('52.50')
    assert stats['this_month_collected'] == Decimal('150.00')
    assert stats['last_month_collected'] == Decimal('60.00')
    assert stats['monthly_growth'] == Decimal('150.00')
    assert stats['average_fee_per_student'] == Decimal('133.33')
    assert stats['average_payment'] == Decimal('70.00')
    assert list(stats['payment_methods']) == ['Cash', 'Online']
    assert stats['grades'] == {'5th': 2, '6th': 1}
    assert [p['id'] for p in stats['recent_payments']] == ['p1', 'p2', 'p3']
    assert stats['recent_payments'][0]['daysAgo'] == 5


def test_dashboard_empty_school_has_no_division_errors(now):
    stats = build_dashboard([], [], now)
    assert stats['collection_rate'] == Decimal('0.00')
    assert stats['monthly_growth'] == Decimal('0.00')
    assert stats['average_payment'] == Decimal('0.00')
    assert stats['recent_payments'] == []


def test_recent_payment_for_deleted_student(now):
    stats = build_dashboard([], [make_payment('p1', 'gone', '5.00')], now)
    assert stats['recent_payments'][0]['studentName'] == 'Unknown Student'
