"""
core/templatetags/money.py
──────────────────────────
Template filters for amounts and dates in the school's formats.

    {% load money %}
    {{ fee.amount|currency:school_currency }}   → $1,234.50
    {{ payment.date|school_date:school.date_format }}
"""

from django import template

from ..utils import format_currency, format_date, format_long_date

register = template.Library()


@register.filter
def currency(amount, code='USD'):
    return format_currency(amount, code or 'USD')


@register.filter
def school_date(value, date_format='MM/dd/yyyy'):
    return format_date(value, date_format)


@register.filter
def long_date(value):
    return format_long_date(value)
