"""
core/utils.py
─────────────
Money and date helpers shared by every app.  Pure functions, no state.

Amounts are handled as ``Decimal`` quantised to cents.  Instants are
timezone-aware datetimes; calendar comparisons (overdue, due-day roll-over)
happen in the project's local time zone.
"""

import calendar
import logging
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.utils import formats, timezone
from django.utils.dateparse import parse_date, parse_datetime

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

DATE_FORMATS = ('MM/dd/yyyy', 'dd/MM/yyyy', 'yyyy-MM-dd')

CURRENCY_SYMBOLS = {
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
    'INR': '₹',
    'JPY': '¥',
    'NGN': '₦',
    'KES': 'KSh',
    'ZAR': 'R',
}


# ── Money ─────────────────────────────────────────────────────────────────────

def to_money(value):
    """
    Coerce *value* (Decimal, int, float, numeric string) to a Decimal rounded
    to cents.  ``None`` and empty strings become 0.00.

    Floats go through ``str()`` first so 0.1 stays 0.10 rather than picking up
    binary noise.  Raises ``ValueError`` for anything that is not a number.
    """
    if value is None or value == '':
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f'Not a monetary amount: {value!r}') from exc
    if not amount.is_finite():
        raise ValueError(f'Not a monetary amount: {value!r}')
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values):
    return sum((to_money(v) for v in values), ZERO)


def format_amount(amount):
    """Plain two-decimal string, as used in CSV cells ('1234.50')."""
    return f'{to_money(amount):.2f}'


def format_currency(amount, currency='USD'):
    """
    Human-facing amount with thousands separators and the currency symbol,
    e.g. ``$1,234.50``.  Unknown currency codes are shown as a prefix
    (``CZK 1,234.50``).  Negative amounts keep the sign in front.
    """
    try:
        amount = to_money(amount)
    except ValueError as exc:
        logger.warning(f'Error formatting currency: {exc}')
        amount = ZERO
    code = (currency or 'USD').upper()
    sign = '-' if amount < 0 else ''
    formatted = f'{abs(amount):,.2f}'
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f'{sign}{symbol}{formatted}'
    return f'{sign}{code} {formatted}'


def parse_currency(value):
    """Strip everything but digits, '.' and '-' and parse; junk becomes 0.00."""
    cleaned = ''.join(ch for ch in str(value or '') if ch.isdigit() or ch in '.-')
    try:
        return to_money(cleaned)
    except ValueError:
        return ZERO


# ── Dates ─────────────────────────────────────────────────────────────────────

def parse_instant(value):
    """
    Parse an ISO-8601 string (``2025-01-20T00:00:00.000Z``, ``2025-01-20``)
    or a date/datetime into an aware datetime.  Returns None for empty input.
    Naive values are interpreted in the current time zone.
    """
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime.combine(value, time.min)
    else:
        moment = parse_datetime(str(value))
        if moment is None:
            day = parse_date(str(value))
            if day is None:
                raise ValueError(f'Not an ISO date/time: {value!r}')
            moment = datetime.combine(day, time.min)
    if timezone.is_naive(moment):
        moment = timezone.make_aware(moment)
    return moment


def to_iso(moment):
    if moment is None:
        return None
    return moment.isoformat()


def local_day(moment):
    """Calendar day of *moment* in the current time zone."""
    return timezone.localtime(moment).date()


def start_of_day(day):
    """Aware local midnight for *day* (a ``date``)."""
    return timezone.make_aware(datetime.combine(day, time.min))


def start_of_today(now=None):
    now = now or timezone.now()
    return start_of_day(local_day(now))


def is_overdue(due_date, now=None):
    """
    True when *due_date* falls before the start of today.  A line due today
    is not overdue yet.
    """
    if not due_date:
        return False
    return parse_instant(due_date) < start_of_today(now)


def clamp_day(year, month, day):
    """*day* clamped to the length of the month (31 → 28/29/30 as needed)."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(day, 1), last))


def add_month(year, month):
    if month == 12:
        return year + 1, 1
    return year, month + 1


def format_date(value, date_format='MM/dd/yyyy'):
    """
    Render a date/instant using one of the school's date formats.
    Anything outside DATE_FORMATS falls back to Django's SHORT_DATE_FORMAT.
    Unparseable input renders as an empty string.
    """
    try:
        moment = parse_instant(value)
    except ValueError:
        return ''
    if moment is None:
        return ''
    day = local_day(moment)
    if date_format == 'MM/dd/yyyy':
        return f'{day.month:02d}/{day.day:02d}/{day.year}'
    if date_format == 'dd/MM/yyyy':
        return f'{day.day:02d}/{day.month:02d}/{day.year}'
    if date_format == 'yyyy-MM-dd':
        return day.isoformat()
    return formats.date_format(day, 'SHORT_DATE_FORMAT')


def format_long_date(value):
    """'January 20, 2025' style, used on printed invoices."""
    moment = parse_instant(value)
    if moment is None:
        return ''
    day = local_day(moment)
    return f'{calendar.month_name[day.month]} {day.day}, {day.year}'
