"""
ledger/entities.py
──────────────────
The record types the fee ledger works on.

Student       – a pupil and the fee lines they owe (``assigned_fees``).
FeeTemplate   – a reusable blueprint, e.g. "Tuition – 500.00 monthly on the 15th".
FeeLine       – one concrete obligation on one student, snapshotted from a
                template (or created ad hoc).
Payment       – money received from / for a student, plus how it was allocated.
SchoolSettings – school-level configuration with explicit defaults.
AppMetadata   – schema version and housekeeping timestamps.

Records are plain dataclasses.  They are stored as JSON documents keyed in
camelCase (``studentId``, ``assignedFees`` …) so backups written by the
browser edition of the dashboard load unchanged.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal

from django.db import models
from django.utils import timezone

from core.utils import DATE_FORMATS, ZERO, money_sum, parse_instant, to_iso, to_money

SCHEMA_VERSION = '1.0.0'


class StudentStatus(models.TextChoices):
    ACTIVE   = 'active',   'Active'
    INACTIVE = 'inactive', 'Inactive'


class FeeStatus(models.TextChoices):
    OPEN    = 'open',    'Open'
    PARTIAL = 'partial', 'Partially paid'
    PAID    = 'paid',    'Paid'
    OVERDUE = 'overdue', 'Overdue'


class FeeCategory(models.TextChoices):
    TUITION   = 'tuition',   'Tuition'
    EXAM      = 'exam',      'Exam'
    TRANSPORT = 'transport', 'Transport'
    MISC      = 'misc',      'Miscellaneous'


class Frequency(models.TextChoices):
    ONE_TIME = 'one-time', 'One-time'
    MONTHLY  = 'monthly',  'Monthly'
    TERM     = 'term',     'Per term'
    ANNUAL   = 'annual',   'Annual'
    CUSTOM   = 'custom',   'Custom'


# ── Fee lines ─────────────────────────────────────────────────────────────────

@dataclass
class AppliedPayment:
    """One allocation as seen from the fee line: which payment, how much."""

    payment_id: str
    amount: Decimal

    def __post_init__(self):
        self.amount = to_money(self.amount)

    @classmethod
    def from_dict(cls, data):
        return cls(payment_id=data['paymentId'], amount=data.get('amount'))

    def to_dict(self):
        return {'paymentId': self.payment_id, 'amount': self.amount}


@dataclass
class Allocation:
    """One allocation as seen from the payment: which fee line, how much."""

    fee_line_id: str
    amount: Decimal

    def __post_init__(self):
        self.amount = to_money(self.amount)

    @classmethod
    def from_dict(cls, data):
        return cls(fee_line_id=data['feeLineId'], amount=data.get('amount'))

    def to_dict(self):
        return {'feeLineId': self.fee_line_id, 'amount': self.amount}


@dataclass
class FeeLine:
    id: str
    title: str
    amount: Decimal
    created_at: datetime
    template_id: str = None
    due_date: datetime = None
    status: str = FeeStatus.OPEN
    payments_applied: list = field(default_factory=list)

    def __post_init__(self):
        self.amount = to_money(self.amount)

    @property
    def total_applied(self):
        return money_sum(p.amount for p in self.payments_applied)

    @property
    def balance(self):
        """What is still owed on this line; never negative."""
        return max(ZERO, self.amount - self.total_applied)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            template_id=data.get('templateId') or None,
            title=data.get('title', ''),
            amount=data.get('amount'),
            due_date=parse_instant(data.get('dueDate')),
            created_at=parse_instant(data.get('createdAt')) or timezone.now(),
            status=data.get('status') or FeeStatus.OPEN,
            payments_applied=[AppliedPayment.from_dict(p) for p in data.get('paymentsApplied', [])],
        )

    def to_dict(self):
        data = {
            'id':              self.id,
            'title':           self.title,
            'amount':          self.amount,
            'createdAt':       to_iso(self.created_at),
            'status':          str(self.status),
            'paymentsApplied': [p.to_dict() for p in self.payments_applied],
        }
        if self.template_id:
            data['templateId'] = self.template_id
        if self.due_date:
            data['dueDate'] = to_iso(self.due_date)
        return data


# ── Students ──────────────────────────────────────────────────────────────────

@dataclass
class Student:
    id: str
    student_id: str
    first_name: str
    last_name: str
    grade: str
    enrollment_date: datetime = None
    status: str = StudentStatus.ACTIVE
    contact_phone: str = ''
    contact_email: str = ''
    guardian_name: str = ''
    notes: str = ''
    invoice_number: str = None
    assigned_fees: list = field(default_factory=list)

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip()

    @property
    def is_active(self):
        return self.status == StudentStatus.ACTIVE

    def fee_line(self, fee_line_id):
        """The assigned fee line with *fee_line_id*, or None."""
        return next((f for f in self.assigned_fees if f.id == fee_line_id), None)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            student_id=data.get('studentId', ''),
            first_name=data.get('firstName', ''),
            last_name=data.get('lastName', ''),
            grade=data.get('grade', ''),
            enrollment_date=parse_instant(data.get('enrollmentDate')),
            status=data.get('status') or StudentStatus.ACTIVE,
            contact_phone=data.get('contactPhone') or '',
            contact_email=data.get('contactEmail') or '',
            guardian_name=data.get('guardianName') or '',
            notes=data.get('notes') or '',
            invoice_number=data.get('invoiceNumber') or None,
            assigned_fees=[FeeLine.from_dict(f) for f in data.get('assignedFees', [])],
        )

    def to_dict(self):
        data = {
            'id':             self.id,
            'studentId':      self.student_id,
            'firstName':      self.first_name,
            'lastName':       self.last_name,
            'grade':          self.grade,
            'enrollmentDate': to_iso(self.enrollment_date),
            'status':         str(self.status),
            'contactPhone':   self.contact_phone,
            'contactEmail':   self.contact_email,
            'guardianName':   self.guardian_name,
            'notes':          self.notes,
            'assignedFees':   [f.to_dict() for f in self.assigned_fees],
        }
        if self.invoice_number:
            data['invoiceNumber'] = self.invoice_number
        return data


# ── Fee templates ─────────────────────────────────────────────────────────────

@dataclass
class FeeTemplate:
    id: str
    title: str
    amount: Decimal
    category: str = FeeCategory.TUITION
    frequency: str = Frequency.ONE_TIME
    due_day: int = None
    notes: str = ''

    def __post_init__(self):
        self.amount = to_money(self.amount)

    @classmethod
    def from_dict(cls, data):
        due_day = data.get('dueDay')
        return cls(
            id=data['id'],
            title=data.get('title', ''),
            category=data.get('category') or FeeCategory.TUITION,
            amount=data.get('amount'),
            frequency=data.get('frequency') or Frequency.ONE_TIME,
            due_day=int(due_day) if due_day not in (None, '') else None,
            notes=data.get('notes') or '',
        )

    def to_dict(self):
        data = {
            'id':        self.id,
            'title':     self.title,
            'category':  str(self.category),
            'amount':    self.amount,
            'frequency': str(self.frequency),
            'notes':     self.notes,
        }
        if self.due_day is not None:
            data['dueDay'] = self.due_day
        return data


# ── Payments ──────────────────────────────────────────────────────────────────

@dataclass
class Payment:
    """
    Money received for one student.  Immutable once recorded: a correction
    is a new payment, never an edit.
    """

    id: str
    student_id: str
    date: datetime
    amount: Decimal
    method: str
    notes: str = ''
    applied_to: list = field(default_factory=list)

    def __post_init__(self):
        self.amount = to_money(self.amount)

    @property
    def applied_total(self):
        return money_sum(a.amount for a in self.applied_to)

    @property
    def unapplied_amount(self):
        return max(ZERO, self.amount - self.applied_total)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            student_id=data['studentId'],
            date=parse_instant(data.get('date')),
            amount=data.get('amount'),
            method=data.get('method', ''),
            notes=data.get('notes') or '',
            applied_to=[Allocation.from_dict(a) for a in data.get('appliedTo', [])],
        )

    def to_dict(self):
        return {
            'id':        self.id,
            'studentId': self.student_id,
            'date':      to_iso(self.date),
            'amount':    self.amount,
            'method':    self.method,
            'notes':     self.notes,
            'appliedTo': [a.to_dict() for a in self.applied_to],
        }


# ── Settings & metadata ───────────────────────────────────────────────────────

DEFAULT_PAYMENT_METHODS = ['Cash', 'Check', 'Bank Transfer', 'Online']
DEFAULT_FEE_CATEGORIES  = ['Tuition', 'Books', 'Lab Fee', 'Transport', 'Exam Fee', 'Other']
DEFAULT_GRADE_OPTIONS   = [
    'K-1', 'K-2', '1st', '2nd', '3rd', '4th', '5th', '6th',
    '7th', '8th', '9th', '10th', '11th', '12th',
]

_SETTINGS_KEYS = {
    'school_name':           'schoolName',
    'school_logo_data_url':  'schoolLogoDataUrl',
    'currency':              'currency',
    'academic_year':         'academicYear',
    'invoice_prefix':        'invoicePrefix',
    'invoice_seq':           'invoiceSeq',
    'date_format':           'dateFormat',
    'payment_methods':       'paymentMethods',
    'fee_categories':        'feeCategories',
    'grade_options':         'gradeOptions',
}


def _current_year():
    return str(timezone.now().year)


@dataclass
class SchoolSettings:
    """
    School-level configuration.  Loaded by merging whatever is stored over
    these defaults, so a partial or older settings document never leaves a
    field unset.
    """

    school_name: str = 'My School'
    currency: str = 'USD'
    academic_year: str = field(default_factory=_current_year)
    invoice_prefix: str = 'INV'
    invoice_seq: int = 1
    date_format: str = 'MM/dd/yyyy'
    payment_methods: list = field(default_factory=lambda: list(DEFAULT_PAYMENT_METHODS))
    fee_categories: list = field(default_factory=lambda: list(DEFAULT_FEE_CATEGORIES))
    grade_options: list = field(default_factory=lambda: list(DEFAULT_GRADE_OPTIONS))
    school_logo_data_url: str = None

    def __post_init__(self):
        self.currency = (self.currency or 'USD').upper()
        try:
            self.invoice_seq = max(1, int(self.invoice_seq or 1))
        except (TypeError, ValueError):
            self.invoice_seq = 1
        if self.date_format not in DATE_FORMATS:
            self.date_format = 'MM/dd/yyyy'

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        known = {
            attr: data[key]
            for attr, key in _SETTINGS_KEYS.items()
            if data.get(key) is not None
        }
        return cls(**known)

    def to_dict(self):
        data = {key: getattr(self, attr) for attr, key in _SETTINGS_KEYS.items()}
        if not self.school_logo_data_url:
            data.pop('schoolLogoDataUrl')
        return data

    def updated(self, **changes):
        """Copy with *changes* applied; unknown names raise TypeError."""
        names = {f.name for f in fields(self)}
        unknown = set(changes) - names
        if unknown:
            raise TypeError(f'Unknown settings: {", ".join(sorted(unknown))}')
        return replace(self, **changes)


@dataclass
class AppMetadata:
    version: str = SCHEMA_VERSION
    created_at: datetime = field(default_factory=timezone.now)
    last_backup: datetime = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            version=data.get('version') or SCHEMA_VERSION,
            created_at=parse_instant(data.get('createdAt')) or timezone.now(),
            last_backup=parse_instant(data.get('lastBackup')),
        )

    def to_dict(self):
        data = {'version': self.version, 'createdAt': to_iso(self.created_at)}
        if self.last_backup:
            data['lastBackup'] = to_iso(self.last_backup)
        return data
