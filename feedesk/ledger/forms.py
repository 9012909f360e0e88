"""
ledger/forms.py
───────────────
Input validation for students, fee templates, payments, bulk assignment
and school settings.  The JSON views bind request payloads to these forms
and hand ``cleaned_data`` to the service layer.

Choices that depend on school settings (grades, payment methods) are filled
in ``__init__`` from the SchoolSettings passed as ``school_settings``.
"""

from decimal import Decimal

from django import forms

from core.utils import DATE_FORMATS

from .assignment import TargetMode
from .entities import FeeCategory, Frequency, SchoolSettings, StudentStatus


def _choices(values):
    return [(v, v) for v in values]


class StudentForm(forms.Form):
    """Create / edit a student.  ``fee_templates`` drives set_student_fees."""

    student_id      = forms.CharField(max_length=50, label='Student ID')
    first_name      = forms.CharField(max_length=100)
    last_name       = forms.CharField(max_length=100)
    grade           = forms.ChoiceField(choices=())
    enrollment_date = forms.DateTimeField(required=False)
    status          = forms.ChoiceField(choices=StudentStatus.choices, initial=StudentStatus.ACTIVE, required=False)
    contact_phone   = forms.CharField(max_length=50, required=False)
    contact_email   = forms.EmailField(required=False)
    guardian_name   = forms.CharField(max_length=200, required=False)
    notes           = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 3}))
    fee_templates   = forms.MultipleChoiceField(choices=(), required=False)

    def __init__(self, *args, school_settings=None, fee_templates=(), **kwargs):
        super().__init__(*args, **kwargs)
        school_settings = school_settings or SchoolSettings()
        grades = list(school_settings.grade_options)
        # Keep a grade that was removed from the options since the student was saved.
        current = self.initial.get('grade')
        if current and current not in grades:
            grades.append(current)
        self.fields['grade'].choices = _choices(grades)
        self.fields['fee_templates'].choices = [(t.id, t.title) for t in fee_templates]

    def clean_status(self):
        return self.cleaned_data.get('status') or StudentStatus.ACTIVE

    def student_fields(self):
        """cleaned_data minus the template selection, as Student attributes."""
        data = dict(self.cleaned_data)
        data.pop('fee_templates', None)
        return data


class FeeTemplateForm(forms.Form):
    title     = forms.CharField(max_length=200)
    category  = forms.ChoiceField(choices=FeeCategory.choices, initial=FeeCategory.TUITION)
    amount    = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    frequency = forms.ChoiceField(choices=Frequency.choices, initial=Frequency.ONE_TIME)
    due_day   = forms.IntegerField(min_value=1, max_value=31, required=False,
                                   help_text='Day of the month the fee falls due.')
    notes     = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 2}))


class AdhocFeeForm(forms.Form):
    title    = forms.CharField(max_length=200)
    amount   = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    due_date = forms.DateTimeField(required=False)


class PaymentForm(forms.Form):
    """
    Record a payment.  Either ``auto_apply`` is set and the amount is spread
    by the auto-allocation rule, or ``allocations`` lists
    ``{"feeLineId": …, "amount": …}`` objects.  Balance checks happen in the
    ledger engine, which sees the current fee lines.
    """

    student_id  = forms.CharField(max_length=64)
    amount      = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method      = forms.ChoiceField(choices=())
    date        = forms.DateTimeField(required=False)
    notes       = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 2}))
    auto_apply  = forms.BooleanField(required=False)
    allocations = forms.JSONField(required=False)

    def __init__(self, *args, school_settings=None, **kwargs):
        super().__init__(*args, **kwargs)
        school_settings = school_settings or SchoolSettings()
        self.fields['method'].choices = _choices(school_settings.payment_methods)

    def clean_allocations(self):
        allocations = self.cleaned_data.get('allocations') or []
        if not isinstance(allocations, list) or not all(isinstance(a, dict) for a in allocations):
            raise forms.ValidationError('Allocations must be a list of {feeLineId, amount} objects.')
        return allocations

    def clean(self):
        cleaned = super().clean()
        if cleaned.get('auto_apply') and cleaned.get('allocations'):
            raise forms.ValidationError('Choose either auto-apply or explicit allocations, not both.')
        return cleaned


class BulkAssignForm(forms.Form):
    template_id = forms.CharField(max_length=64)
    mode        = forms.ChoiceField(choices=TargetMode.choices, initial=TargetMode.GRADE)
    grade       = forms.CharField(max_length=50, required=False)
    student_ids = forms.JSONField(required=False)

    def clean(self):
        cleaned = super().clean()
        mode = cleaned.get('mode')
        if mode == TargetMode.GRADE and not cleaned.get('grade'):
            raise forms.ValidationError('Please choose a grade.')
        if mode == TargetMode.INDIVIDUAL:
            ids = cleaned.get('student_ids') or []
            if not isinstance(ids, list) or not ids:
                raise forms.ValidationError('Please select at least one student.')
            cleaned['student_ids'] = [str(pk) for pk in ids]
        return cleaned


class SettingsForm(forms.Form):
    """School settings.  The invoice counter is not editable; only InvoiceSequencer advances it."""

    school_name     = forms.CharField(max_length=200)
    currency        = forms.CharField(max_length=3, min_length=3)
    academic_year   = forms.CharField(max_length=20)
    invoice_prefix  = forms.CharField(max_length=20)
    date_format     = forms.ChoiceField(choices=_choices(DATE_FORMATS))
    payment_methods = forms.JSONField(required=False)
    fee_categories  = forms.JSONField(required=False)
    grade_options   = forms.JSONField(required=False)

    def _clean_list(self, name):
        values = self.cleaned_data.get(name)
        if values in (None, ''):
            return None
        if not isinstance(values, list) or not all(isinstance(v, str) and v.strip() for v in values):
            raise forms.ValidationError('Expected a list of non-empty names.')
        return [v.strip() for v in values]

    def clean_payment_methods(self):
        return self._clean_list('payment_methods')

    def clean_fee_categories(self):
        return self._clean_list('fee_categories')

    def clean_grade_options(self):
        return self._clean_list('grade_options')

    def clean_currency(self):
        return self.cleaned_data['currency'].upper()

    def changes(self):
        """Only the fields that were supplied, ready for SchoolSettings.updated."""
        return {k: v for k, v in self.cleaned_data.items() if v not in (None, '')}
