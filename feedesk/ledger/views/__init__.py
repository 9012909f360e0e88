"""
ledger/views/
─────────────
JSON endpoints, split into sub-modules for clarity:
  utils.py   – shared helpers (payload parsing, error mapping, decorators)
  student.py – roster, student detail, per-student fee editing
  fee.py     – fee templates, bulk assign / unassign
  payment.py – payments and the auto-allocation preview
  school.py  – settings, status refresh, invoice numbers, import, wipe
"""
from .fee import (
    bulk_assign_view,
    bulk_unassign_view,
    fee_template_detail_json,
    fee_templates_json,
)
from .payment import auto_allocate_preview_view, payments_json
from .school import (
    backfill_invoice_numbers_view,
    clear_data_view,
    import_backup_view,
    invoice_number_view,
    refresh_statuses_view,
    school_settings_json,
)
from .student import (
    student_adhoc_fee_view,
    student_detail_json,
    student_fee_line_delete_view,
    student_fee_templates_view,
    students_json,
)

__all__ = [
    # students
    'students_json',
    'student_detail_json',
    'student_fee_templates_view',
    'student_adhoc_fee_view',
    'student_fee_line_delete_view',
    # fee templates
    'fee_templates_json',
    'fee_template_detail_json',
    'bulk_assign_view',
    'bulk_unassign_view',
    # payments
    'payments_json',
    'auto_allocate_preview_view',
    # school
    'school_settings_json',
    'refresh_statuses_view',
    'invoice_number_view',
    'backfill_invoice_numbers_view',
    'import_backup_view',
    'clear_data_view',
]
