"""
ledger/urls.py
──────────────
JSON endpoints of the fee ledger.
Include in the root urls.py with:
    path('api/', include('ledger.urls')),
"""

from django.urls import path

from . import views

urlpatterns = [
    # Students
    path('students/',                                           views.students_json,                name='students'),
    path('students/<str:student_pk>/',                          views.student_detail_json,          name='student_detail'),
    path('students/<str:student_pk>/fee-templates/',            views.student_fee_templates_view,   name='student_fee_templates'),
    path('students/<str:student_pk>/fees/',                     views.student_adhoc_fee_view,       name='student_adhoc_fee'),
    path('students/<str:student_pk>/fees/<str:fee_line_id>/delete/', views.student_fee_line_delete_view, name='student_fee_line_delete'),
    path('students/<str:student_pk>/auto-allocate/',            views.auto_allocate_preview_view,   name='auto_allocate_preview'),
    path('students/<str:student_pk>/invoice-number/',           views.invoice_number_view,          name='invoice_number'),

    # Fee templates
    path('fee-templates/',                                      views.fee_templates_json,           name='fee_templates'),
    path('fee-templates/<str:template_pk>/',                    views.fee_template_detail_json,     name='fee_template_detail'),
    path('fee-templates/<str:template_pk>/unassign/',           views.bulk_unassign_view,           name='bulk_unassign'),
    path('bulk-assign/',                                        views.bulk_assign_view,             name='bulk_assign'),

    # Payments
    path('payments/',                                           views.payments_json,                name='payments'),

    # School-wide
    path('settings/',                                           views.school_settings_json,         name='school_settings'),
    path('maintenance/refresh-statuses/',                       views.refresh_statuses_view,        name='refresh_statuses'),
    path('maintenance/backfill-invoice-numbers/',               views.backfill_invoice_numbers_view, name='backfill_invoice_numbers'),
    path('backup/import/',                                      views.import_backup_view,           name='import_backup'),
    path('backup/clear/',                                       views.clear_data_view,              name='clear_data'),
]
