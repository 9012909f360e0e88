"""
reports/urls.py
───────────────
Report downloads.
Include in the root urls.py with:
    path('reports/', include('reports.urls')),
"""

from django.urls import path

from . import views

urlpatterns = [
    path('students.csv',                    views.students_csv_view,      name='students_csv'),
    path('payments.csv',                    views.payments_csv_view,      name='payments_csv'),
    path('outstanding.csv',                 views.outstanding_csv_view,   name='outstanding_csv'),
    path('fee-templates.csv',               views.fee_templates_csv_view, name='fee_templates_csv'),
    path('backup.json',                     views.backup_json_view,       name='backup_json'),
    path('invoices/<str:student_pk>/',      views.invoice_view,           name='invoice'),
]
