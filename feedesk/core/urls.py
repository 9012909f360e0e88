"""
core/urls.py
────────────
Landing page and dashboard feed.
"""

from django.urls import path

from . import views

urlpatterns = [
    path('',               views.home_view,      name='homepage'),
    path('api/dashboard/', views.dashboard_json, name='dashboard'),
]
