"""
core/views.py
─────────────
Landing page and the dashboard JSON feed.
Custom error handlers (404 / 500) are registered in urls.py.
"""

from django.http import JsonResponse
from django.shortcuts import render
from django.views.decorators.http import require_GET

from datastore.store import get_store

from .dashboard import build_dashboard


def home_view(req):
    """Landing page with the headline figures."""
    store = get_store()
    return render(req, 'core/home.html', {
        'stats': build_dashboard(store.get_students(), store.get_payments()),
    })


@require_GET
def dashboard_json(req):
    store = get_store()
    return JsonResponse(build_dashboard(store.get_students(), store.get_payments()))


# ── Custom error pages ────────────────────────────────────────────────────────

def handler404(req, exception):
    return JsonResponse({'errors': ['Not found.']}, status=404)


def handler500(req):
    return JsonResponse({'errors': ['Internal server error.']}, status=500)
