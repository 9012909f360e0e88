"""
URL configuration for feedesk project.

── Routing ────────────────────────────────────────────────────────────────────
  path('', include('core.urls')),            # landing page + dashboard feed
  path('api/', include('ledger.urls')),      # students, fees, payments, settings
  path('reports/', include('reports.urls')), # CSV / JSON / invoice downloads
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),

    path('', include('core.urls')),
    path('api/', include('ledger.urls')),
    path('reports/', include('reports.urls')),
]

handler404 = 'core.views.handler404'
handler500 = 'core.views.handler500'
