"""
datastore/admin.py
──────────────────
Admin registration for StoredDocument (read-only: documents are written
through the EntityStore so revisions stay consistent).
"""

from django.contrib import admin

from .models import StoredDocument


@admin.register(StoredDocument)
class StoredDocumentAdmin(admin.ModelAdmin):
    list_display    = ('key', 'revision', 'size', 'updated_at')
    search_fields   = ('key',)
    readonly_fields = ('key', 'value', 'revision', 'updated_at')

    @admin.display(description='Size (bytes)')
    def size(self, obj):
        return len(obj.value.encode('utf-8'))

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
