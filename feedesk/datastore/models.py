"""
datastore/models.py
───────────────────
The one table behind the entity store.

StoredDocument – a namespaced key holding one serialized JSON collection
                 (students, fee templates, payments, settings, metadata).
"""

from django.db import models


class StoredDocument(models.Model):
    """
    A key/value row.  Every collection is written whole, so a row is the
    unit of both reads and writes.  ``revision`` increases by one on every
    write and is what optimistic writers compare against.
    """

    key = models.CharField(
        max_length=200,
        unique=True,
        help_text="Namespaced key, e.g. 'tfm:v0:students'.",
    )
    value = models.TextField(
        help_text='Serialized JSON document.',
    )
    revision = models.PositiveIntegerField(
        default=1,
        help_text='Bumped on every write; used to detect lost updates.',
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['key']
        verbose_name = 'Stored Document'
        verbose_name_plural = 'Stored Documents'

    def __str__(self):
        return f"{self.key} (rev {self.revision})"
