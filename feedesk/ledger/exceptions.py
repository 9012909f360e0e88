"""
ledger/exceptions.py
────────────────────
Errors raised by the fee ledger.

Caller-correctable input problems are Django ``ValidationError``s so forms,
views and services can report them the same way.  Broken references are
``ReferentialIntegrityError``s; nothing is written when either is raised.
"""

from django.core.exceptions import ValidationError


class AllocationError(ValidationError):
    """A payment allocation is larger than what is left to pay or to apply."""


class LedgerError(Exception):
    pass


class ReferentialIntegrityError(LedgerError):
    """An operation names a student, fee line or template that does not exist."""


class OrphanedPaymentsError(ReferentialIntegrityError):
    """
    Removing fee lines would discard payment allocations already recorded
    against them, leaving Payment.applied_to pointing at nothing.
    """

    def __init__(self, message, payment_ids=()):
        super().__init__(message)
        self.payment_ids = sorted(set(payment_ids))
