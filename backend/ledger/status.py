"""
Three-way payment status of anything with a paid amount and a ceiling.

Used for expenses (paid_amount vs total_amount) and for assignments
(total_paid vs allocated_budget). Always derived, never stored on its own.
"""
from decimal import Decimal
from typing import Optional


PENDING = "pending"
PARTIAL = "partial"
COMPLETED = "completed"

CHOICES = [
    (PENDING, "Pending"),
    (PARTIAL, "Partial"),
    (COMPLETED, "Completed"),
]


def derive_payment_status(paid: Decimal, total: Optional[Decimal]) -> str:
    """
    pending if nothing is paid, completed once paid reaches the total,
    partial in between.

    With no total (unconstrained allocation) any payment counts as partial.
    """
    paid = paid or Decimal("0")
    if paid <= 0:
        return PENDING
    if total is not None and paid >= total:
        return COMPLETED
    return PARTIAL
