"""Typed exceptions for payment failures.

Rejected mutations (unknown product, disallowed fee attribute, invalid cart
index) and no-op status changes are not exceptions: they are reported as a
False result and leave the payment unchanged.
"""

from contextlib import contextmanager
from typing import Iterator


class PaymentError(Exception):
    """Base class for payment errors."""


class PersistenceError(PaymentError):
    """
    A backing-store write or read failed.

    Raised by store and collaborator implementations. Payment.save() catches
    it, returns False and keeps the pending changes so the save can be retried.
    """


class PaymentNotFoundError(PaymentError):
    """No stored payment exists for the requested ID."""

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


@contextmanager
def customer_update(payment_id: int, customer_id: int) -> Iterator[None]:
    """
    Run a customer statistics update during a save.

    Customer services raise ValueError for a customer that no longer exists;
    mid-save that is a failed write like any other.
    """
    try:
        yield
    except ValueError as e:
        raise PersistenceError(
            f"Payment {payment_id}: could not update customer {customer_id}: {e}"
        ) from e
