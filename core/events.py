"""
Domain events for payments.

Immutable event objects published after a payment's status change has been
written and its statistics reconciled. Handlers (receipts, license grants,
webhooks) subscribe on the event bus; the payment does not know who listens.

Event Categories:
- PaymentStatusChanged: every status transition that was written
- PaymentRefunded: a refund that reversed counted sales and earnings

Events carry the payment ID and the figures at the time of the transition,
so handlers don't need to reload a payment that may change again.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class PaymentEvent:
    """Base class for all payment domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)
    payment_id: int = 0


@dataclass(frozen=True, kw_only=True)
class PaymentStatusChanged(PaymentEvent):
    """A payment moved from one status to another."""
    old_status: str = ""
    new_status: str = ""

    @classmethod
    def create(cls, payment_id: int, old_status: str, new_status: str) -> "PaymentStatusChanged":
        return cls(payment_id=payment_id, old_status=old_status, new_status=new_status)


@dataclass(frozen=True, kw_only=True)
class PaymentRefunded(PaymentEvent):
    """A completed payment was refunded and its statistics reversed."""
    amount: Decimal = Decimal("0")
    customer_id: int = 0

    @classmethod
    def create(cls, payment_id: int, amount: Decimal, customer_id: int) -> "PaymentRefunded":
        return cls(payment_id=payment_id, amount=amount, customer_id=customer_id)
