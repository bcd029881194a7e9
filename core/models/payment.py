"""Payment domain models.

A payment's status is a plain string: the well-known values below drive the
state machine, any other value is an opaque custom status.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    """Well-known payment statuses."""

    PENDING = "pending"
    PUBLISHED = "published"  # Paid / complete
    REFUNDED = "refunded"
    FAILED = "failed"
    REVOKED = "revoked"
    ABANDONED = "abandoned"
    PREAPPROVED = "preapproved"
    CANCELLED = "cancelled"


# Statuses under which sales and earnings have already been counted
COUNTED_STATUSES = frozenset({PaymentStatus.PUBLISHED.value, PaymentStatus.REVOKED.value})

# Statuses under which a payment has never been completed
UNCOMPLETED_STATUSES = frozenset({PaymentStatus.PENDING.value, PaymentStatus.PREAPPROVED.value})

_STATUS_ALIASES = {
    "complete": PaymentStatus.PUBLISHED.value,
    "completed": PaymentStatus.PUBLISHED.value,
    "publish": PaymentStatus.PUBLISHED.value,
}


def normalize_status(status: str | PaymentStatus) -> str:
    """Map aliases of the completed status onto 'published'."""
    if isinstance(status, PaymentStatus):
        return status.value
    return _STATUS_ALIASES.get(status, status)


class Address(BaseModel):
    """Billing address captured with a payment. Every part is optional."""

    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""


class PaymentRecord(BaseModel):
    """A payment as held by the backing store: base columns plus meta values."""

    id: int = 0
    status: str = PaymentStatus.PENDING.value
    title: str = ""
    parent_payment_id: int = 0
    created_at: datetime | None = None
    modified_at: datetime | None = None
    meta: dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}
