"""
Hydration: turning a stored payment record into the payment's field values.

Payments written by older versions keep some values in different places
(the total inside the snapshot as "amount", the email only on the customer).
Each field is read through a FallbackChain of sources, tried in order; the
first one that yields a value wins.

Stored layout read here:
- record columns: id, status, created_at, modified_at, parent_payment_id
- meta values: gateway, mode, transaction_id, user_ip, customer_id, user_id,
  user_email, purchase_key, number, completed_date, unlimited_downloads,
  total, tax
- meta "payment_meta": the snapshot with downloads, cart_details, fees,
  currency and user_info
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from pydantic import ValidationError

from core.collaborators import CustomerDirectory
from core.config import PaymentConfig
from core.models import (
    UNCOMPLETED_STATUSES,
    Address,
    CartLine,
    DownloadRef,
    FeeEntry,
    PaymentRecord,
    normalize_status,
)
from utils.money import ZERO, clamp_zero, to_amount
from utils.timezone import parse_stored

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "payment_meta"
NO_DISCOUNT = "none"


def _present(value: Any) -> bool:
    return value is not None and value != "" and value is not False


def normalize_discounts(value: Any) -> list[str] | str:
    """
    Discount codes as a list, or the "none" sentinel.

    Accepts a list of codes or a comma-separated string.
    """
    if value == NO_DISCOUNT:
        return NO_DISCOUNT
    if not _present(value):
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(code).strip() for code in value if str(code).strip()]


@dataclass
class HydrationContext:
    """What the fallback sources read from."""

    record: PaymentRecord
    customers: CustomerDirectory
    config: PaymentConfig
    resolved: dict[str, Any] = field(default_factory=dict)

    @property
    def meta(self) -> dict[str, Any]:
        return self.record.meta

    @property
    def snapshot(self) -> dict[str, Any]:
        snapshot = self.record.meta.get(SNAPSHOT_KEY)
        return snapshot if isinstance(snapshot, dict) else {}

    @property
    def user_info(self) -> dict[str, Any]:
        user_info = self.snapshot.get("user_info")
        return user_info if isinstance(user_info, dict) else {}


Source = Callable[[HydrationContext], Any]


class FallbackChain:
    """Ordered sources for one field. None, "" and False fall through."""

    def __init__(self, *sources: Source, default: Any = None):
        self._sources = sources
        self._default = default

    def resolve(self, ctx: HydrationContext) -> Any:
        for source in self._sources:
            value = source(ctx)
            if _present(value):
                return value
        return self._default() if callable(self._default) else self._default


def _meta(key: str) -> Source:
    return lambda ctx: ctx.meta.get(key)


def _snapshot(key: str) -> Source:
    return lambda ctx: ctx.snapshot.get(key)


def _customer_email(ctx: HydrationContext) -> str | None:
    customer_id = ctx.resolved.get("customer_id")
    if not customer_id:
        return None
    return ctx.customers.email_of(customer_id)


def _completed_at(ctx: HydrationContext) -> datetime | None:
    if ctx.resolved["status"] in UNCOMPLETED_STATUSES:
        return None
    return parse_stored(ctx.meta.get("completed_date")) or ctx.record.modified_at


def _transaction_id(ctx: HydrationContext) -> str:
    payment_id = str(ctx.record.id)
    transaction_id = ctx.meta.get("transaction_id")
    if not _present(transaction_id) or str(transaction_id) == payment_id:
        return payment_id
    return str(transaction_id)


def _number(ctx: HydrationContext) -> str | None:
    if not ctx.config.sequential_numbers:
        return None
    return ctx.meta.get("number")


FIELD_CHAINS: dict[str, FallbackChain] = {
    "stored_total": FallbackChain(_meta("total"), _snapshot("amount"), default=ZERO),
    "tax": FallbackChain(_meta("tax"), _snapshot("tax"), default=ZERO),
    "currency": FallbackChain(_snapshot("currency"), lambda ctx: ctx.config.currency_code),
    "gateway": FallbackChain(_meta("gateway"), default=""),
    "mode": FallbackChain(_meta("mode"), default=""),
    "ip": FallbackChain(_meta("user_ip"), default=""),
    "customer_id": FallbackChain(_meta("customer_id"), default=0),
    "user_id": FallbackChain(_meta("user_id"), lambda ctx: ctx.user_info.get("id")),
    "email": FallbackChain(
        _meta("user_email"),
        _snapshot("email"),
        lambda ctx: ctx.user_info.get("email"),
        _customer_email,
        default="",
    ),
    "key": FallbackChain(_meta("purchase_key"), _snapshot("key"), default=""),
    "number": FallbackChain(_number, lambda ctx: str(ctx.record.id)),
    "completed_at": FallbackChain(_completed_at),
    "transaction_id": FallbackChain(_transaction_id),
}


def _models(model: type, items: Any, what: str, payment_id: int) -> list:
    if not isinstance(items, list):
        return []
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            logger.warning(f"Skipping unreadable {what} entry on payment {payment_id}: {item!r}")
    return parsed


@dataclass
class HydratedPayment:
    """Field values of a stored payment, ready to be loaded into a Payment."""

    id: int
    status: str
    parent_payment_id: int
    created_at: datetime | None
    completed_at: datetime | None
    mode: str
    gateway: str
    transaction_id: str
    ip: str
    customer_id: int
    user_id: int | None
    email: str
    first_name: str
    last_name: str
    discounts: list[str] | str
    address: Address
    key: str
    number: str
    unlimited_downloads: bool
    currency: str
    subtotal: Decimal
    tax: Decimal
    fees_total: Decimal
    fees: list[FeeEntry]
    cart: list[CartLine]
    downloads: list[DownloadRef]
    snapshot: dict[str, Any]


def hydrate(
    record: PaymentRecord, customers: CustomerDirectory, config: PaymentConfig
) -> HydratedPayment:
    """Resolve every field of a stored payment through its fallback chain."""
    ctx = HydrationContext(record=record, customers=customers, config=config)
    ctx.resolved["status"] = normalize_status(record.status)
    ctx.resolved["customer_id"] = int(FIELD_CHAINS["customer_id"].resolve(ctx))

    resolved = {name: chain.resolve(ctx) for name, chain in FIELD_CHAINS.items()}

    snapshot = ctx.snapshot
    fees = _models(FeeEntry, snapshot.get("fees"), "fee", record.id)
    cart = _models(CartLine, snapshot.get("cart_details"), "cart line", record.id)
    downloads = _models(DownloadRef, snapshot.get("downloads"), "download", record.id)

    tax = clamp_zero(to_amount(resolved["tax"]))
    fees_total = clamp_zero(sum((fee.amount for fee in fees), ZERO))
    if _present(ctx.meta.get("total")):
        # Written by save() as subtotal + tax + fees
        subtotal = to_amount(ctx.meta["total"]) - fees_total - tax
    elif isinstance(snapshot.get("cart_details"), list):
        subtotal = sum((line.subtotal - line.discount for line in cart), ZERO)
    else:
        subtotal = to_amount(resolved["stored_total"]) - fees_total
        if config.use_taxes:
            subtotal -= tax

    user_info = ctx.user_info
    address = user_info.get("address")
    user_id = resolved["user_id"]

    return HydratedPayment(
        id=record.id,
        status=ctx.resolved["status"],
        parent_payment_id=record.parent_payment_id,
        created_at=parse_stored(record.created_at),
        completed_at=resolved["completed_at"],
        mode=str(resolved["mode"]),
        gateway=str(resolved["gateway"]),
        transaction_id=resolved["transaction_id"],
        ip=str(resolved["ip"]),
        customer_id=ctx.resolved["customer_id"],
        user_id=int(user_id) if _present(user_id) else None,
        email=str(resolved["email"]),
        first_name=str(user_info.get("first_name") or ""),
        last_name=str(user_info.get("last_name") or ""),
        discounts=normalize_discounts(user_info.get("discount")),
        address=Address.model_validate(address) if isinstance(address, dict) else Address(),
        key=str(resolved["key"]),
        number=str(resolved["number"]),
        unlimited_downloads=bool(ctx.meta.get("unlimited_downloads")),
        currency=str(resolved["currency"]),
        subtotal=clamp_zero(subtotal),
        tax=tax,
        fees_total=fees_total,
        fees=fees,
        cart=cart,
        downloads=downloads,
        snapshot=dict(snapshot),
    )
