"""
Payment aggregate.

A Payment is edited in memory and written with one save(). Every change is
recorded in the payment's MutationJournal; save() walks the journal once,
writes each change to the PaymentStore, applies status transitions through
the StatusMachine, settles the net change in store and customer earnings,
then reloads itself from the store.

    payment = Payment(collaborators)
    payment.email = "ada@example.com"
    payment.add_line(7, quantity=2, item_price="20.00", tax="4.00")
    payment.set_status("published")
    payment.save()

    payment = Payment.load(collaborators, 42, required=True)
    payment.refund()
"""

import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError

from core.amounts import AmountLedger
from core.audit import AuditAction, compute_changes
from core.cart import CartLedger
from core.collaborators import PaymentCollaborators
from core.exceptions import PaymentNotFoundError, PersistenceError, customer_update
from core.fees import FeeLedger
from core.hydration import NO_DISCOUNT, SNAPSHOT_KEY, HydratedPayment, hydrate, normalize_discounts
from core.journal import DOWNLOADS, FEES, ChangeAction, JournaledField, MutationJournal
from core.models import (
    COUNTED_STATUSES,
    Address,
    CartLine,
    DownloadRef,
    FeeEntry,
    IndexedFee,
    PaymentRecord,
    PaymentStatus,
    normalize_status,
)
from core.status import StatusMachine
from utils.money import ZERO, round_amount
from utils.timezone import format_stored, now_utc, parse_stored

logger = logging.getLogger(__name__)

# Field -> meta key
META_FIELDS = {
    "gateway": "gateway",
    "mode": "mode",
    "transaction_id": "transaction_id",
    "ip": "user_ip",
    "customer_id": "customer_id",
    "user_id": "user_id",
    "email": "user_email",
    "key": "purchase_key",
    "number": "number",
    "completed_at": "completed_date",
    "unlimited_downloads": "unlimited_downloads",
}

# Field -> base record column
COLUMN_FIELDS = {
    "created_at": "created_at",
    "parent_payment_id": "parent_payment_id",
}

# Fields stored only inside the snapshot
SNAPSHOT_FIELDS = frozenset({"first_name", "last_name", "discounts", "address", "currency"})

_email_adapter = TypeAdapter(EmailStr)


def _is_email(value: str) -> bool:
    try:
        _email_adapter.validate_python(value)
    except ValidationError:
        return False
    return True


def _to_int(value: Any) -> int:
    return int(value or 0)


def _optional_int(value: Any) -> int | None:
    if value is None or value == "" or value is False or value == 0:
        return None
    return int(value)


def _to_address(value: Any) -> Address:
    if isinstance(value, Address):
        return value
    return Address.model_validate(value or {})


def _digest(snapshot: dict[str, Any]) -> str:
    encoded = json.dumps(snapshot, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()


class Payment:
    """
    One payment: its lines, fees, amounts, parties and status.

    Not thread-safe. Use one instance per logical writer; callers serialize
    saves of the same payment ID.
    """

    gateway = JournaledField(str)
    mode = JournaledField(str)
    transaction_id = JournaledField(str)
    ip = JournaledField(str)
    customer_id = JournaledField(_to_int)
    user_id = JournaledField(_optional_int)
    email = JournaledField(str)
    first_name = JournaledField(str)
    last_name = JournaledField(str)
    discounts = JournaledField(normalize_discounts)
    address = JournaledField(_to_address)
    key = JournaledField(str)
    number = JournaledField(str)
    currency = JournaledField(lambda value: str(value).upper())
    created_at = JournaledField(parse_stored)
    completed_at = JournaledField(parse_stored)
    parent_payment_id = JournaledField(_to_int)
    unlimited_downloads = JournaledField(bool)

    def __init__(self, collaborators: PaymentCollaborators):
        self._c = collaborators
        self._journal = MutationJournal()
        self._status_machine = StatusMachine(self, collaborators)
        self._extra: dict[str, Any] = {}
        self._apply(self._blank())

    @classmethod
    def load(
        cls,
        collaborators: PaymentCollaborators,
        payment_id: int,
        required: bool = False,
    ) -> "Payment | None":
        """
        Load a stored payment.

        Returns:
            The payment, or None if it does not exist

        Raises:
            PaymentNotFoundError: If required and the payment does not exist
        """
        payment = cls(collaborators)
        if not payment._hydrate(payment_id):
            if required:
                raise PaymentNotFoundError(payment_id)
            return None
        return payment

    # -------------------------------------------------------------------------
    # Read accessors
    # -------------------------------------------------------------------------

    @property
    def id(self) -> int:
        return self._id

    @property
    def status(self) -> str:
        return self._status

    @property
    def previous_status(self) -> str:
        """Stored status the pending status change started from."""
        return self._previous_status

    @property
    def display_status(self) -> str:
        return self._c.config.status_label(self._status)

    @property
    def subtotal(self) -> Decimal:
        return self._amounts.subtotal

    @property
    def tax(self) -> Decimal:
        return self._amounts.tax

    @property
    def fees_total(self) -> Decimal:
        return self._amounts.fees_total

    @property
    def total(self) -> Decimal:
        return self._amounts.total

    @property
    def cart(self) -> list[CartLine]:
        return self._cart.lines

    @property
    def downloads(self) -> list[DownloadRef]:
        return self._cart.downloads

    @property
    def fees(self) -> list[FeeEntry]:
        return self._fees.fees

    @property
    def pending_changes(self) -> dict[str, Any]:
        """Copy of the journal: field name to latest value, or list of line/fee changes."""
        return {key: list(value) if isinstance(value, list) else value
                for key, value in self._journal.items()}

    def extra(self, key: str, default: Any = None) -> Any:
        return self._extra.get(key, default)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def set_status(self, status: str | PaymentStatus) -> bool:
        """
        Change the status; applied on the next save().

        'complete' and 'completed' are accepted for 'published'.

        Returns:
            False if the payment already has that status
        """
        status = normalize_status(status)
        if status == self._status:
            return False
        if "status" not in self._journal:
            self._previous_status = self._status
        self._status = status
        self._journal.record("status", status)
        return True

    def set_extra(self, key: str, value: Any) -> None:
        """Journal a value that a PaymentHooks.save_field override stores."""
        if hasattr(type(self), key):
            raise ValueError(f"'{key}' is a payment field, assign it directly")
        self._extra[key] = value
        self._journal.record(key, value)

    def add_line(self, product_id: int, **kwargs: Any) -> bool:
        """Add a product; see CartLedger.add_line for the arguments."""
        return self._cart.add_line(product_id, **kwargs)

    def remove_line(self, product_id: int, **kwargs: Any) -> bool:
        """Remove units of a product; see CartLedger.remove_line for the arguments."""
        return self._cart.remove_line(product_id, **kwargs)

    def add_fee(self, entry: FeeEntry | dict[str, Any]) -> bool:
        return self._fees.add_fee(entry)

    def remove_fee(self, index: int) -> bool:
        return self._fees.remove_fee(index)

    def remove_fee_by(self, attribute: str, value: Any, remove_all: bool = False) -> bool:
        return self._fees.remove_fee_by(attribute, value, remove_all=remove_all)

    def list_fees(self, fee_type: str = "all") -> list[IndexedFee]:
        return self._fees.list_fees(fee_type)

    def refund(self) -> bool:
        """Mark the payment refunded and save immediately."""
        self.set_status(PaymentStatus.REFUNDED)
        return self.save()

    # -------------------------------------------------------------------------
    # Direct meta access
    # -------------------------------------------------------------------------

    def get_meta(self, key: str) -> Any:
        """Read a stored meta value. None for a payment that was never saved."""
        if not self._id:
            return None
        return self._c.store.read_meta(self._id, key)

    def update_meta(self, key: str, value: Any) -> None:
        """Write a meta value right away, bypassing the journal."""
        if not self._id:
            raise ValueError("Cannot write meta of a payment that was never saved")
        self._c.store.update_field(self._id, key, value)

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def save(self) -> bool:
        """
        Write all pending changes.

        Returns:
            True if anything was written. False if nothing was pending, or if
            the store or a collaborator failed; in that case the pending
            changes are kept and save() can be called again. A first save
            that failed after the record was inserted finishes its remaining
            steps on the next call.
        """
        hooks = self._c.hooks
        if hooks is not None:
            hooks.before_save(self)

        if self._id and not self._journal and not self._first_save_steps:
            return False

        try:
            if not self._id:
                self._insert()
            if self._first_save_steps:
                self._finish_insert()
            self._flush()
        except PersistenceError:
            logger.exception(
                f"Saving payment {self._id or '(new)'} failed, "
                f"{len(self._journal)} pending changes kept"
            )
            return False

        created = self._first_save
        before = self._audit_view_before
        self._journal.clear()
        self._status_machine.forget_reconciled()
        self._hydrate(self._id)
        self._audit(created, before)
        return True

    def _insert(self) -> None:
        hooks = self._c.hooks

        if not self._key:
            self.key = self._generate_key()
        if not self._ip and hooks is not None:
            ip = hooks.resolve_ip(self)
            if ip:
                self.ip = ip
        if self._created_at is None:
            self._created_at = now_utc()

        payment_id = self._c.store.insert(PaymentRecord(
            status=self._status,
            title=self._title(),
            parent_payment_id=self._parent_payment_id,
            created_at=self._created_at,
        ))
        self._id = payment_id
        self._first_save = True
        self._first_save_steps = ["customer", "fees", "snapshot"]
        logger.info(f"Payment {payment_id} inserted with status '{self._status}'")

    def _finish_insert(self) -> None:
        """Run the first-save steps still outstanding; each one runs until it succeeds once."""
        store = self._c.store
        hooks = self._c.hooks
        payment_id = self._id
        steps = self._first_save_steps

        if "customer" in steps:
            title = self._title()
            name = "" if _is_email(title) else f"{self._first_name} {self._last_name}".strip()
            customer_id = self._c.customers.find_or_create(self._email, self._user_id, name)
            self.customer_id = customer_id
            self._c.customers.attach_payment(customer_id, payment_id)
            steps.remove("customer")

        if "fees" in steps:
            if hooks is not None:
                payment_data = {
                    "price": self.total,
                    "date": self._created_at,
                    "user_email": self._email,
                    "purchase_key": self._key,
                    "currency": self._currency,
                    "downloads": self.downloads,
                    "user_info": self._user_info(),
                    "cart_details": self.cart,
                    "status": self._status,
                    "fees": self.fees,
                }
                for fee in hooks.contribute_fees(self, payment_data):
                    self._fees.add_fee(fee)
            steps.remove("fees")

        if "snapshot" in steps:
            snapshot = self._snapshot_parts()
            store.update_field(payment_id, SNAPSHOT_KEY, snapshot)
            self._stored_snapshot = snapshot
            steps.remove("snapshot")

    def _flush(self) -> None:
        store = self._c.store
        payment_id = self._id
        counted = self._status in COUNTED_STATUSES
        increase = ZERO
        decrease = ZERO

        for key, value in self._journal.items():
            if key == DOWNLOADS:
                for change in value:
                    if change.action == ChangeAction.ADD:
                        if counted:
                            self._count_sale(change)
                            increase += change.amount
                    else:
                        self._c.sales.delete_product_sale_logs(
                            change.product_id, payment_id, change.price_id, change.quantity
                        )
                        if counted:
                            self._c.sales.decrease_sales(change.product_id, change.quantity)
                            self._c.sales.decrease_earnings(change.product_id, change.amount)
                            decrease += change.amount
            elif key == FEES:
                if not counted:
                    continue
                for change in value:
                    if change.action == ChangeAction.ADD:
                        increase += change.fee.amount
                    else:
                        decrease += change.fee.amount
            elif key == "status":
                self._status_machine.transition(self._previous_status, value)
            elif key in META_FIELDS:
                store.update_field(payment_id, META_FIELDS[key], self._meta_value(value))
            elif key in COLUMN_FIELDS:
                store.update_field(payment_id, COLUMN_FIELDS[key], value)
            elif key in SNAPSHOT_FIELDS:
                continue
            elif self._c.hooks is not None:
                self._c.hooks.save_field(self, key, value)
            else:
                logger.warning(f"Payment {payment_id}: no storage for pending change '{key}'")

        if self._status != PaymentStatus.PENDING.value:
            self._settle(increase - decrease)

        decimals = self._c.config.currency_decimals
        store.update_field(payment_id, "total", str(round_amount(self.total, decimals)))
        store.update_field(payment_id, "tax", str(round_amount(self.tax, decimals)))

        merged = {**self._stored_snapshot, **self._snapshot_parts()}
        if _digest(merged) != _digest(self._stored_snapshot):
            store.update_field(payment_id, SNAPSHOT_KEY, merged)

    def _count_sale(self, change) -> None:
        sales = self._c.sales
        logged_at = now_utc()
        for _ in range(change.quantity):
            sales.record_sale(change.product_id, self._id, change.price_id, logged_at)
        sales.increase_sales(change.product_id, change.quantity)
        sales.increase_earnings(change.product_id, change.amount)

    def _settle(self, net: Decimal) -> None:
        """Apply the net earnings change of this save to the store and the customer."""
        if net == ZERO:
            return
        customer_id = self._customer_id
        if customer_id:
            with customer_update(self._id, customer_id):
                if net < ZERO:
                    self._c.customers.decrease_value(customer_id, -net)
                else:
                    self._c.customers.increase_value(customer_id, net)
        if net < ZERO:
            self._c.stats.decrease_total_earnings(-net)
        else:
            self._c.stats.increase_total_earnings(net)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _generate_key(self) -> str:
        seed = f"{self._email}{format_stored(now_utc())}{secrets.token_hex(16)}"
        secret = self._c.config.install_secret.encode()
        return hmac.new(secret, seed.encode(), hashlib.sha256).hexdigest()

    def _title(self) -> str:
        if self._first_name and self._last_name:
            return f"{self._first_name} {self._last_name}"
        if self._first_name:
            return self._first_name
        if self._email and _is_email(self._email):
            return self._email
        return ""

    @staticmethod
    def _meta_value(value: Any) -> Any:
        if isinstance(value, datetime):
            return format_stored(value)
        if value is None:
            return ""
        return value

    def _user_info(self) -> dict[str, Any]:
        discounts = self._discounts
        if discounts == NO_DISCOUNT or not discounts:
            discount = NO_DISCOUNT
        else:
            discount = ",".join(discounts)
        return {
            "id": self._user_id,
            "email": self._email,
            "first_name": self._first_name,
            "last_name": self._last_name,
            "discount": discount,
            "address": self._address.model_dump(mode="json"),
        }

    def _snapshot_parts(self) -> dict[str, Any]:
        return {
            "downloads": [ref.model_dump(mode="json") for ref in self._cart.downloads],
            "cart_details": [line.model_dump(mode="json") for line in self._cart.lines],
            "fees": [fee.model_dump(mode="json") for fee in self._fees.fees],
            "currency": self._currency,
            "user_info": self._user_info(),
        }

    def _audit_view(self) -> dict[str, Any]:
        return {
            "status": self._status,
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "fees_total": str(self.fees_total),
            "total": str(self.total),
            "currency": self._currency,
            "gateway": self._gateway,
            "transaction_id": self._transaction_id,
            "customer_id": self._customer_id,
            "email": self._email,
            "lines": len(self._cart.lines),
            "fees": len(self._fees),
        }

    def _audit(self, created: bool, before: dict[str, Any]) -> None:
        audit = self._c.audit
        if audit is None:
            return
        after = self._audit_view()
        if created:
            audit.log_change("payment", self._id, AuditAction.CREATE, {"created": after})
            return
        changes = compute_changes(before, after)
        if changes:
            audit.log_change("payment", self._id, AuditAction.UPDATE, changes)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _blank(self) -> HydratedPayment:
        config = self._c.config
        return HydratedPayment(
            id=0,
            status=PaymentStatus.PENDING.value,
            parent_payment_id=0,
            created_at=None,
            completed_at=None,
            mode="",
            gateway="",
            transaction_id="",
            ip="",
            customer_id=0,
            user_id=None,
            email="",
            first_name="",
            last_name="",
            discounts=[],
            address=Address(),
            key="",
            number="",
            unlimited_downloads=False,
            currency=config.currency_code,
            subtotal=ZERO,
            tax=ZERO,
            fees_total=ZERO,
            fees=[],
            cart=[],
            downloads=[],
            snapshot={},
        )

    def _hydrate(self, payment_id: int) -> bool:
        record = self._c.store.load(payment_id)
        if record is None:
            return False

        hooks = self._c.hooks
        if hooks is not None:
            hooks.before_hydrate(self, payment_id)
        self._apply(hydrate(record, self._c.customers, self._c.config))
        if hooks is not None:
            hooks.after_hydrate(self, payment_id)
        return True

    def _apply(self, state: HydratedPayment) -> None:
        """Load field values without journaling them."""
        self._journal.clear()
        self._id = state.id
        self._status = state.status
        self._previous_status = state.status
        self._parent_payment_id = state.parent_payment_id
        self._created_at = state.created_at
        self._completed_at = state.completed_at
        self._mode = state.mode
        self._gateway = state.gateway
        self._transaction_id = state.transaction_id
        self._ip = state.ip
        self._customer_id = state.customer_id
        self._user_id = state.user_id
        self._email = state.email
        self._first_name = state.first_name
        self._last_name = state.last_name
        self._discounts = state.discounts
        self._address = state.address
        self._key = state.key
        self._number = state.number
        self._unlimited_downloads = state.unlimited_downloads
        self._currency = state.currency
        self._stored_snapshot = state.snapshot
        self._first_save = False
        self._first_save_steps: list[str] = []

        self._amounts = AmountLedger(state.subtotal, state.tax, state.fees_total)
        self._fees = FeeLedger(self._amounts, self._journal, state.fees)
        self._cart = CartLedger(
            self._amounts,
            self._journal,
            self._c.catalog,
            self._c.config,
            lines=state.cart,
            downloads=state.downloads,
        )
        self._audit_view_before = self._audit_view() if state.id else {}

    def _clear_completed_at(self) -> None:
        self._completed_at = None

    def _stamp_completed_at(self, completed_at: datetime) -> None:
        self._completed_at = completed_at

    def __repr__(self) -> str:
        return f"Payment(id={self._id}, status={self._status!r}, total={self.total})"
