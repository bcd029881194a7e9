"""
Interfaces of the collaborators a payment calls.

The payment aggregate owns its ledgers and journal; everything durable or
store-wide lives behind these interfaces. Postgres-backed implementations are
in core/services/. All calls are synchronous and either succeed or raise.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.config import PaymentConfig

if TYPE_CHECKING:
    from core.audit import AuditLogger
    from core.event_bus import EventBus
    from core.hooks import PaymentHooks
    from core.models import PaymentRecord


class Catalog(ABC):
    """Product and price lookups."""

    @abstractmethod
    def resolve_price(self, product_id: int, price_id: int | None = None) -> Decimal | None:
        """
        Price of a product, or of one of its price options.

        Returns:
            The amount, or None if the product or the option does not exist.
        """

    @abstractmethod
    def lowest_price_option(self, product_id: int) -> tuple[Decimal, int | None]:
        """Cheapest price option of a variable-priced product as (amount, option_id)."""

    @abstractmethod
    def has_variable_pricing(self, product_id: int) -> bool:
        """Whether the product is sold through price options."""

    @abstractmethod
    def product_title(self, product_id: int) -> str:
        """Display title of the product."""

    @abstractmethod
    def is_purchasable(self, product_id: int) -> bool:
        """Whether the ID refers to an existing product that can be added to a cart."""


class CustomerDirectory(ABC):
    """Customer records and their lifetime statistics."""

    @abstractmethod
    def find_or_create(self, email: str, user_id: int | None = None, name: str = "") -> int:
        """
        Resolve the customer for a purchase, creating one if needed.

        A customer linked to user_id wins over one matched by email.

        Returns:
            The customer ID.
        """

    @abstractmethod
    def attach_payment(self, customer_id: int, payment_id: int) -> None:
        """Link a payment to a customer."""

    @abstractmethod
    def increase_value(self, customer_id: int, amount: Decimal) -> None:
        """Increase the customer's lifetime value."""

    @abstractmethod
    def decrease_value(self, customer_id: int, amount: Decimal) -> None:
        """Decrease the customer's lifetime value (never below zero)."""

    @abstractmethod
    def decrease_purchase_count(self, customer_id: int) -> None:
        """Decrement the customer's purchase count (never below zero)."""

    @abstractmethod
    def email_of(self, customer_id: int) -> str:
        """Email address on the customer record, empty if unknown."""


class SalesLedger(ABC):
    """Per-product sale logs and sales/earnings counters."""

    @abstractmethod
    def record_sale(
        self, product_id: int, payment_id: int, price_id: int | None, logged_at: datetime
    ) -> None:
        """Log one sold unit."""

    @abstractmethod
    def reverse_sale(self, payment_id: int) -> None:
        """Undo the per-product sales and earnings a payment contributed."""

    @abstractmethod
    def delete_sale_logs(self, payment_id: int) -> None:
        """Delete every sale log of a payment."""

    @abstractmethod
    def delete_product_sale_logs(
        self, product_id: int, payment_id: int, price_id: int | None, limit: int
    ) -> None:
        """Delete up to `limit` sale logs of one product on a payment."""

    @abstractmethod
    def increase_sales(self, product_id: int, quantity: int) -> None: ...

    @abstractmethod
    def decrease_sales(self, product_id: int, quantity: int) -> None: ...

    @abstractmethod
    def increase_earnings(self, product_id: int, amount: Decimal) -> None: ...

    @abstractmethod
    def decrease_earnings(self, product_id: int, amount: Decimal) -> None: ...


class DiscountRegistry(ABC):
    """Discount codes and their usage counters."""

    @abstractmethod
    def decrease_usage(self, code: str) -> None:
        """Give back one use of a discount code."""


class StoreStatistics(ABC):
    """Store-wide earnings."""

    @abstractmethod
    def increase_total_earnings(self, amount: Decimal) -> None: ...

    @abstractmethod
    def decrease_total_earnings(self, amount: Decimal) -> None: ...

    @abstractmethod
    def invalidate_period_cache(self) -> None:
        """Drop any cached "earnings this period" figure."""


class PaymentStore(ABC):
    """
    Persistence adapter for payments.

    Contract:
    - load() returns None if the payment does not exist (no exception)
    - update_field() writes a base column when the key names one, meta otherwise
    - Failed reads/writes raise core.exceptions.PersistenceError
    - Not thread-safe; callers serialize saves per payment ID
    """

    @abstractmethod
    def load(self, payment_id: int) -> "PaymentRecord | None":
        """Load the base record and every meta value of a payment."""

    @abstractmethod
    def insert(self, record: "PaymentRecord") -> int:
        """Insert a new base record. Returns the assigned ID."""

    @abstractmethod
    def update_field(self, payment_id: int, key: str, value: Any) -> None:
        """Write one column or meta value."""

    @abstractmethod
    def read_meta(self, payment_id: int, key: str) -> Any:
        """Read one meta value. Returns None if it is not set."""


@dataclass
class PaymentCollaborators:
    """Everything a payment needs from the outside, injected as one bundle."""

    store: PaymentStore
    catalog: Catalog
    customers: CustomerDirectory
    sales: SalesLedger
    discounts: DiscountRegistry
    stats: StoreStatistics
    config: PaymentConfig = field(default_factory=PaymentConfig)
    hooks: "PaymentHooks | None" = None
    event_bus: "EventBus | None" = None
    audit: "AuditLogger | None" = None
