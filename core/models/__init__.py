"""Core domain models."""

from core.models.fee import FeeEntry, IndexedFee
from core.models.cart_line import CartLine, DownloadRef
from core.models.payment import (
    Address,
    PaymentRecord,
    PaymentStatus,
    COUNTED_STATUSES,
    UNCOMPLETED_STATUSES,
    normalize_status,
)
from core.models.customer import Customer, CustomerCreate
from core.models.product import PriceOption, Product

__all__ = [
    # Fee
    "FeeEntry", "IndexedFee",
    # Cart
    "CartLine", "DownloadRef",
    # Payment
    "Address", "PaymentRecord", "PaymentStatus",
    "COUNTED_STATUSES", "UNCOMPLETED_STATUSES", "normalize_status",
    # Customer
    "Customer", "CustomerCreate",
    # Catalog
    "PriceOption", "Product",
]
