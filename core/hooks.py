"""
Extension points of the payment aggregate.

Subclass PaymentHooks and override the callbacks you need; every default is a
no-op. The payment invokes them at fixed points:

- before_hydrate / after_hydrate: around loading a stored payment
- before_save: at the start of every save()
- resolve_ip: first persist of a payment that has no IP yet
- contribute_fees: first persist, to add fees computed outside the cart
- save_field: a pending change whose key the payment does not store itself
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from core.models import FeeEntry
    from core.payment import Payment


class PaymentHooks:
    """Named callbacks invoked by Payment. Override in a subclass."""

    def before_hydrate(self, payment: "Payment", payment_id: int) -> None:
        pass

    def after_hydrate(self, payment: "Payment", payment_id: int) -> None:
        pass

    def before_save(self, payment: "Payment") -> None:
        pass

    def resolve_ip(self, payment: "Payment") -> str:
        """IP address to record on a new payment. Empty string leaves it unset."""
        return ""

    def contribute_fees(
        self, payment: "Payment", payment_data: dict[str, Any]
    ) -> list["FeeEntry"]:
        """Extra fees to merge into a payment when it is first stored."""
        return []

    def save_field(self, payment: "Payment", key: str, value: Any) -> None:
        """Persist a pending change the payment has no storage mapping for."""
        pass
