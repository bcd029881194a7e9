"""
Status state machine.

A status change is journaled by Payment.set_status() and applied here during
save(). Applying it writes the new status and then reconciles the statistics
that depend on it:

- refunded (from published/revoked): reverse the payment's product sales and
  earnings, take its total off store earnings and the customer, delete its
  sale logs, drop the cached period earnings
- pending (from published/revoked): the same reversal, and the completion
  date is cleared
- failed: give back one use of every discount code on the payment
- published: stamp the completion date if there is none yet

Reconciliation runs at most once per transition ("pending->published") until
a save succeeds, and so does each of its steps, so retrying a failed save
does not reverse figures twice even when the failure came halfway through.
"""

import logging
from typing import TYPE_CHECKING, Callable

from core.collaborators import PaymentCollaborators
from core.events import PaymentRefunded, PaymentStatusChanged
from core.exceptions import customer_update
from core.hydration import NO_DISCOUNT
from core.models import COUNTED_STATUSES, PaymentStatus, normalize_status
from utils.timezone import format_stored, now_utc

if TYPE_CHECKING:
    from core.payment import Payment

logger = logging.getLogger(__name__)


class StatusMachine:
    """Applies status transitions of one payment."""

    def __init__(self, payment: "Payment", collaborators: PaymentCollaborators):
        self._payment = payment
        self._c = collaborators
        self._reconciled: set[str] = set()

    def forget_reconciled(self) -> None:
        """Called after a successful save; later transitions reconcile again."""
        self._reconciled.clear()

    def transition(self, old_status: str, new_status: str) -> bool:
        """
        Write a status change and run its side effects.

        Returns:
            False if the status does not actually change
        """
        old_status = normalize_status(old_status) if old_status else ""
        new_status = normalize_status(new_status)
        if old_status == new_status:
            return False

        payment_id = self._payment.id
        self._c.store.update_field(payment_id, "status", new_status)

        transition_id = f"{old_status}->{new_status}"
        if transition_id in self._reconciled:
            logger.info(f"Payment {payment_id}: {transition_id} already reconciled, skipping")
            return True

        logger.info(f"Payment {payment_id}: status {transition_id}")

        refunded = False
        if new_status == PaymentStatus.REFUNDED.value:
            refunded = self._reverse_counted(transition_id, old_status, "refund")
        elif new_status == PaymentStatus.FAILED.value:
            self._release_discounts(transition_id)
        elif new_status == PaymentStatus.PENDING.value:
            if self._reverse_counted(transition_id, old_status, "pending"):
                self._payment._clear_completed_at()
                self._c.store.update_field(payment_id, "completed_date", "")
        elif new_status == PaymentStatus.PUBLISHED.value:
            if self._payment.completed_at is None:
                completed_at = now_utc()
                self._payment._stamp_completed_at(completed_at)
                self._c.store.update_field(payment_id, "completed_date", format_stored(completed_at))

        self._reconciled.add(transition_id)
        self._publish(old_status, new_status, refunded)
        return True

    def _once(self, transition_id: str, step: str, action: Callable[[], None]) -> None:
        """Run one reconciliation step, unless it already succeeded for this transition."""
        key = f"{transition_id}:{step}"
        if key in self._reconciled:
            return
        action()
        self._reconciled.add(key)

    def _reverse_counted(self, transition_id: str, old_status: str, destination: str) -> bool:
        """Undo the statistics a completed payment contributed. False if it never counted."""
        if old_status not in COUNTED_STATUSES:
            return False

        config = self._c.config
        payment = self._payment
        payment_id = payment.id
        total = payment.total

        self._once(transition_id, "sales", lambda: self._c.sales.reverse_sale(payment_id))

        if getattr(config, f"decrease_store_earnings_on_{destination}"):
            self._once(
                transition_id, "store", lambda: self._c.stats.decrease_total_earnings(total)
            )

        customer_id = payment.customer_id
        if customer_id:
            with customer_update(payment_id, customer_id):
                if getattr(config, f"decrease_customer_value_on_{destination}"):
                    self._once(
                        transition_id, "customer_value",
                        lambda: self._c.customers.decrease_value(customer_id, total),
                    )
                if getattr(config, f"decrease_purchase_count_on_{destination}"):
                    self._once(
                        transition_id, "customer_count",
                        lambda: self._c.customers.decrease_purchase_count(customer_id),
                    )

        self._c.sales.delete_sale_logs(payment_id)
        self._c.stats.invalidate_period_cache()
        return True

    def _release_discounts(self, transition_id: str) -> None:
        discounts = self._payment.discounts
        if not discounts or discounts == NO_DISCOUNT:
            return
        for code in discounts:
            self._once(transition_id, f"discount:{code}", lambda: self._c.discounts.decrease_usage(code))

    def _publish(self, old_status: str, new_status: str, refunded: bool) -> None:
        bus = self._c.event_bus
        if bus is None:
            return
        payment = self._payment
        bus.publish(PaymentStatusChanged.create(payment.id, old_status, new_status))
        if refunded:
            bus.publish(PaymentRefunded.create(payment.id, payment.total, payment.customer_id))
