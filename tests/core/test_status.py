"""Tests for status transitions and their reconciliation."""

from decimal import Decimal

import pytest

from core.config import PaymentConfig
from core.payment import Payment
from tests.conftest import EBOOK_ID


def _published(collaborators, discounts=None) -> Payment:
    payment = Payment(collaborators)
    payment.email = "grace@example.com"
    payment.add_line(EBOOK_ID, quantity=2, tax="4.00")
    if discounts is not None:
        payment.discounts = discounts
    payment.set_status("published")
    assert payment.save()
    return payment


# =============================================================================
# SET STATUS
# =============================================================================


class TestSetStatus:
    """Journaling status changes."""

    def test_change_is_pending_until_save(self, payment):
        assert payment.set_status("failed")
        assert payment.status == "failed"
        assert payment.previous_status == "pending"
        assert payment.pending_changes["status"] == "failed"

    @pytest.mark.parametrize("alias", ["complete", "completed", "publish"])
    def test_aliases_normalize_to_published(self, payment, alias):
        payment.set_status(alias)
        assert payment.status == "published"

    def test_same_status_is_noop(self, completed_payment):
        assert not completed_payment.set_status("complete")
        assert "status" not in completed_payment.pending_changes

    def test_previous_status_captured_once_per_save(self, completed_payment):
        completed_payment.set_status("revoked")
        completed_payment.set_status("refunded")
        assert completed_payment.previous_status == "published"

    def test_display_status_uses_labels(self, completed_payment, collaborators):
        assert completed_payment.display_status == "Complete"
        collaborators.config.status_labels["refunded"] = "Money back"
        completed_payment.set_status("refunded")
        assert completed_payment.display_status == "Money back"

    def test_custom_status_is_capitalized(self, payment):
        payment.set_status("on_hold")
        assert payment.display_status == "On_hold"


# =============================================================================
# REFUND
# =============================================================================


class TestRefund:
    """published/revoked -> refunded reverses statistics."""

    def test_reverses_everything(self, completed_payment, customers, sales, stats):
        customer_id = completed_payment.customer_id
        assert stats.total_earnings == Decimal("44.00")
        assert customers.customers[customer_id]["value"] == Decimal("44.00")

        assert completed_payment.refund()

        assert completed_payment.status == "refunded"
        assert sales.reversed == [completed_payment.id]
        assert stats.total_earnings == Decimal("0")
        assert customers.customers[customer_id]["value"] == Decimal("0")
        assert sales.logs == []
        assert stats.invalidations == 1

    def test_decreases_purchase_count(self, collaborators, customers):
        customer_id = customers.add("grace@example.com", count=3)
        payment = _published(collaborators)
        assert payment.customer_id == customer_id
        payment.refund()
        assert customers.customers[customer_id]["count"] == 2

    def test_refund_twice_is_noop(self, completed_payment, sales, stats):
        completed_payment.refund()
        assert not completed_payment.refund()
        assert len(sales.reversed) == 1

    def test_refund_of_uncounted_payment_reverses_nothing(self, payment, sales, stats):
        payment.add_line(EBOOK_ID)
        payment.save()
        assert payment.refund()
        assert sales.reversed == []
        assert stats.invalidations == 0

    def test_failed_then_refunded_leaves_earnings_alone(self, collaborators, customers, sales, stats):
        customer_id = customers.add("grace@example.com", value="50.00", count=1)
        stats.total_earnings = Decimal("100.00")
        payment = Payment(collaborators)
        payment.email = "grace@example.com"
        payment.add_line(EBOOK_ID, quantity=2, tax="4.00")
        assert payment.save()

        payment.set_status("failed")
        assert payment.save()
        assert payment.refund()

        assert payment.status == "refunded"
        assert stats.total_earnings == Decimal("100.00")
        assert customers.customers[customer_id]["value"] == Decimal("50.00")
        assert customers.customers[customer_id]["count"] == 1
        assert sales.reversed == []
        assert sales.logs == []

    def test_refund_from_revoked(self, completed_payment, sales):
        completed_payment.set_status("revoked")
        completed_payment.save()
        completed_payment.refund()
        assert sales.reversed == [completed_payment.id]

    def test_toggles_skip_steps(self, collaborators, customers, stats, sales):
        collaborators.config = PaymentConfig(
            decrease_store_earnings_on_refund=False,
            decrease_customer_value_on_refund=False,
        )
        payment = _published(collaborators)
        payment.refund()
        assert stats.total_earnings == Decimal("44.00")
        assert customers.customers[payment.customer_id]["value"] == Decimal("44.00")
        assert sales.reversed == [payment.id]

    def test_publishes_events(self, completed_payment, event_bus):
        received = []
        event_bus.subscribe("PaymentStatusChanged", received.append)
        event_bus.subscribe("PaymentRefunded", received.append)

        completed_payment.refund()

        changed, refunded = received
        assert (changed.old_status, changed.new_status) == ("published", "refunded")
        assert refunded.amount == Decimal("44.00")
        assert refunded.payment_id == completed_payment.id


# =============================================================================
# PENDING / FAILED / PUBLISHED
# =============================================================================


class TestBackToPending:
    """published -> pending reverses statistics and clears completion."""

    def test_reverses_and_clears_completion(self, completed_payment, sales, stats, store):
        assert completed_payment.completed_at is not None

        completed_payment.set_status("pending")
        assert completed_payment.save()

        assert sales.reversed == [completed_payment.id]
        assert stats.total_earnings == Decimal("0")
        assert completed_payment.completed_at is None
        assert store.records[completed_payment.id].meta["completed_date"] == ""

    def test_pending_toggles(self, collaborators, customers):
        collaborators.config = PaymentConfig(decrease_customer_value_on_pending=False)
        payment = _published(collaborators)
        payment.set_status("pending")
        payment.save()
        assert customers.customers[payment.customer_id]["value"] == Decimal("44.00")


class TestFailed:
    """-> failed gives discount uses back."""

    def test_releases_each_code(self, collaborators, discounts):
        payment = Payment(collaborators)
        payment.email = "grace@example.com"
        payment.discounts = "SAVE10, WELCOME"
        payment.save()

        payment.set_status("failed")
        payment.save()

        assert discounts.decreased == ["SAVE10", "WELCOME"]

    @pytest.mark.parametrize("codes", ["none", "", []])
    def test_no_codes_no_calls(self, collaborators, discounts, codes):
        payment = Payment(collaborators)
        payment.discounts = codes
        payment.set_status("failed")
        payment.save()
        assert discounts.decreased == []


class TestPublished:
    """-> published stamps the completion date once."""

    def test_stamps_completion(self, payment, store):
        payment.add_line(EBOOK_ID)
        payment.set_status("published")
        payment.save()
        assert payment.completed_at is not None
        assert store.records[payment.id].meta["completed_date"] != ""

    def test_keeps_existing_completion(self, completed_payment):
        stamped = completed_payment.completed_at
        completed_payment.set_status("revoked")
        completed_payment.save()
        completed_payment.set_status("published")
        completed_payment.save()
        assert completed_payment.completed_at == stamped


# =============================================================================
# RETRIES
# =============================================================================


class TestRetriedSave:
    """A transition reconciles once even when the save is retried."""

    def test_failed_save_keeps_changes_and_does_not_double_reverse(
        self, completed_payment, store, sales, stats, event_bus
    ):
        received = []
        event_bus.subscribe("PaymentEvent", received.append)
        store.fail_keys.add("total")

        completed_payment.set_status("refunded")
        assert not completed_payment.save()
        assert "status" in completed_payment.pending_changes
        assert sales.reversed == [completed_payment.id]

        store.fail_keys.clear()
        assert completed_payment.save()

        assert sales.reversed == [completed_payment.id]
        assert stats.total_earnings == Decimal("0")
        assert len(received) == 2
        assert completed_payment.status == "refunded"
        assert completed_payment.pending_changes == {}
