"""Tests for reading stored payments through fallback chains."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.config import PaymentConfig
from core.hydration import (
    NO_DISCOUNT,
    FallbackChain,
    HydrationContext,
    hydrate,
    normalize_discounts,
)
from core.models import PaymentRecord

MODIFIED = datetime(2016, 3, 5, 12, 0, tzinfo=timezone.utc)


def _record(status="published", meta=None, snapshot=None, **kwargs) -> PaymentRecord:
    meta = dict(meta or {})
    if snapshot is not None:
        meta["payment_meta"] = snapshot
    return PaymentRecord(id=5, status=status, modified_at=MODIFIED, meta=meta, **kwargs)


@pytest.fixture
def legacy_record() -> PaymentRecord:
    """A payment as an old version stored it: total in the snapshot, email only on the customer."""
    return _record(
        status="publish",
        meta={"customer_id": "100"},
        snapshot={
            "amount": "30.00",
            "key": "legacy-key",
            "currency": "EUR",
            "user_info": {
                "first_name": "Old",
                "last_name": "Timer",
                "discount": "SAVE10, WELCOME",
                "address": {"city": "Leeds", "country": "GB"},
            },
        },
    )


# =============================================================================
# FALLBACK CHAINS
# =============================================================================


class TestFallbackChain:
    """First present value wins."""

    def _ctx(self, customers, config):
        return HydrationContext(record=_record(), customers=customers, config=config)

    def test_empty_values_fall_through(self, customers, config):
        chain = FallbackChain(lambda ctx: None, lambda ctx: "", lambda ctx: False, lambda ctx: "x")
        assert chain.resolve(self._ctx(customers, config)) == "x"

    def test_zero_is_a_value(self, customers, config):
        chain = FallbackChain(lambda ctx: 0, lambda ctx: 1)
        assert chain.resolve(self._ctx(customers, config)) == 0

    def test_default(self, customers, config):
        assert FallbackChain(lambda ctx: None, default="d").resolve(self._ctx(customers, config)) == "d"

    def test_callable_default(self, customers, config):
        chain = FallbackChain(default=list)
        assert chain.resolve(self._ctx(customers, config)) == []


class TestLegacyPayment:
    """Older payments still load."""

    def test_status_alias(self, legacy_record, customers, config):
        assert hydrate(legacy_record, customers, config).status == "published"

    def test_total_from_snapshot_amount(self, legacy_record, customers, config):
        state = hydrate(legacy_record, customers, config)
        assert state.subtotal == Decimal("30.00")
        assert state.tax == Decimal("0")

    def test_email_from_customer(self, legacy_record, customers, config):
        customers.add("old@example.com")
        assert hydrate(legacy_record, customers, config).email == "old@example.com"

    def test_snapshot_values(self, legacy_record, customers, config):
        state = hydrate(legacy_record, customers, config)
        assert state.key == "legacy-key"
        assert state.currency == "EUR"
        assert (state.first_name, state.last_name) == ("Old", "Timer")
        assert state.discounts == ["SAVE10", "WELCOME"]
        assert state.address.city == "Leeds"

    def test_completed_at_falls_back_to_modified(self, legacy_record, customers, config):
        assert hydrate(legacy_record, customers, config).completed_at == MODIFIED

    def test_transaction_id_defaults_to_id(self, legacy_record, customers, config):
        assert hydrate(legacy_record, customers, config).transaction_id == "5"

    def test_legacy_cart_keys(self, customers, config):
        record = _record(
            meta={"tax": "2.00"},
            snapshot={"cart_details": [{
                "id": 7,
                "name": "Ebook",
                "item_price": "20.00",
                "price": "22.00",
                "quantity": 1,
                "tax": "2.00",
                "subtotal": "20.00",
                "item_number": {"id": 7, "options": {"price_id": 1}},
            }]},
        )
        state = hydrate(record, customers, config)
        [line] = state.cart
        assert (line.product_id, line.unit_price, line.total, line.price_id) == (
            7, Decimal("20.00"), Decimal("22.00"), 1,
        )
        assert state.subtotal == Decimal("20.00")
        assert state.tax == Decimal("2.00")

    def test_legacy_fee_keys(self, customers, config):
        record = _record(snapshot={"fees": [{"label": "Setup", "amount": "5", "no_tax": True}]})
        state = hydrate(record, customers, config)
        assert state.fees[0].tax_exempt
        assert state.fees_total == Decimal("5")

    def test_unreadable_cart_entries_are_skipped(self, customers, config, caplog):
        record = _record(snapshot={"cart_details": [{"name": "no product"}, {"id": 7}]})
        state = hydrate(record, customers, config)
        assert [line.product_id for line in state.cart] == [7]
        assert "unreadable cart line" in caplog.text


# =============================================================================
# FIELD RESOLUTION
# =============================================================================


class TestSubtotal:
    """Subtotal comes from the saved total, else from the lines, else from a legacy amount."""

    def test_saved_total_wins_over_lines(self, customers, config):
        record = _record(
            meta={"total": "17.00", "tax": "2.00"},
            snapshot={
                "cart_details": [{"id": 7, "quantity": 1, "subtotal": "10.00", "tax": "2.00"}],
                "fees": [{"label": "Handling", "amount": "3.00"}],
            },
        )
        state = hydrate(record, customers, config)
        assert state.subtotal == Decimal("12.00")
        assert state.subtotal + state.tax + state.fees_total == Decimal("17.00")

    def test_saved_total_subtracts_tax_when_taxes_disabled(self, customers):
        record = _record(meta={"total": "44.00", "tax": "4.00"})
        state = hydrate(record, customers, PaymentConfig(use_taxes=False))
        assert state.subtotal == Decimal("40.00")

    def test_from_lines_net_of_discount(self, customers, config):
        record = _record(
            snapshot={"amount": "99.00", "cart_details": [
                {"id": 7, "subtotal": "20.00", "discount": "5.00"},
                {"id": 3, "subtotal": "15.00"},
            ]},
        )
        assert hydrate(record, customers, config).subtotal == Decimal("30.00")

    def test_from_total_less_fees_and_tax(self, customers, config):
        record = _record(
            meta={"total": "49.00", "tax": "4.00"},
            snapshot={"fees": [{"label": "Shipping", "amount": "5.00"}]},
        )
        assert hydrate(record, customers, config).subtotal == Decimal("40.00")

    def test_legacy_amount_keeps_tax_when_taxes_disabled(self, customers):
        record = _record(meta={"tax": "4.00"}, snapshot={"amount": "44.00"})
        state = hydrate(record, customers, PaymentConfig(use_taxes=False))
        assert state.subtotal == Decimal("44.00")

    def test_never_negative(self, customers, config):
        record = _record(meta={"total": "1.00", "tax": "4.00"})
        assert hydrate(record, customers, config).subtotal == Decimal("0")


class TestFields:
    """Individual fields."""

    def test_meta_email_wins(self, customers, config):
        record = _record(
            meta={"user_email": "meta@example.com"},
            snapshot={"email": "snap@example.com", "user_info": {"email": "info@example.com"}},
        )
        assert hydrate(record, customers, config).email == "meta@example.com"

    def test_user_info_email(self, customers, config):
        record = _record(snapshot={"user_info": {"email": "info@example.com"}})
        assert hydrate(record, customers, config).email == "info@example.com"

    @pytest.mark.parametrize("status", ["pending", "preapproved"])
    def test_uncompleted_have_no_completion(self, customers, config, status):
        record = _record(status=status, meta={"completed_date": "2016-03-01 10:00:00"})
        assert hydrate(record, customers, config).completed_at is None

    def test_legacy_completion_date(self, customers, config):
        record = _record(meta={"completed_date": "2016-03-01 10:00:00"})
        assert hydrate(record, customers, config).completed_at == datetime(
            2016, 3, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_distinct_transaction_id(self, customers, config):
        record = _record(meta={"transaction_id": "ch_123"})
        assert hydrate(record, customers, config).transaction_id == "ch_123"

    def test_number_is_id_unless_sequential(self, customers, config):
        record = _record(meta={"number": "EDD-0005"})
        assert hydrate(record, customers, config).number == "5"
        sequential = PaymentConfig(sequential_numbers=True)
        assert hydrate(record, customers, sequential).number == "EDD-0005"

    def test_currency_defaults_to_store(self, customers):
        state = hydrate(_record(), customers, PaymentConfig(currency_code="GBP"))
        assert state.currency == "GBP"

    def test_user_id_from_user_info(self, customers, config):
        record = _record(snapshot={"user_info": {"id": "42"}})
        assert hydrate(record, customers, config).user_id == 42

    def test_missing_user_id(self, customers, config):
        assert hydrate(_record(), customers, config).user_id is None

    def test_unreadable_snapshot_is_ignored(self, customers, config):
        record = _record(meta={"total": "10.00", "payment_meta": "corrupt"})
        state = hydrate(record, customers, config)
        assert state.subtotal == Decimal("10.00")
        assert state.cart == []


class TestNormalizeDiscounts:
    """Discount codes or the 'none' marker."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("none", NO_DISCOUNT),
            ("", []),
            (None, []),
            ("SAVE10", ["SAVE10"]),
            ("SAVE10, WELCOME,", ["SAVE10", "WELCOME"]),
            (["A", " B "], ["A", "B"]),
        ],
    )
    def test_values(self, value, expected):
        assert normalize_discounts(value) == expected
