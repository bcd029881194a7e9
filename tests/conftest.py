"""Shared test fixtures for the payments test suite."""

from decimal import Decimal

import pytest

import clients.vault_client as vault_module
from core.collaborators import PaymentCollaborators
from core.config import PaymentConfig
from core.event_bus import EventBus
from core.payment import Payment
from tests.fakes import (
    FakeCatalog,
    FakeCustomers,
    FakeDiscounts,
    FakeSales,
    FakeStats,
    InMemoryPaymentStore,
)


# =============================================================================
# CATALOG CONSTANTS
# =============================================================================

# Single-priced product
EBOOK_ID = 7
# Variable-priced product: option 1 costs 10.00, option 2 costs 5.00
COURSE_ID = 9
# Another single-priced product
PLUGIN_ID = 3
# Exists but cannot be bought
ARCHIVED_ID = 11


@pytest.fixture(autouse=True)
def reset_vault_cache():
    """Vault singleton and secret cache never leak between tests."""
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


# =============================================================================
# COLLABORATOR FIXTURES
# =============================================================================


@pytest.fixture
def config() -> PaymentConfig:
    return PaymentConfig(install_secret="test-install-secret")


@pytest.fixture
def store() -> InMemoryPaymentStore:
    return InMemoryPaymentStore()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog({
        EBOOK_ID: {"title": "Ebook", "price": Decimal("20.00")},
        COURSE_ID: {
            "title": "Course",
            "price": Decimal("0"),
            "options": {1: Decimal("10.00"), 2: Decimal("5.00")},
        },
        PLUGIN_ID: {"title": "Plugin", "price": Decimal("15.00")},
        ARCHIVED_ID: {"title": "Old", "price": Decimal("9.00"), "purchasable": False},
    })


@pytest.fixture
def customers() -> FakeCustomers:
    return FakeCustomers()


@pytest.fixture
def sales() -> FakeSales:
    return FakeSales()


@pytest.fixture
def discounts() -> FakeDiscounts:
    return FakeDiscounts()


@pytest.fixture
def stats() -> FakeStats:
    return FakeStats()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def collaborators(store, catalog, customers, sales, discounts, stats, config, event_bus):
    return PaymentCollaborators(
        store=store,
        catalog=catalog,
        customers=customers,
        sales=sales,
        discounts=discounts,
        stats=stats,
        config=config,
        event_bus=event_bus,
    )


# =============================================================================
# PAYMENT FIXTURES
# =============================================================================


@pytest.fixture
def payment(collaborators) -> Payment:
    """A new, unsaved payment."""
    return Payment(collaborators)


@pytest.fixture
def completed_payment(collaborators) -> Payment:
    """A saved, published payment: two ebooks at 20.00 with 4.00 tax, for ada@example.com."""
    payment = Payment(collaborators)
    payment.email = "ada@example.com"
    payment.first_name = "Ada"
    payment.last_name = "Lovelace"
    payment.add_line(EBOOK_ID, quantity=2, tax="4.00")
    payment.set_status("published")
    assert payment.save()
    return payment
