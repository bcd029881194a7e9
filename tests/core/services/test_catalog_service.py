"""Tests for CatalogService (product pricing)."""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from clients.postgres_client import PostgresClient


def _product_row(**overrides):
    row = {
        "id": 7, "title": "Ebook", "price": Decimal("20.00"),
        "variable_pricing": False, "status": "active",
        "sales": 0, "earnings": Decimal("0"),
    }
    row.update(overrides)
    return row


@pytest.fixture
def postgres():
    return Mock(spec=PostgresClient)


@pytest.fixture
def catalog_service(postgres):
    from core.services.catalog_service import CatalogService

    return CatalogService(postgres)


class TestLookups:
    """Tests for product lookups."""

    def test_get_by_id(self, postgres, catalog_service):
        postgres.execute_single.return_value = _product_row()

        product = catalog_service.get_by_id(7)

        assert product.title == "Ebook"
        assert product.price == Decimal("20.00")

    def test_get_by_id_missing(self, postgres, catalog_service):
        postgres.execute_single.return_value = None

        assert catalog_service.get_by_id(404) is None
        assert catalog_service.product_title(404) == ""
        assert not catalog_service.is_purchasable(404)
        assert not catalog_service.has_variable_pricing(404)

    @pytest.mark.parametrize("status,expected", [("active", True), ("draft", False)])
    def test_is_purchasable(self, postgres, catalog_service, status, expected):
        postgres.execute_single.return_value = _product_row(status=status)

        assert catalog_service.is_purchasable(7) is expected

    def test_has_variable_pricing(self, postgres, catalog_service):
        postgres.execute_single.return_value = _product_row(variable_pricing=True)

        assert catalog_service.has_variable_pricing(7)


class TestResolvePrice:
    """Tests for CatalogService.resolve_price."""

    def test_product_price(self, postgres, catalog_service):
        postgres.execute_single.return_value = _product_row()

        assert catalog_service.resolve_price(7) == Decimal("20.00")

    def test_option_price(self, postgres, catalog_service):
        postgres.execute_scalar.return_value = Decimal("10.00")

        assert catalog_service.resolve_price(9, price_id=1) == Decimal("10.00")
        assert postgres.execute_scalar.call_args.args[1] == (9, 1)

    def test_unknown_option(self, postgres, catalog_service):
        postgres.execute_scalar.return_value = None

        assert catalog_service.resolve_price(9, price_id=99) is None


class TestLowestPriceOption:
    """Tests for CatalogService.lowest_price_option."""

    def test_cheapest_option_first(self, postgres, catalog_service):
        postgres.execute.return_value = [
            {"product_id": 9, "option_id": 2, "name": "Basic", "amount": Decimal("5.00")},
            {"product_id": 9, "option_id": 1, "name": "Pro", "amount": Decimal("10.00")},
        ]

        assert catalog_service.lowest_price_option(9) == (Decimal("5.00"), 2)
        assert "ORDER BY amount ASC" in postgres.execute.call_args.args[0]

    def test_no_options_falls_back_to_price(self, postgres, catalog_service, caplog):
        postgres.execute.return_value = []
        postgres.execute_single.return_value = _product_row(id=9, price=Decimal("12.00"))

        assert catalog_service.lowest_price_option(9) == (Decimal("12.00"), None)
        assert "no price options" in caplog.text

    def test_missing_product_raises(self, postgres, catalog_service):
        postgres.execute.return_value = []
        postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="not found"):
            catalog_service.lowest_price_option(404)
