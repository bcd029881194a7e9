"""
Catalog service for product pricing.

Products are priced either with a single price or through price options
(variable pricing). Payments look prices up here when a line is added
without an explicit price.
"""

import logging
from decimal import Decimal

from clients.postgres_client import PostgresClient
from core.collaborators import Catalog
from core.models import PriceOption, Product

logger = logging.getLogger(__name__)


class CatalogService(Catalog):
    """Service for product catalog lookups."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def get_by_id(self, product_id: int) -> Product | None:
        """
        Get product by ID.

        Returns:
            Product if found, None otherwise.
        """
        row = self.postgres.execute_single(
            "SELECT * FROM products WHERE id = %s",
            (product_id,)
        )

        if row is None:
            return None

        return Product.model_validate(row)

    def list_price_options(self, product_id: int) -> list[PriceOption]:
        """
        List the price options of a product.

        Returns:
            Options ordered by amount, cheapest first
        """
        rows = self.postgres.execute(
            """
            SELECT product_id, option_id, name, amount
            FROM product_prices
            WHERE product_id = %s
            ORDER BY amount ASC, option_id ASC
            """,
            (product_id,)
        )

        return [PriceOption.model_validate(row) for row in rows]

    def resolve_price(self, product_id: int, price_id: int | None = None) -> Decimal | None:
        if price_id is not None:
            amount = self.postgres.execute_scalar(
                "SELECT amount FROM product_prices WHERE product_id = %s AND option_id = %s",
                (product_id, price_id)
            )
            return None if amount is None else Decimal(amount)

        product = self.get_by_id(product_id)
        return None if product is None else product.price

    def lowest_price_option(self, product_id: int) -> tuple[Decimal, int | None]:
        """
        Cheapest price option of a product.

        Products without options fall back to their single price.

        Raises:
            ValueError: If product not found
        """
        options = self.list_price_options(product_id)
        if options:
            return options[0].amount, options[0].option_id

        product = self.get_by_id(product_id)
        if product is None:
            raise ValueError(f"Product {product_id} not found")

        logger.warning(f"Product {product_id} has variable pricing but no price options")
        return product.price, None

    def has_variable_pricing(self, product_id: int) -> bool:
        product = self.get_by_id(product_id)
        return product is not None and product.variable_pricing

    def product_title(self, product_id: int) -> str:
        product = self.get_by_id(product_id)
        return "" if product is None else product.title

    def is_purchasable(self, product_id: int) -> bool:
        product = self.get_by_id(product_id)
        return product is not None and product.is_purchasable
