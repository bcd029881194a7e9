"""
Sales ledger: per-product sale logs and sales/earnings counters.

Every sold unit of a completed payment has one row in sale_logs. The
products table carries running totals (sales, earnings) that never go
below zero.
"""

import logging
from datetime import datetime
from decimal import Decimal

from pydantic import ValidationError

from clients.postgres_client import PostgresClient
from core.collaborators import SalesLedger
from core.hydration import SNAPSHOT_KEY
from core.models import CartLine
from core.services.errors import wrap_errors

logger = logging.getLogger(__name__)


class SalesLedgerService(SalesLedger):
    """Service for product sales records."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def record_sale(
        self, product_id: int, payment_id: int, price_id: int | None, logged_at: datetime
    ) -> None:
        with wrap_errors(f"log a sale of product {product_id}"):
            self.postgres.execute(
                """
                INSERT INTO sale_logs (product_id, payment_id, price_id, logged_at)
                VALUES (%s, %s, %s, %s)
                """,
                (product_id, payment_id, price_id, logged_at)
            )

    def reverse_sale(self, payment_id: int) -> None:
        """
        Undo the sales and earnings of every line on a stored payment.

        Reads the lines from the stored snapshot, so it reverses what was
        counted, not what the in-memory payment holds now.
        """
        with wrap_errors(f"read the lines of payment {payment_id}"):
            snapshot = self.postgres.execute_scalar(
                "SELECT meta_value FROM payment_meta WHERE payment_id = %s AND meta_key = %s",
                (payment_id, SNAPSHOT_KEY)
            )
        if not isinstance(snapshot, dict):
            logger.warning(f"Payment {payment_id} has no snapshot, nothing to reverse")
            return

        for item in snapshot.get("cart_details") or []:
            try:
                line = CartLine.model_validate(item)
            except ValidationError:
                logger.warning(f"Skipping unreadable cart line on payment {payment_id}: {item!r}")
                continue
            self.decrease_sales(line.product_id, line.quantity)
            self.decrease_earnings(line.product_id, line.total)

    def delete_sale_logs(self, payment_id: int) -> None:
        with wrap_errors(f"delete the sale logs of payment {payment_id}"):
            self.postgres.execute(
                "DELETE FROM sale_logs WHERE payment_id = %s",
                (payment_id,)
            )

    def delete_product_sale_logs(
        self, product_id: int, payment_id: int, price_id: int | None, limit: int
    ) -> None:
        with wrap_errors(f"delete sale logs of product {product_id} on payment {payment_id}"):
            self.postgres.execute(
                """
                DELETE FROM sale_logs
                WHERE id IN (
                    SELECT id FROM sale_logs
                    WHERE product_id = %s
                      AND payment_id = %s
                      AND price_id IS NOT DISTINCT FROM %s
                    ORDER BY id
                    LIMIT %s
                )
                """,
                (product_id, payment_id, price_id, limit)
            )

    def increase_sales(self, product_id: int, quantity: int) -> None:
        self._update_product(product_id, "sales = sales + %s", quantity)

    def decrease_sales(self, product_id: int, quantity: int) -> None:
        self._update_product(product_id, "sales = GREATEST(sales - %s, 0)", quantity)

    def increase_earnings(self, product_id: int, amount: Decimal) -> None:
        self._update_product(product_id, "earnings = earnings + %s", amount)

    def decrease_earnings(self, product_id: int, amount: Decimal) -> None:
        self._update_product(product_id, "earnings = GREATEST(earnings - %s, 0)", amount)

    def _update_product(self, product_id: int, assignment: str, value: Decimal | int) -> None:
        with wrap_errors(f"update the counters of product {product_id}"):
            rows = self.postgres.execute_returning(
                f"UPDATE products SET {assignment} WHERE id = %s RETURNING id",
                (value, product_id)
            )
        if not rows:
            logger.warning(f"Product {product_id} not found, sales counters not updated")
