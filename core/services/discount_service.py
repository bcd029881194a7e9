"""Discount code usage counters."""

import logging

from clients.postgres_client import PostgresClient
from core.collaborators import DiscountRegistry
from core.services.errors import wrap_errors

logger = logging.getLogger(__name__)


class DiscountService(DiscountRegistry):
    """Service for discount codes."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def get_usage(self, code: str) -> int | None:
        """Times a code has been used, or None for an unknown code."""
        with wrap_errors(f"read usage of discount code '{code}'"):
            return self.postgres.execute_scalar(
                "SELECT use_count FROM discounts WHERE lower(code) = lower(%s)",
                (code,)
            )

    def decrease_usage(self, code: str) -> None:
        """Give back one use of a code. Unknown codes are logged and ignored."""
        with wrap_errors(f"release a use of discount code '{code}'"):
            rows = self.postgres.execute_returning(
                """
                UPDATE discounts
                SET use_count = GREATEST(use_count - 1, 0)
                WHERE lower(code) = lower(%s)
                RETURNING use_count
                """,
                (code,)
            )
        if not rows:
            logger.warning(f"Discount code '{code}' not found, usage not decreased")
