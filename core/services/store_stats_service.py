"""
Store-wide earnings.

The running total lives in Postgres (store_stats, a single row). The
"earnings this period" figure is expensive to compute and is cached in
Valkey until a refund or a return to pending invalidates it.
"""

import logging
from decimal import Decimal

from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from core.collaborators import StoreStatistics
from core.services.errors import wrap_errors
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_PERIOD_CACHE_PREFIX = "payments:earnings:period:"
_PERIOD_CACHE_TTL = 3600


class StoreStatsService(StoreStatistics):
    """Service for store earnings."""

    def __init__(self, postgres: PostgresClient, valkey: ValkeyClient):
        self.postgres = postgres
        self.valkey = valkey

    def total_earnings(self) -> Decimal:
        with wrap_errors("read store earnings"):
            value = self.postgres.execute_scalar("SELECT total_earnings FROM store_stats WHERE id = 1")
        return Decimal("0") if value is None else Decimal(value)

    def increase_total_earnings(self, amount: Decimal) -> None:
        with wrap_errors("increase store earnings"):
            self.postgres.execute(
                "UPDATE store_stats SET total_earnings = total_earnings + %s WHERE id = 1",
                (amount,)
            )

    def decrease_total_earnings(self, amount: Decimal) -> None:
        with wrap_errors("decrease store earnings"):
            self.postgres.execute(
                "UPDATE store_stats SET total_earnings = GREATEST(total_earnings - %s, 0) WHERE id = 1",
                (amount,)
            )

    def earnings_this_period(self) -> Decimal:
        """Earnings of completed payments this calendar month, cached."""
        period = now_utc().strftime("%Y-%m")
        cache_key = f"{_PERIOD_CACHE_PREFIX}{period}"

        cached = self.valkey.get_json(cache_key)
        if isinstance(cached, dict) and "amount" in cached:
            return Decimal(cached["amount"])

        value = self.postgres.execute_scalar(
            """
            SELECT COALESCE(SUM((m.meta_value #>> '{}')::numeric), 0)
            FROM payments p
            JOIN payment_meta m ON m.payment_id = p.id AND m.meta_key = 'total'
            WHERE p.status IN ('published', 'revoked')
              AND to_char(p.created_at AT TIME ZONE 'UTC', 'YYYY-MM') = %s
            """,
            (period,)
        )
        amount = Decimal("0") if value is None else Decimal(value)
        self.valkey.set_json(cache_key, {"amount": str(amount)}, expire_seconds=_PERIOD_CACHE_TTL)
        return amount

    def invalidate_period_cache(self) -> None:
        period = now_utc().strftime("%Y-%m")
        with wrap_errors(f"invalidate cached earnings for {period}"):
            self.valkey.delete(f"{_PERIOD_CACHE_PREFIX}{period}")
        logger.info(f"Invalidated cached earnings for {period}")
