"""
Postgres-backed payment store.

Base record in `payments`, everything else as JSONB rows in `payment_meta`
(one row per key, upserted). Driver errors surface as PersistenceError so
Payment.save() can keep its pending changes for a retry.
"""

import json
import logging
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.collaborators import PaymentStore
from core.models import PaymentRecord
from core.services.errors import wrap_errors
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Keys written to a column of `payments`; any other key is meta
_RECORD_COLUMNS = {"status", "title", "parent_payment_id", "created_at"}


def _json(value: Any) -> Json:
    return Json(value, dumps=lambda obj: json.dumps(obj, default=str))


class PostgresPaymentStore(PaymentStore):
    """PaymentStore over the payments and payment_meta tables."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def load(self, payment_id: int) -> PaymentRecord | None:
        """
        Load a payment with all of its meta values.

        Returns:
            The record, or None if no payment has that ID
        """
        with wrap_errors(f"load payment {payment_id}"):
            row = self.postgres.execute_single(
                """
                SELECT id, status, title, parent_payment_id, created_at, modified_at
                FROM payments
                WHERE id = %s
                """,
                (payment_id,)
            )
            if row is None:
                return None

            meta_rows = self.postgres.execute(
                "SELECT meta_key, meta_value FROM payment_meta WHERE payment_id = %s",
                (payment_id,)
            )

        meta = {r["meta_key"]: r["meta_value"] for r in meta_rows}
        return PaymentRecord.model_validate({**row, "meta": meta})

    def insert(self, record: PaymentRecord) -> int:
        """Insert the base record and any meta it carries. Returns the new ID."""
        now = now_utc()
        with wrap_errors("insert payment (new)"):
            with self.postgres.transaction() as cur:
                cur.execute(
                    """
                    INSERT INTO payments (
                        status, title, parent_payment_id, created_at, modified_at
                    ) VALUES (%s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        record.status, record.title, record.parent_payment_id,
                        record.created_at or now, now
                    )
                )
                payment_id = cur.fetchone()["id"]

                for key, value in record.meta.items():
                    cur.execute(
                        """
                        INSERT INTO payment_meta (payment_id, meta_key, meta_value)
                        VALUES (%s, %s, %s)
                        """,
                        (payment_id, key, _json(value))
                    )

        logger.info(f"Inserted payment {payment_id}")
        return payment_id

    def update_field(self, payment_id: int, key: str, value: Any) -> None:
        """Write a base column (status, title, parent_payment_id, created_at) or a meta value."""
        with wrap_errors(f"write '{key}' of payment {payment_id}"):
            if key in _RECORD_COLUMNS:
                # Column name comes from the allow-list above
                self.postgres.execute(
                    f"UPDATE payments SET {key} = %s, modified_at = %s WHERE id = %s",
                    (value, now_utc(), payment_id)
                )
                return

            self.postgres.execute(
                """
                INSERT INTO payment_meta (payment_id, meta_key, meta_value)
                VALUES (%s, %s, %s)
                ON CONFLICT (payment_id, meta_key)
                DO UPDATE SET meta_value = EXCLUDED.meta_value
                """,
                (payment_id, key, _json(value))
            )

    def read_meta(self, payment_id: int, key: str) -> Any:
        """Read one meta value. None if it is not set."""
        with wrap_errors(f"read '{key}' of payment {payment_id}"):
            return self.postgres.execute_scalar(
                "SELECT meta_value FROM payment_meta WHERE payment_id = %s AND meta_key = %s",
                (payment_id, key)
            )
