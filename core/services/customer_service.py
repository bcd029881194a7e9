"""
Customer service for checkout customers and their lifetime statistics.

A customer is resolved per payment: by the logged-in user first, then by
email, and created if neither matches. Lifetime value and purchase count
move with payments and never go below zero.
"""

import logging
from decimal import Decimal

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.collaborators import CustomerDirectory
from core.models import Customer, CustomerCreate
from core.services.errors import wrap_errors
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CustomerService(CustomerDirectory):
    """Service for customer operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: CustomerCreate) -> Customer:
        """
        Create a new customer.

        Args:
            data: Customer creation data

        Returns:
            Created customer
        """
        with wrap_errors("create customer"):
            row = self.postgres.execute_returning(
                """
                INSERT INTO customers (
                    user_id, email, name, purchase_value, purchase_count, created_at
                ) VALUES (%s, %s, %s, 0, 0, %s)
                RETURNING *
                """,
                (data.user_id, data.email or "", data.name, now_utc())
            )[0]

        customer = Customer.model_validate(row)

        self.audit.log_change(
            entity_type="customer",
            entity_id=customer.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return customer

    def get_by_id(self, customer_id: int) -> Customer | None:
        """
        Get customer by ID.

        Returns:
            Customer if found, None otherwise.
        """
        with wrap_errors(f"load customer {customer_id}"):
            row = self.postgres.execute_single(
                "SELECT * FROM customers WHERE id = %s",
                (customer_id,)
            )

        if row is None:
            return None

        return Customer.model_validate(row)

    def get_by_user_id(self, user_id: int) -> Customer | None:
        with wrap_errors(f"load the customer of user {user_id}"):
            row = self.postgres.execute_single(
                "SELECT * FROM customers WHERE user_id = %s",
                (user_id,)
            )
        return None if row is None else Customer.model_validate(row)

    def get_by_email(self, email: str) -> Customer | None:
        with wrap_errors("load customer by email"):
            row = self.postgres.execute_single(
                "SELECT * FROM customers WHERE lower(email) = lower(%s)",
                (email,)
            )
        return None if row is None else Customer.model_validate(row)

    def find_or_create(self, email: str, user_id: int | None = None, name: str = "") -> int:
        """
        Resolve the customer for a purchase, creating one if needed.

        Returns:
            Customer ID
        """
        customer = None
        if user_id:
            customer = self.get_by_user_id(user_id)
        if customer is None and email:
            customer = self.get_by_email(email)
        if customer is None:
            customer = self.create(CustomerCreate(email=email or None, name=name, user_id=user_id))
            logger.info(f"Created customer {customer.id} for checkout")
        return customer.id

    def attach_payment(self, customer_id: int, payment_id: int) -> None:
        """Link a payment to a customer. Linking twice is a no-op."""
        with wrap_errors(f"attach payment {payment_id} to customer {customer_id}"):
            self.postgres.execute(
                """
                INSERT INTO customer_payments (customer_id, payment_id)
                VALUES (%s, %s)
                ON CONFLICT DO NOTHING
                """,
                (customer_id, payment_id)
            )

    def increase_value(self, customer_id: int, amount: Decimal) -> None:
        self._update_stats(customer_id, "purchase_value = purchase_value + %s", amount)

    def decrease_value(self, customer_id: int, amount: Decimal) -> None:
        self._update_stats(customer_id, "purchase_value = GREATEST(purchase_value - %s, 0)", amount)

    def decrease_purchase_count(self, customer_id: int) -> None:
        self._update_stats(customer_id, "purchase_count = GREATEST(purchase_count - %s, 0)", 1)

    def email_of(self, customer_id: int) -> str:
        customer = self.get_by_id(customer_id)
        return "" if customer is None else customer.email

    def _update_stats(self, customer_id: int, assignment: str, value: Decimal | int) -> None:
        """
        Apply one statistics update.

        Raises:
            ValueError: If customer not found
            PersistenceError: If the update fails
        """
        with wrap_errors(f"update the statistics of customer {customer_id}"):
            rows = self.postgres.execute_returning(
                f"UPDATE customers SET {assignment} WHERE id = %s RETURNING id",
                (value, customer_id)
            )
        if not rows:
            raise ValueError(f"Customer {customer_id} not found")
