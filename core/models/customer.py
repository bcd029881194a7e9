"""Customer domain models."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field


class CustomerCreate(BaseModel):
    """Data required to create a customer at checkout."""

    email: EmailStr | None = None
    name: str = Field("", max_length=255)
    user_id: int | None = None


class Customer(BaseModel):
    """Full customer entity as stored, with lifetime statistics."""

    id: int
    user_id: int | None = None
    email: str
    name: str = ""
    purchase_value: Decimal = Decimal("0")
    purchase_count: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        """Human-readable name for display."""
        return self.name or self.email or "Unnamed Customer"
