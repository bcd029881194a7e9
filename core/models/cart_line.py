"""Cart line domain models.

Prices are Decimal in the payment's currency, rounded to the currency's
precision by the cart ledger when a line is built. A line stores the price at
the time it was added, not a reference to the current catalog price.
"""

from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from core.models.fee import FeeEntry
from utils.money import to_amount


def _lift_legacy_options(data: Any) -> Any:
    """Older snapshots nested options under item_number['options']."""
    if isinstance(data, dict) and "options" not in data:
        item_number = data.get("item_number")
        if isinstance(item_number, dict) and isinstance(item_number.get("options"), dict):
            data = {**data, "options": item_number["options"]}
    return data


class CartLine(BaseModel):
    """One purchased product entry on a payment."""

    product_id: int = Field(..., validation_alias=AliasChoices("product_id", "id"))
    name: str = ""
    quantity: int = 1
    unit_price: Decimal = Field(
        Decimal("0"), validation_alias=AliasChoices("unit_price", "item_price")
    )
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    total: Decimal = Field(Decimal("0"), validation_alias=AliasChoices("total", "price"))
    options: dict[str, Any] = Field(default_factory=dict)
    fees: list[FeeEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy_keys(cls, data: Any) -> Any:
        return _lift_legacy_options(data)

    @field_validator("unit_price", "discount", "tax", "subtotal", "total", mode="before")
    @classmethod
    def coerce_amounts(cls, value: Any) -> Decimal:
        """Accept stored strings and floats as amounts."""
        return to_amount(value)

    @property
    def price_id(self) -> int | None:
        """The selected price option, if the product has variable pricing."""
        value = self.options.get("price_id")
        if value is None or value is False or value == "":
            return None
        return int(value)


class DownloadRef(BaseModel):
    """Lightweight record of a purchased product, used for per-product counters."""

    product_id: int = Field(..., validation_alias=AliasChoices("product_id", "id"))
    quantity: int = 1
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def price_id(self) -> int | None:
        value = self.options.get("price_id")
        if value is None or value is False or value == "":
            return None
        return int(value)
