"""Fee domain models.

Amounts are Decimal in the payment's currency. A fee's amount is signed:
a negative amount acts as a credit against the payment total.
"""

from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from utils.money import to_amount


class FeeEntry(BaseModel):
    """A named fee attached to a payment (or to one of its lines)."""

    label: str = ""
    amount: Decimal = Decimal("0")
    type: str = "fee"
    external_id: str = Field("", validation_alias=AliasChoices("external_id", "id"))
    tax_exempt: bool = Field(False, validation_alias=AliasChoices("tax_exempt", "no_tax"))
    related_product_id: int = Field(
        0, validation_alias=AliasChoices("related_product_id", "download_id")
    )

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> Decimal:
        """Accept stored strings and floats as amounts."""
        return to_amount(value)

    @field_validator("external_id", mode="before")
    @classmethod
    def coerce_external_id(cls, value: Any) -> str:
        """Older snapshots stored numeric fee ids."""
        return "" if value is None else str(value)

    @field_validator("related_product_id", mode="before")
    @classmethod
    def coerce_related_product(cls, value: Any) -> int:
        return int(value or 0)


class IndexedFee(FeeEntry):
    """A fee as listed from a payment, tagged with its position."""

    index: int
