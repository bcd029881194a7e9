"""Product catalog models."""

from decimal import Decimal

from pydantic import BaseModel, Field


class PriceOption(BaseModel):
    """One price of a variable-priced product."""

    product_id: int
    option_id: int
    name: str = ""
    amount: Decimal

    model_config = {"from_attributes": True}


class Product(BaseModel):
    """A product that can be added to a payment's cart."""

    id: int
    title: str = ""
    price: Decimal = Decimal("0")
    variable_pricing: bool = False
    status: str = Field("active", pattern="^(active|draft|archived)$")
    sales: int = 0
    earnings: Decimal = Decimal("0")

    model_config = {"from_attributes": True}

    @property
    def is_purchasable(self) -> bool:
        return self.status == "active"
