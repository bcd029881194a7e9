"""Payment configuration."""

from pydantic import BaseModel, Field


def _default_status_labels() -> dict[str, str]:
    return {
        "pending": "Pending",
        "published": "Complete",
        "refunded": "Refunded",
        "failed": "Failed",
        "revoked": "Revoked",
        "abandoned": "Abandoned",
        "preapproved": "Pre-Approved",
        "cancelled": "Cancelled",
    }


class PaymentConfig(BaseModel):
    """
    Store-wide payment settings.

    One instance is shared by every payment of an install. The install
    secret is read from Vault in production (see clients.vault_client).
    """

    # Currency
    currency_code: str = Field(
        default="USD",
        description="Currency for payments that do not carry their own",
        min_length=3,
        max_length=3,
    )
    currency_decimals: int = Field(
        default=2,
        description="Minor-unit precision amounts are rounded to",
        ge=0,
        le=4,
    )

    # Pricing and tax
    prices_include_tax: bool = Field(
        default=False,
        description="Whether catalog prices already include tax",
    )
    use_taxes: bool = Field(
        default=True,
        description="Whether taxes are enabled for the store",
    )
    item_quantities_enabled: bool = Field(
        default=True,
        description="Allow more than one unit per cart line",
    )

    # Identifiers
    sequential_numbers: bool = Field(
        default=False,
        description="Use stored sequential numbers instead of IDs for display",
    )
    install_secret: str = Field(
        default="",
        description="Per-install secret mixed into purchase keys",
    )

    # Display
    status_labels: dict[str, str] = Field(
        default_factory=_default_status_labels,
        description="Display label per status; unknown statuses are capitalized",
    )

    # Reconciliation on refund
    decrease_store_earnings_on_refund: bool = True
    decrease_customer_value_on_refund: bool = True
    decrease_purchase_count_on_refund: bool = True

    # Reconciliation on return to pending
    decrease_store_earnings_on_pending: bool = True
    decrease_customer_value_on_pending: bool = True
    decrease_purchase_count_on_pending: bool = True

    def status_label(self, status: str) -> str:
        """Human-readable label for a status."""
        if status in self.status_labels:
            return self.status_labels[status]
        return status[:1].upper() + status[1:]
