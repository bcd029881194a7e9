"""
Cart ledger: the purchased lines of a payment and their download references.

Every cart line has a download reference for the same product, kept in step
by add_line/remove_line. Amounts on a line are rounded to the currency's
precision when the line is built; the aggregate figures move by the same
rounded amounts.
"""

import logging
from decimal import Decimal
from typing import Any

from core.amounts import AmountLedger
from core.collaborators import Catalog
from core.config import PaymentConfig
from core.journal import DOWNLOADS, ChangeAction, LineChange, MutationJournal
from core.models import CartLine, DownloadRef, FeeEntry
from utils.money import ZERO, clamp_zero, round_amount, to_amount

logger = logging.getLogger(__name__)


class CartLedger:
    """Adds and removes cart lines, keeping the amount ledger in step."""

    def __init__(
        self,
        amounts: AmountLedger,
        journal: MutationJournal,
        catalog: Catalog,
        config: PaymentConfig,
        lines: list[CartLine] | None = None,
        downloads: list[DownloadRef] | None = None,
    ):
        self._amounts = amounts
        self._journal = journal
        self._catalog = catalog
        self._config = config
        self._lines: list[CartLine] = list(lines or [])
        self._downloads: list[DownloadRef] = list(downloads or [])

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    @property
    def downloads(self) -> list[DownloadRef]:
        return list(self._downloads)

    def _round(self, value: Any) -> Decimal:
        return round_amount(value, self._config.currency_decimals)

    def _resolve_unit_price(
        self, product_id: int, price_id: int | None, item_price: Any
    ) -> tuple[Decimal, int | None]:
        """Explicit price, else the chosen price option, else the cheapest option, else the product price."""
        if item_price is not None:
            return to_amount(item_price), price_id

        if self._catalog.has_variable_pricing(product_id):
            if price_id is not None:
                amount = self._catalog.resolve_price(product_id, price_id)
                if amount is not None:
                    return amount, price_id
            return self._catalog.lowest_price_option(product_id)

        return self._catalog.resolve_price(product_id) or ZERO, price_id

    def add_line(
        self,
        product_id: int,
        quantity: int = 1,
        price_id: int | None = None,
        item_price: Any = None,
        discount: Any = ZERO,
        tax: Any = ZERO,
        fees: list[FeeEntry | dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
    ) -> bool:
        """
        Add a product to the cart.

        Args:
            product_id: Catalog product to add
            quantity: Units; forced to 1 when per-item quantities are disabled
            price_id: Price option of a variable-priced product
            item_price: Unit price overriding the catalog
            discount: Discount amount on the whole line
            tax: Tax amount on the whole line
            fees: Fees applied to this line (stored on the line only)
            options: Extra line options, merged over quantity and price_id

        Returns:
            False if the product cannot be purchased or the quantity is not
            positive; the payment is left unchanged
        """
        if not self._catalog.is_purchasable(product_id):
            logger.warning(f"Cannot add product {product_id}: not purchasable")
            return False

        quantity = int(quantity) if self._config.item_quantities_enabled else 1
        if quantity < 1:
            logger.warning(f"Cannot add product {product_id}: quantity {quantity} is not positive")
            return False

        unit_price, price_id = self._resolve_unit_price(product_id, price_id, item_price)
        unit_price = self._round(unit_price)
        tax = self._round(tax)
        discount = self._round(discount)

        subtotal = self._round(unit_price * quantity)
        if self._config.prices_include_tax:
            subtotal -= tax
        total = clamp_zero(subtotal - discount + tax)

        line_options: dict[str, Any] = {"quantity": quantity}
        if price_id is not None:
            line_options["price_id"] = int(price_id)
        line_options.update(options or {})

        line = CartLine(
            product_id=product_id,
            name=self._catalog.product_title(product_id),
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            tax=tax,
            subtotal=subtotal,
            total=total,
            options=line_options,
            fees=[f if isinstance(f, FeeEntry) else FeeEntry.model_validate(f) for f in fees or []],
        )

        self._lines.append(line)
        self._downloads.append(
            DownloadRef(product_id=product_id, quantity=quantity, options=dict(line_options))
        )
        self._journal.append(
            DOWNLOADS,
            LineChange(
                action=ChangeAction.ADD,
                product_id=product_id,
                quantity=quantity,
                amount=total,
                tax=tax,
                price_id=line.price_id,
                line=line,
            ),
        )

        self._amounts.increase_subtotal(subtotal - discount)
        self._amounts.increase_tax(tax)
        return True

    def _find_line(
        self,
        product_id: int,
        price_id: int | None,
        cart_index: int | None,
        item_price: Any,
    ) -> int | None:
        if cart_index is not None:
            index = int(cart_index)
            if not 0 <= index < len(self._lines):
                logger.warning(f"Invalid cart index {cart_index}")
                return None
            if self._lines[index].product_id != product_id:
                logger.warning(f"Cart index {cart_index} does not hold product {product_id}")
                return None
            return index

        unit_price = None if item_price is None else to_amount(item_price)
        for index, line in enumerate(self._lines):
            if line.product_id != product_id:
                continue
            if price_id is not None and line.price_id is not None and line.price_id != price_id:
                continue
            if unit_price is not None and line.unit_price != unit_price:
                continue
            return index
        return None

    def _find_download(self, product_id: int, price_id: int | None) -> int | None:
        for index, ref in enumerate(self._downloads):
            if ref.product_id != product_id:
                continue
            if price_id is not None and ref.price_id is not None and ref.price_id != price_id:
                continue
            return index
        return None

    def remove_line(
        self,
        product_id: int,
        quantity: int = 1,
        price_id: int | None = None,
        cart_index: int | None = None,
        item_price: Any = None,
    ) -> bool:
        """
        Remove units of a product from the cart.

        The line is found by cart_index when given (it must hold product_id),
        else by product and optional price option and unit price, else the
        first line of the product. Removing fewer units than the line holds
        keeps the line with prorated tax; its discount is dropped. Removing
        all of them drops the line.

        Returns:
            False if no line matches; the payment is left unchanged
        """
        quantity = int(quantity)
        if quantity < 1:
            return False

        position = self._find_line(product_id, price_id, cart_index, item_price)
        if position is None:
            return False

        line = self._lines[position]
        original_quantity = line.quantity

        if original_quantity > quantity:
            removed_quantity = quantity
            amount_removed = self._round(line.unit_price * quantity)
            tax_removed = self._round(line.tax / original_quantity * quantity)

            new_quantity = original_quantity - quantity
            new_tax = line.tax - tax_removed
            new_subtotal = self._round(line.unit_price * new_quantity)
            self._lines[position] = line.model_copy(
                update={
                    "quantity": new_quantity,
                    "tax": new_tax,
                    "subtotal": new_subtotal,
                    "discount": ZERO,
                    "total": clamp_zero(new_subtotal + new_tax),
                }
            )
        else:
            # The whole line goes, but the aggregate only drops by one unit price
            removed_quantity = original_quantity
            amount_removed = line.unit_price
            tax_removed = line.tax
            del self._lines[position]

        target_price_id = price_id if price_id is not None else line.price_id
        ref_position = self._find_download(product_id, target_price_id)
        if ref_position is not None:
            ref = self._downloads[ref_position]
            if ref.quantity > quantity:
                self._downloads[ref_position] = ref.model_copy(
                    update={"quantity": ref.quantity - quantity}
                )
            else:
                del self._downloads[ref_position]

        self._journal.append(
            DOWNLOADS,
            LineChange(
                action=ChangeAction.REMOVE,
                product_id=product_id,
                quantity=removed_quantity,
                amount=amount_removed,
                tax=tax_removed,
                price_id=target_price_id,
            ),
        )

        self._amounts.decrease_subtotal(amount_removed)
        self._amounts.decrease_tax(tax_removed)
        return True
