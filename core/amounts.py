"""
Amount ledger: the payment's summary figures.

total is always subtotal + tax + fees_total. Decreases clamp the target figure
at zero before the total is recomputed. The ledger neither rounds nor journals;
callers pass amounts already rounded to the currency precision. A negative
increase (a credit fee) clamps the same way.
"""

from decimal import Decimal

from utils.money import ZERO, clamp_zero, to_amount


class AmountLedger:
    """Subtotal, tax, fee total and the derived total of one payment."""

    def __init__(
        self,
        subtotal: Decimal = ZERO,
        tax: Decimal = ZERO,
        fees_total: Decimal = ZERO,
    ):
        self._subtotal = clamp_zero(to_amount(subtotal))
        self._tax = clamp_zero(to_amount(tax))
        self._fees_total = clamp_zero(to_amount(fees_total))
        self._total = ZERO
        self._recalculate_total()

    @property
    def subtotal(self) -> Decimal:
        return self._subtotal

    @property
    def tax(self) -> Decimal:
        return self._tax

    @property
    def fees_total(self) -> Decimal:
        return self._fees_total

    @property
    def total(self) -> Decimal:
        return self._total

    def increase_subtotal(self, amount: Decimal) -> None:
        self._subtotal = clamp_zero(self._subtotal + to_amount(amount))
        self._recalculate_total()

    def decrease_subtotal(self, amount: Decimal) -> None:
        self._subtotal = clamp_zero(self._subtotal - to_amount(amount))
        self._recalculate_total()

    def increase_tax(self, amount: Decimal) -> None:
        self._tax = clamp_zero(self._tax + to_amount(amount))
        self._recalculate_total()

    def decrease_tax(self, amount: Decimal) -> None:
        self._tax = clamp_zero(self._tax - to_amount(amount))
        self._recalculate_total()

    def increase_fees(self, amount: Decimal) -> None:
        self._fees_total = clamp_zero(self._fees_total + to_amount(amount))
        self._recalculate_total()

    def decrease_fees(self, amount: Decimal) -> None:
        self._fees_total = clamp_zero(self._fees_total - to_amount(amount))
        self._recalculate_total()

    def _recalculate_total(self) -> None:
        self._total = self._subtotal + self._tax + self._fees_total

    def __repr__(self) -> str:
        return (
            f"AmountLedger(subtotal={self._subtotal}, tax={self._tax}, "
            f"fees_total={self._fees_total}, total={self._total})"
        )
