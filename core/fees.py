"""
Fee ledger: the ordered fees of a payment.

Positions are contiguous. Removing a fee re-indexes the ones after it, so an
index is only meaningful until the next removal.
"""

import logging
from decimal import Decimal
from typing import Any

from core.amounts import AmountLedger
from core.journal import FEES, ChangeAction, FeeChange, MutationJournal
from core.models import FeeEntry, IndexedFee
from utils.money import to_amount

logger = logging.getLogger(__name__)

# Attributes a fee can be removed by
REMOVABLE_BY = frozenset({"index", "label", "amount", "type"})


class FeeLedger:
    """Adds, removes and lists fees, keeping the amount ledger in step."""

    def __init__(
        self,
        amounts: AmountLedger,
        journal: MutationJournal,
        fees: list[FeeEntry] | None = None,
    ):
        self._amounts = amounts
        self._journal = journal
        self._fees: list[FeeEntry] = list(fees or [])

    @property
    def fees(self) -> list[FeeEntry]:
        """Copy of the fee list in order."""
        return list(self._fees)

    def add_fee(self, entry: FeeEntry | dict[str, Any]) -> bool:
        """Append a fee and add its amount to the fee total."""
        fee = entry if isinstance(entry, FeeEntry) else FeeEntry.model_validate(entry)

        self._fees.append(fee)
        self._journal.append(FEES, FeeChange(action=ChangeAction.ADD, fee=fee))
        self._amounts.increase_fees(fee.amount)
        return True

    def remove_fee(self, index: int) -> bool:
        """Remove the fee at a position."""
        return self.remove_fee_by("index", index)

    def remove_fee_by(self, attribute: str, value: Any, remove_all: bool = False) -> bool:
        """
        Remove the first fee (or every fee) whose attribute equals value.

        Args:
            attribute: One of index, label, amount, type
            value: Value to match; amounts compare as decimals
            remove_all: Remove every match instead of the first one

        Returns:
            True if at least one fee was removed
        """
        if attribute not in REMOVABLE_BY:
            logger.warning(f"Refusing to remove fees by disallowed attribute '{attribute}'")
            return False

        if attribute == "index":
            try:
                position = int(value)
            except (TypeError, ValueError):
                return False
            if not 0 <= position < len(self._fees):
                return False
            removed = [position]
        else:
            matches = [i for i, fee in enumerate(self._fees) if self._matches(fee, attribute, value)]
            removed = matches if remove_all else matches[:1]

        if not removed:
            return False

        for position in removed:
            fee = self._fees[position]
            self._journal.append(FEES, FeeChange(action=ChangeAction.REMOVE, fee=fee))
            self._amounts.decrease_fees(fee.amount)

        drop = set(removed)
        self._fees = [fee for i, fee in enumerate(self._fees) if i not in drop]
        return True

    def list_fees(self, fee_type: str = "all") -> list[IndexedFee]:
        """
        Fees tagged with their current index, optionally filtered by type.

        Fees without a type are listed under every filter.
        """
        listed = []
        for index, fee in enumerate(self._fees):
            if fee_type != "all" and fee.type and fee.type != fee_type:
                continue
            listed.append(IndexedFee(index=index, **fee.model_dump()))
        return listed

    def __len__(self) -> int:
        return len(self._fees)

    @staticmethod
    def _matches(fee: FeeEntry, attribute: str, value: Any) -> bool:
        if attribute == "amount":
            try:
                return fee.amount == to_amount(value)
            except ValueError:
                return False
        return getattr(fee, attribute) == value
