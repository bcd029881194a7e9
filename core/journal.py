"""
Mutation journal: everything that changed on a payment since the last save.

Scalar fields are keyed by name and keep only their latest value. Line and fee
changes accumulate in order under "downloads" and "fees" so every individual
add/remove survives until the flush. The cart list, fee list and ID are never
journaled as whole fields; the ledgers journal their individual changes.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from core.models import CartLine, FeeEntry
from utils.money import ZERO

DOWNLOADS = "downloads"
FEES = "fees"

ACCUMULATING_KEYS = frozenset({DOWNLOADS, FEES})
UNTRACKED_KEYS = frozenset({"cart", "id"})


class ChangeAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class LineChange:
    """A cart line added to or removed from a payment."""

    action: ChangeAction
    product_id: int
    quantity: int
    amount: Decimal  # Line total when added, amount taken off the subtotal when removed
    tax: Decimal = ZERO
    price_id: int | None = None
    line: CartLine | None = None


@dataclass(frozen=True)
class FeeChange:
    """A fee added to or removed from a payment."""

    action: ChangeAction
    fee: FeeEntry


class MutationJournal:
    """Pending changes of one payment. Not thread-safe."""

    def __init__(self):
        self._changes: dict[str, Any] = {}

    def record(self, key: str, value: Any) -> None:
        """Record the latest value of a scalar field."""
        if key in UNTRACKED_KEYS or key in ACCUMULATING_KEYS:
            return
        self._changes[key] = value

    def append(self, key: str, change: LineChange | FeeChange) -> None:
        """Append one line or fee change."""
        if key not in ACCUMULATING_KEYS:
            raise ValueError(f"'{key}' does not accumulate changes")
        self._changes.setdefault(key, []).append(change)

    def get(self, key: str, default: Any = None) -> Any:
        return self._changes.get(key, default)

    def discard(self, key: str) -> None:
        self._changes.pop(key, None)

    def items(self) -> list[tuple[str, Any]]:
        """Snapshot of pending changes in the order keys were first written."""
        return list(self._changes.items())

    def clear(self) -> None:
        self._changes = {}

    def __contains__(self, key: str) -> bool:
        return key in self._changes

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)


class JournaledField:
    """
    A payment attribute whose writes are recorded in the payment's journal.

    Declared on the class: `gateway = JournaledField()`. The value lives in
    `_<name>` on the instance; the owner must expose `_journal`.
    """

    def __init__(self, convert: Callable[[Any], Any] | None = None):
        self._convert = convert

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.attr = f"_{name}"

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return getattr(obj, self.attr)

    def __set__(self, obj: Any, value: Any) -> None:
        if self._convert is not None:
            value = self._convert(value)
        setattr(obj, self.attr, value)
        obj._journal.record(self.name, value)
