"""Receipt data models and the operations that mutate them.

Every operation returns a new instance. ``Receipt.subtotal`` and
``Receipt.total`` are derived at construction, so any Receipt a caller can
observe satisfies ``total == subtotal + tax + tip``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal

DEFAULT_CURRENCY = "$"
DEFAULT_ITEM_NAME = "New Item"
DEFAULT_WEIGHT = 1

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ReceiptItem:
    """A single line item on a receipt."""

    id: int
    name: str
    price: Decimal
    quantity: int = 1
    assigned_to: tuple[str, ...] = ()
    # Absent names have weight DEFAULT_WEIGHT; keys are a subset of assigned_to.
    assignment_weights: dict[str, int] = field(default_factory=dict)
    dietary_tags: tuple[str, ...] = ()
    box_2d: tuple[int, ...] | None = None

    @property
    def total(self) -> Decimal:
        # Price is the authoritative line total from the receipt.
        # Quantity is informational only and should not be used to compute totals.
        return self.price

    def weight_for(self, name: str) -> int:
        return self.assignment_weights.get(name, DEFAULT_WEIGHT)

    def __hash__(self) -> int:
        # The weights dict is never mutated in place; hash a sorted snapshot.
        return hash(
            (
                self.id,
                self.name,
                self.price,
                self.quantity,
                self.assigned_to,
                tuple(sorted(self.assignment_weights.items())),
                self.dietary_tags,
                self.box_2d,
            )
        )


@dataclass(frozen=True)
class Receipt:
    """A receipt being split."""

    items: tuple[ReceiptItem, ...] = ()
    tax: Decimal = _ZERO
    tip: Decimal = _ZERO
    currency: str = DEFAULT_CURRENCY
    # Highest item id ever issued, so deleted ids are not handed out again.
    last_item_id: int = 0
    subtotal: Decimal = field(init=False)
    total: Decimal = field(init=False)

    def __post_init__(self) -> None:
        subtotal = sum((item.price for item in self.items), _ZERO)
        object.__setattr__(self, "subtotal", subtotal)
        object.__setattr__(self, "total", subtotal + self.tax + self.tip)


def build_receipt(
    items: Iterable[ReceiptItem],
    tax: Decimal = _ZERO,
    tip: Decimal = _ZERO,
    currency: str = DEFAULT_CURRENCY,
) -> Receipt:
    """Create a receipt, numbering items 1..n in their given order.

    Ids already carried by ``items`` are discarded.
    """
    numbered = tuple(replace(item, id=index) for index, item in enumerate(items, 1))
    return Receipt(items=numbered, tax=tax, tip=tip, currency=currency, last_item_id=len(numbered))


def next_item_id(receipt: Receipt) -> int:
    highest = max((item.id for item in receipt.items), default=0)
    return max(highest, receipt.last_item_id) + 1


def find_item(receipt: Receipt, item_id: int) -> ReceiptItem | None:
    for item in receipt.items:
        if item.id == item_id:
            return item
    return None


def _with_items(receipt: Receipt, items: tuple[ReceiptItem, ...]) -> Receipt:
    last_item_id = max([receipt.last_item_id, *(item.id for item in items)])
    return replace(receipt, items=items, last_item_id=last_item_id)


def add_item(receipt: Receipt) -> Receipt:
    """Insert a blank item at the top of the list."""
    item = ReceiptItem(id=next_item_id(receipt), name=DEFAULT_ITEM_NAME, price=_ZERO)
    return _with_items(receipt, (item, *receipt.items))


def update_item(receipt: Receipt, updated: ReceiptItem) -> Receipt:
    """Replace the item with the same id. Unknown ids leave the receipt unchanged."""
    if find_item(receipt, updated.id) is None:
        return receipt
    items = tuple(updated if item.id == updated.id else item for item in receipt.items)
    return _with_items(receipt, items)


def delete_item(receipt: Receipt, item_id: int) -> Receipt:
    if find_item(receipt, item_id) is None:
        return receipt
    return _with_items(receipt, tuple(item for item in receipt.items if item.id != item_id))


def set_tax(receipt: Receipt, amount: Decimal) -> Receipt:
    """Set the tax amount.

    Negative amounts are not rejected here; callers validate user input.
    """
    return replace(receipt, tax=amount)


def set_tip(receipt: Receipt, amount: Decimal) -> Receipt:
    """Set the tip amount.

    Negative amounts are not rejected here; callers validate user input.
    """
    return replace(receipt, tip=amount)


def percent_of_subtotal(receipt: Receipt, percent: Decimal) -> Decimal:
    return receipt.subtotal * percent / _HUNDRED


def set_tax_percent(receipt: Receipt, percent: Decimal) -> Receipt:
    return set_tax(receipt, percent_of_subtotal(receipt, percent))


def set_tip_percent(receipt: Receipt, percent: Decimal) -> Receipt:
    return set_tip(receipt, percent_of_subtotal(receipt, percent))


def append_receipt(receipt: Receipt, other: Receipt) -> Receipt:
    """Merge ``other`` into ``receipt``.

    Items from ``other`` are renumbered after the current highest id, keeping
    their relative order. Tax and tip from both receipts are added together,
    so subtotal and total end up as the field-wise sums as well. The first
    receipt's currency is kept.
    """
    start = next_item_id(receipt)
    renumbered = tuple(replace(item, id=start + offset) for offset, item in enumerate(other.items))
    merged = replace(
        receipt,
        items=receipt.items + renumbered,
        tax=receipt.tax + other.tax,
        tip=receipt.tip + other.tip,
    )
    return _with_items(merged, merged.items)


def toggle_assignment(item: ReceiptItem, person: str) -> ReceiptItem:
    """Add ``person`` with weight 1, or remove them and their weight."""
    weights = dict(item.assignment_weights)
    if person in item.assigned_to:
        weights.pop(person, None)
        assigned = tuple(name for name in item.assigned_to if name != person)
    else:
        weights[person] = DEFAULT_WEIGHT
        assigned = (*item.assigned_to, person)
    return replace(item, assigned_to=assigned, assignment_weights=weights)


def update_weight(item: ReceiptItem, person: str, delta: int) -> ReceiptItem:
    """Shift a person's weight by ``delta``, never below 1."""
    if person not in item.assigned_to:
        return item
    weights = dict(item.assignment_weights)
    weights[person] = max(DEFAULT_WEIGHT, item.weight_for(person) + delta)
    return replace(item, assignment_weights=weights)


def set_assignees(item: ReceiptItem, names: Sequence[str]) -> ReceiptItem:
    """Replace the assignee list, keeping weights for names that stay."""
    assigned: list[str] = []
    for raw in names:
        name = raw.strip()
        if name and name not in assigned:
            assigned.append(name)
    weights = {name: item.assignment_weights.get(name, DEFAULT_WEIGHT) for name in assigned}
    return replace(item, assigned_to=tuple(assigned), assignment_weights=weights)


@dataclass(frozen=True)
class AssignmentUpdate:
    """Full replacement of one item's assignees, as produced by the command interpreter."""

    item_id: int
    assigned_to: tuple[str, ...]


@dataclass(frozen=True)
class DietaryTags:
    """Dietary labels for one item."""

    item_id: int
    tags: tuple[str, ...]


def apply_assignment_updates(receipt: Receipt, updates: Iterable[AssignmentUpdate]) -> Receipt:
    for update in updates:
        item = find_item(receipt, update.item_id)
        if item is not None:
            receipt = update_item(receipt, set_assignees(item, update.assigned_to))
    return receipt


def apply_dietary_tags(receipt: Receipt, tags: Iterable[DietaryTags]) -> Receipt:
    for entry in tags:
        item = find_item(receipt, entry.item_id)
        if item is not None:
            receipt = update_item(receipt, replace(item, dietary_tags=entry.tags))
    return receipt


def merge_weights(item: ReceiptItem, weights: Mapping[str, int]) -> ReceiptItem:
    """Overlay explicit weights for assigned names, dropping the rest."""
    merged = dict(item.assignment_weights)
    for name, weight in weights.items():
        if name in item.assigned_to:
            merged[name] = max(DEFAULT_WEIGHT, int(weight))
    return replace(item, assignment_weights=merged)
