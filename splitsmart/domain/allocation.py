"""Per-participant cost allocation.

Each assignee of an item pays ``price * weight / sum(weights)``. Tax and tip
are then spread over participants in proportion to their share of the
assigned subtotal. Nothing is rounded here: amounts keep full Decimal
precision and are only rounded when formatted for display.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from splitsmart.domain.receipt import Receipt

_ZERO = Decimal("0")


@dataclass(frozen=True)
class PersonTotal:
    """What one participant owes."""

    name: str
    items_total: Decimal
    tax_share: Decimal
    tip_share: Decimal
    final_total: Decimal
    # One entry per item the person is assigned to, in receipt order.
    items: tuple[str, ...]


@dataclass(frozen=True)
class Allocation:
    """Breakdown of a receipt across its participants, sorted by name."""

    people: tuple[PersonTotal, ...]
    unassigned_total: Decimal

    def for_person(self, name: str) -> PersonTotal | None:
        for person in self.people:
            if person.name == name:
                return person
        return None


def compute_allocation(receipt: Receipt) -> Allocation:
    """Split ``receipt`` across everyone assigned to at least one item."""
    items_totals: dict[str, Decimal] = {}
    item_names: dict[str, list[str]] = {}
    unassigned_total = _ZERO

    for item in receipt.items:
        if not item.assigned_to:
            unassigned_total += item.price
            continue

        weight_sum = sum(item.weight_for(name) for name in item.assigned_to)
        for name in item.assigned_to:
            share = item.price * item.weight_for(name) / weight_sum
            items_totals[name] = items_totals.get(name, _ZERO) + share
            item_names.setdefault(name, []).append(item.name)

    assigned_subtotal = sum(items_totals.values(), _ZERO)

    people: list[PersonTotal] = []
    for name in sorted(items_totals):
        items_total = items_totals[name]
        if assigned_subtotal:
            tax_share = receipt.tax * items_total / assigned_subtotal
            tip_share = receipt.tip * items_total / assigned_subtotal
        else:
            tax_share = _ZERO
            tip_share = _ZERO
        people.append(
            PersonTotal(
                name=name,
                items_total=items_total,
                tax_share=tax_share,
                tip_share=tip_share,
                final_total=items_total + tax_share + tip_share,
                items=tuple(item_names[name]),
            )
        )

    return Allocation(people=tuple(people), unassigned_total=unassigned_total)


def assigned_total(allocation: Allocation) -> Decimal:
    """Sum of everyone's final totals."""
    return sum((person.final_total for person in allocation.people), _ZERO)
