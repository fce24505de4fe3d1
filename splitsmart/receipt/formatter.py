"""Format receipts, allocations and sessions as plain text for display.

This is the only place where amounts are rounded, to cents, half-up.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from splitsmart.domain.allocation import Allocation
from splitsmart.domain.receipt import Receipt
from splitsmart.domain.session import ChatMessage, SessionMeta

_CENT = Decimal("0.01")


def round_cents(amount: Decimal) -> Decimal:
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, currency: str = "$") -> str:
    rounded = round_cents(amount)
    if rounded < 0:
        return f"-{currency}{-rounded}"
    return f"{currency}{rounded}"


def _format_rows_aligned(rows: list[tuple[str, str, str | None]], indent: str = "  ") -> list[str]:
    """
    Format (label, amount, comment) rows with aligned amounts and comments.

    Args:
        rows: List of (label, amount_text, comment_or_none) tuples
        indent: Indentation prefix for each line

    Returns:
        List of formatted lines
    """
    if not rows:
        return []

    max_label_len = max(len(label) for label, _, _ in rows)
    max_amount_len = max(len(amount) for _, amount, _ in rows)

    lines = []
    for label, amount, comment in rows:
        base = f"{indent}{label.ljust(max_label_len)}  {amount.rjust(max_amount_len)}"
        lines.append(f"{base}  {comment}" if comment else base)
    return lines


def _item_comment(assigned_to: Sequence[str], weights: dict[str, int], tags: Sequence[str]) -> str | None:
    parts: list[str] = []
    if assigned_to:
        people = [f"{name} x{weights[name]}" if weights.get(name, 1) > 1 else name for name in assigned_to]
        parts.append("-> " + ", ".join(people))
    else:
        parts.append("(unassigned)")
    if tags:
        parts.append("[" + ", ".join(tags) + "]")
    return " ".join(parts)


def format_receipt(receipt: Receipt) -> str:
    """Render the item list followed by subtotal, tax, tip and total."""
    currency = receipt.currency
    item_rows: list[tuple[str, str, str | None]] = []
    for item in receipt.items:
        qty = f" x{item.quantity}" if item.quantity > 1 else ""
        item_rows.append(
            (
                f"#{item.id} {item.name}{qty}",
                format_money(item.price, currency),
                _item_comment(item.assigned_to, item.assignment_weights, item.dietary_tags),
            )
        )
    total_rows: list[tuple[str, str, str | None]] = [
        ("Subtotal", format_money(receipt.subtotal, currency), None),
        ("Tax", format_money(receipt.tax, currency), None),
        ("Tip", format_money(receipt.tip, currency), None),
        ("Total", format_money(receipt.total, currency), None),
    ]

    lines = [f"Items ({len(receipt.items)}):"]
    if item_rows:
        lines.extend(_format_rows_aligned(item_rows))
    else:
        lines.append("  (no items)")
    lines.append("-" * 40)
    lines.extend(_format_rows_aligned(total_rows))
    return "\n".join(lines)


def format_allocation(allocation: Allocation, currency: str = "$") -> str:
    """Render who owes what."""
    if not allocation.people:
        lines = ["No assignments yet. Tell me who had what!"]
    else:
        lines = []
        for person in allocation.people:
            lines.append(f"{person.name}: {format_money(person.final_total, currency)}")
            lines.append(
                f"  items {format_money(person.items_total, currency)}"
                f"  tax {format_money(person.tax_share, currency)}"
                f"  tip {format_money(person.tip_share, currency)}"
            )
            lines.append(f"  for: {', '.join(person.items)}")
    if allocation.unassigned_total > 0:
        lines.append(f"Unassigned leftovers: {format_money(allocation.unassigned_total, currency)}")
        lines.append("  (tax & tip for these items are not yet included in individual shares)")
    return "\n".join(lines)


def format_sessions(sessions: Sequence[SessionMeta], active_id: str | None) -> str:
    lines = []
    for meta in sessions:
        marker = "*" if meta.id == active_id else " "
        date_str = meta.date.strftime("%Y-%m-%d %H:%M")
        lines.append(
            f"{marker} {meta.id}  {date_str}  {format_money(meta.total, meta.currency):>10}  {meta.name}"
        )
    return "\n".join(lines)


def format_transcript(messages: Sequence[ChatMessage]) -> str:
    speakers = {"user": "you", "model": "assistant", "system": "system"}
    return "\n".join(f"[{speakers[message.role]}] {message.text}" for message in messages)
