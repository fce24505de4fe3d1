"""Normalize payloads returned by the AI service into domain objects.

The service is an external collaborator: its output is validated here and
anything unusable is dropped with a warning instead of failing the whole
result. A payload that is not even shaped like a receipt raises
``ExtractionError``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from splitsmart.domain.receipt import (
    DEFAULT_CURRENCY,
    AssignmentUpdate,
    DietaryTags,
    Receipt,
    ReceiptItem,
    build_receipt,
)
from splitsmart.receipt.serialization import PayloadError, decimal_from_json

DEFAULT_REPLY = "I didn't understand that."
TOTAL_TOLERANCE = Decimal("0.01")

_ZERO = Decimal("0")


class ExtractionError(ValueError):
    """Raised when an AI service payload cannot be used at all."""


@dataclass(frozen=True)
class ParsedReceipt:
    """A receipt built from parser output, plus anything worth reporting."""

    receipt: Receipt
    reported_total: Decimal | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CommandResult:
    """Assignment changes requested by the command interpreter."""

    updates: tuple[AssignmentUpdate, ...]
    reply: str


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _optional_amount(data: Mapping[str, Any], key: str, warnings: list[str]) -> Decimal | None:
    value = data.get(key)
    if value is None:
        return None
    try:
        return decimal_from_json(value)
    except PayloadError:
        warnings.append(f"Ignoring non-numeric {key}: {value!r}")
        return None


def _parse_item(raw: Any, index: int, warnings: list[str]) -> ReceiptItem | None:
    if not isinstance(raw, Mapping):
        warnings.append(f"Item {index}: not an object, skipped")
        return None

    name = str(raw.get("name") or "").strip()
    if not name:
        warnings.append(f"Item {index}: missing name, skipped")
        return None

    try:
        price = decimal_from_json(raw.get("price"))
    except PayloadError:
        warnings.append(f"Item {index} ({name}): missing or invalid price, skipped")
        return None
    if price < _ZERO:
        warnings.append(f"Item {index} ({name}): negative price {price}, skipped")
        return None

    quantity = raw.get("quantity")
    if not _is_number(quantity) or quantity < 1:
        quantity = 1

    box = raw.get("box_2d")
    box_2d: tuple[int, ...] | None = None
    if isinstance(box, list) and len(box) == 4 and all(_is_number(v) for v in box):
        box_2d = tuple(int(v) for v in box)

    return ReceiptItem(id=index, name=name, price=price, quantity=int(quantity), box_2d=box_2d)


def receipt_from_parser_payload(payload: Any) -> ParsedReceipt:
    """
    Build a Receipt from the image parser's JSON output.

    Item ids are assigned 1..n; ids sent by the parser are ignored. Missing
    tax/tip default to zero and a missing currency to "$". Subtotal and total
    are always recomputed; the total printed on the receipt is kept only so a
    mismatch can be reported.

    Raises:
        ExtractionError: if the payload is not an object with an item list,
            or its amounts are too large to add up.
    """
    if not isinstance(payload, Mapping):
        raise ExtractionError("Receipt payload must be an object")
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise ExtractionError("Receipt payload has no item list")

    warnings: list[str] = []
    items = [item for index, raw in enumerate(raw_items, 1) if (item := _parse_item(raw, index, warnings))]

    tax = _optional_amount(payload, "tax", warnings) or _ZERO
    tip = _optional_amount(payload, "tip", warnings) or _ZERO
    currency = str(payload.get("currency") or DEFAULT_CURRENCY)
    reported_total = _optional_amount(payload, "total", warnings)

    try:
        receipt = build_receipt(items, tax=tax, tip=tip, currency=currency)
        if reported_total and abs(reported_total - receipt.total) > TOTAL_TOLERANCE:
            warnings.append(f"Printed total {reported_total} differs from computed total {receipt.total}")
    except ArithmeticError as e:
        raise ExtractionError(f"Receipt amounts are out of range: {e}") from e

    return ParsedReceipt(receipt=receipt, reported_total=reported_total, warnings=warnings)


def command_result_from_payload(payload: Any) -> CommandResult:
    """
    Read the command interpreter's ``{"updates": [...], "reply": str}`` answer.

    Malformed update entries are skipped; a missing reply gets a default.
    """
    if not isinstance(payload, Mapping):
        raise ExtractionError("Command payload must be an object")

    updates: list[AssignmentUpdate] = []
    raw_updates = payload.get("updates") or []
    if not isinstance(raw_updates, list):
        raise ExtractionError("Command payload 'updates' must be a list")

    for raw in raw_updates:
        if not isinstance(raw, Mapping):
            continue
        item_id = raw.get("itemId", raw.get("item_id"))
        names = raw.get("assignedTo", raw.get("assigned_to"))
        if isinstance(item_id, bool) or not isinstance(item_id, int) or not isinstance(names, list):
            continue
        updates.append(AssignmentUpdate(item_id=item_id, assigned_to=tuple(str(n) for n in names)))

    reply = payload.get("reply")
    if not isinstance(reply, str) or not reply.strip():
        reply = DEFAULT_REPLY
    return CommandResult(updates=tuple(updates), reply=reply)


def dietary_tags_from_payload(payload: Any) -> list[DietaryTags]:
    """Read the dietary tagger's ``[{"id": int, "tags": [str]}]`` answer."""
    if isinstance(payload, Mapping):
        payload = payload.get("items", [])
    if not isinstance(payload, list):
        raise ExtractionError("Dietary payload must be a list")

    results: list[DietaryTags] = []
    for raw in payload:
        if not isinstance(raw, Mapping):
            continue
        item_id = raw.get("id")
        tags = raw.get("tags")
        if isinstance(item_id, bool) or not isinstance(item_id, int) or not isinstance(tags, list):
            continue
        results.append(DietaryTags(item_id=item_id, tags=tuple(str(tag) for tag in tags if str(tag).strip())))
    return results
