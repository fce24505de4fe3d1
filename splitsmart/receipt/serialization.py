"""JSON encoding of receipts and sessions for the key/value store.

Decimals are written as strings to keep full precision. Readers also accept
plain JSON numbers and the camelCase field names used by the legacy
single-session layout (``assignedTo``, ``receiptData``, ``appState`` ...).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from splitsmart.domain.allocation import Allocation
from splitsmart.domain.receipt import DEFAULT_CURRENCY, Receipt, ReceiptItem, merge_weights
from splitsmart.domain.session import ChatMessage, SessionData, SessionMeta, WorkflowState

_MESSAGE_ROLES = ("user", "model", "system")


class PayloadError(ValueError):
    """Raised when a stored payload cannot be decoded."""


def _pick(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def decimal_from_json(value: Any) -> Decimal:
    """Parse a JSON number or numeric string into a Decimal."""
    if isinstance(value, bool) or value is None:
        raise PayloadError(f"Not a number: {value!r}")
    try:
        # str() first so floats keep their short repr (0.1 -> "0.1")
        number = Decimal(str(value))
    except InvalidOperation as exc:
        raise PayloadError(f"Not a number: {value!r}") from exc
    if not number.is_finite():
        raise PayloadError(f"Not a finite number: {value!r}")
    return number


def decimal_to_json(value: Decimal) -> str:
    return str(value)


def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise PayloadError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _require_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise PayloadError(f"{what} must be a list, got {type(value).__name__}")
    return value


def item_to_dict(item: ReceiptItem) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": item.id,
        "name": item.name,
        "price": decimal_to_json(item.price),
        "quantity": item.quantity,
        "assigned_to": list(item.assigned_to),
        "assignment_weights": dict(item.assignment_weights),
        "dietary_tags": list(item.dietary_tags),
    }
    if item.box_2d is not None:
        data["box_2d"] = list(item.box_2d)
    return data


def item_from_dict(raw: Any) -> ReceiptItem:
    data = _require_mapping(raw, "item")
    try:
        item_id = int(data["id"])
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise PayloadError(f"Item without a valid id: {data!r}") from exc

    assigned: list[str] = []
    for name in _require_list(_pick(data, "assigned_to", "assignedTo", default=[]), "assigned_to"):
        if isinstance(name, str) and name not in assigned:
            assigned.append(name)

    weights = _require_mapping(_pick(data, "assignment_weights", "assignmentWeights", default={}), "weights")
    box = _pick(data, "box_2d", "box2d")

    try:
        item = ReceiptItem(
            id=item_id,
            name=str(_pick(data, "name", default="")),
            price=decimal_from_json(_pick(data, "price", default=0)),
            quantity=int(_pick(data, "quantity", default=1)),
            assigned_to=tuple(assigned),
            dietary_tags=tuple(str(tag) for tag in _pick(data, "dietary_tags", "dietaryTags", default=[])),
            box_2d=tuple(int(v) for v in box) if isinstance(box, list) else None,
        )
        # Drops weights for names that are not assigned.
        return merge_weights(item, {str(k): int(v) for k, v in weights.items()})
    except (TypeError, ValueError, ArithmeticError) as exc:
        if isinstance(exc, PayloadError):
            raise
        raise PayloadError(f"Malformed item {item_id}: {exc}") from exc


def receipt_to_dict(receipt: Receipt) -> dict[str, Any]:
    return {
        "items": [item_to_dict(item) for item in receipt.items],
        "subtotal": decimal_to_json(receipt.subtotal),
        "tax": decimal_to_json(receipt.tax),
        "tip": decimal_to_json(receipt.tip),
        "total": decimal_to_json(receipt.total),
        "currency": receipt.currency,
        "last_item_id": receipt.last_item_id,
    }


def receipt_from_dict(raw: Any) -> Receipt:
    """Rebuild a Receipt. Stored subtotal/total are ignored and recomputed."""
    data = _require_mapping(raw, "receipt")
    try:
        items = tuple(item_from_dict(item) for item in _require_list(data.get("items", []), "items"))
        return Receipt(
            items=items,
            tax=decimal_from_json(_pick(data, "tax", default=0)),
            tip=decimal_from_json(_pick(data, "tip", default=0)),
            currency=str(_pick(data, "currency", default=DEFAULT_CURRENCY)),
            last_item_id=int(_pick(data, "last_item_id", "lastItemId", default=0)),
        )
    except (TypeError, ValueError, ArithmeticError) as exc:
        if isinstance(exc, PayloadError):
            raise
        raise PayloadError(f"Malformed receipt: {exc}") from exc


def message_to_dict(message: ChatMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "text": message.text,
        "timestamp": message.timestamp,
    }


def message_from_dict(raw: Any) -> ChatMessage:
    data = _require_mapping(raw, "message")
    role = data.get("role")
    if role not in _MESSAGE_ROLES:
        raise PayloadError(f"Unknown message role: {role!r}")
    try:
        return ChatMessage(
            id=str(data["id"]),
            role=role,
            text=str(data.get("text", "")),
            timestamp=int(data.get("timestamp", 0)),
        )
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        raise PayloadError(f"Malformed message: {data!r}") from exc


def state_from_json(value: Any) -> WorkflowState:
    try:
        return WorkflowState(value)
    except ValueError as exc:
        raise PayloadError(f"Unknown workflow state: {value!r}") from exc


def session_data_to_dict(data: SessionData) -> dict[str, Any]:
    return {
        "receipt": receipt_to_dict(data.receipt) if data.receipt is not None else None,
        "messages": [message_to_dict(message) for message in data.messages],
        "state": data.state.value,
    }


def session_data_from_dict(raw: Any) -> SessionData:
    data = _require_mapping(raw, "session")
    receipt_raw = _pick(data, "receipt", "receiptData")
    messages = _require_list(data.get("messages", []), "messages")
    return SessionData(
        receipt=receipt_from_dict(receipt_raw) if receipt_raw is not None else None,
        messages=tuple(message_from_dict(message) for message in messages),
        state=state_from_json(_pick(data, "state", "appState", default=WorkflowState.UPLOAD.value)),
    )


def _datetime_from_json(value: Any) -> datetime:
    # Legacy index entries carry epoch milliseconds.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise PayloadError(f"Invalid date: {value!r}") from exc
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise PayloadError(f"Invalid date: {value!r}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise PayloadError(f"Invalid date: {value!r}")


def meta_to_dict(meta: SessionMeta) -> dict[str, Any]:
    return {
        "id": meta.id,
        "name": meta.name,
        "date": meta.date.isoformat(),
        "total": decimal_to_json(meta.total),
        "currency": meta.currency,
    }


def meta_from_dict(raw: Any) -> SessionMeta:
    data = _require_mapping(raw, "session meta")
    if "id" not in data:
        raise PayloadError(f"Session meta without id: {data!r}")
    return SessionMeta(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        date=_datetime_from_json(data.get("date")),
        total=decimal_from_json(_pick(data, "total", default=0)),
        currency=str(_pick(data, "currency", default=DEFAULT_CURRENCY)),
    )


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PayloadError(f"Invalid JSON: {exc}") from exc


def encode_session_data(data: SessionData) -> str:
    return json.dumps(session_data_to_dict(data), ensure_ascii=False)


def decode_session_data(text: str) -> SessionData:
    return session_data_from_dict(_loads(text))


def encode_index(index: list[SessionMeta]) -> str:
    return json.dumps([meta_to_dict(meta) for meta in index], ensure_ascii=False)


def decode_index(text: str) -> list[SessionMeta]:
    return [meta_from_dict(entry) for entry in _require_list(_loads(text), "index")]


def encode_receipt(receipt: Receipt) -> str:
    return json.dumps(receipt_to_dict(receipt), ensure_ascii=False)


def decode_receipt(text: str) -> Receipt:
    return receipt_from_dict(_loads(text))


def encode_messages(messages: tuple[ChatMessage, ...] | list[ChatMessage]) -> str:
    return json.dumps([message_to_dict(message) for message in messages], ensure_ascii=False)


def decode_messages(text: str) -> tuple[ChatMessage, ...]:
    return tuple(message_from_dict(message) for message in _require_list(_loads(text), "messages"))


def amount_from_input(value: Any) -> Decimal:
    """Parse a user-entered money amount or percentage.

    Raises:
        PayloadError: if the value is not a finite, non-negative number.
    """
    if isinstance(value, str):
        value = value.strip()
    amount = decimal_from_json(value)
    if amount < 0:
        raise PayloadError(f"Amount must be a non-negative number: {value!r}")
    return amount


def allocation_to_dict(allocation: Allocation) -> dict[str, Any]:
    return {
        "people": [
            {
                "name": person.name,
                "items_total": decimal_to_json(person.items_total),
                "tax_share": decimal_to_json(person.tax_share),
                "tip_share": decimal_to_json(person.tip_share),
                "final_total": decimal_to_json(person.final_total),
                "items": list(person.items),
            }
            for person in allocation.people
        ],
        "unassigned_total": decimal_to_json(allocation.unassigned_total),
    }
