"""Tests for normalizing AI service payloads."""

from __future__ import annotations

import json
from decimal import Decimal

import pytest

from splitsmart.receipt.extraction import (
    DEFAULT_REPLY,
    ExtractionError,
    command_result_from_payload,
    dietary_tags_from_payload,
    receipt_from_parser_payload,
)


def test_parser_ids_are_replaced_with_one_to_n() -> None:
    parsed = receipt_from_parser_payload(
        {
            "items": [
                {"id": 17, "name": "Ramen", "price": 14.5, "quantity": 1, "box_2d": [10, 20, 30, 40]},
                {"id": 3, "name": "Gyoza", "price": "6.00", "quantity": 2},
            ],
            "tax": 1.64,
            "currency": "¥",
            "total": 22.14,
        }
    )
    receipt = parsed.receipt

    assert [item.id for item in receipt.items] == [1, 2]
    assert receipt.items[0].box_2d == (10, 20, 30, 40)
    assert receipt.items[1].quantity == 2
    assert receipt.tip == 0
    assert receipt.currency == "¥"
    assert receipt.total == Decimal("22.14")
    assert parsed.warnings == []


def test_unusable_items_are_skipped_with_warnings() -> None:
    parsed = receipt_from_parser_payload(
        {
            "items": [
                {"name": "Coffee", "price": 3},
                {"name": "Refund", "price": -2},
                {"name": "", "price": 1},
                {"name": "Cake", "price": "n/a"},
                "garbage",
            ]
        }
    )

    assert [item.name for item in parsed.receipt.items] == ["Coffee"]
    assert len(parsed.warnings) == 4


def test_total_mismatch_is_only_a_warning() -> None:
    parsed = receipt_from_parser_payload({"items": [{"name": "Soup", "price": 8}], "total": 10})

    assert parsed.receipt.total == Decimal("8")
    assert parsed.reported_total == Decimal("10")
    assert any("differs" in warning for warning in parsed.warnings)


@pytest.mark.parametrize("price", ["NaN", "Infinity", "-Infinity", "sNaN", float("nan"), float("inf")])
def test_non_finite_prices_are_skipped(price: object) -> None:
    items = [{"name": "Soup", "price": price}, {"name": "Tea", "price": "2.50"}]
    parsed = receipt_from_parser_payload({"items": items})

    assert [item.name for item in parsed.receipt.items] == ["Tea"]
    assert parsed.receipt.total == Decimal("2.50")
    assert len(parsed.warnings) == 1


def test_overflowing_numbers_fall_back_to_defaults() -> None:
    payload = json.loads(
        '{"items": [{"name": "Soup", "price": "4", "quantity": 1e999, "box_2d": [1, 2, 3, 1e999]}],'
        ' "tax": "NaN", "total": 1e999}'
    )

    parsed = receipt_from_parser_payload(payload)

    soup = parsed.receipt.items[0]
    assert (soup.quantity, soup.box_2d) == (1, None)
    assert parsed.receipt.tax == 0
    assert parsed.reported_total is None


def test_amounts_too_large_to_add_raise() -> None:
    payload = {"items": [{"name": "A", "price": "9e999999"}, {"name": "B", "price": "9e999999"}]}

    with pytest.raises(ExtractionError):
        receipt_from_parser_payload(payload)


@pytest.mark.parametrize("payload", [None, [], {"items": "nope"}, {"total": 5}])
def test_receipt_payload_without_items_raises(payload: object) -> None:
    with pytest.raises(ExtractionError):
        receipt_from_parser_payload(payload)


def test_command_result_accepts_both_key_styles() -> None:
    result = command_result_from_payload(
        {
            "updates": [
                {"itemId": 1, "assignedTo": ["John"]},
                {"item_id": 2, "assigned_to": ["John", "Mary"]},
                {"itemId": "3", "assignedTo": ["Bad"]},
            ],
            "reply": "Done!",
        }
    )

    assert [(u.item_id, u.assigned_to) for u in result.updates] == [(1, ("John",)), (2, ("John", "Mary"))]
    assert result.reply == "Done!"


def test_command_result_defaults_reply() -> None:
    assert command_result_from_payload({"updates": []}).reply == DEFAULT_REPLY


def test_dietary_tags_from_list_or_wrapped_object() -> None:
    expected = [(1, ("Vegan", "Gluten-Free"))]
    raw = [{"id": 1, "tags": ["Vegan", "Gluten-Free", " "]}, {"id": "x", "tags": []}]

    assert [(t.item_id, t.tags) for t in dietary_tags_from_payload(raw)] == expected
    assert [(t.item_id, t.tags) for t in dietary_tags_from_payload({"items": raw})] == expected
