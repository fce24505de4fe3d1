"""Tests for the session workspace, with the AI service replaced by a fake client."""

from __future__ import annotations

import asyncio
import io
from decimal import Decimal, InvalidOperation

import httpx
import pytest
from factories import FakeAIClient, StepClock
from PIL import Image

from splitsmart.application.sessions.workspace import (
    ANALYZED_TEXT,
    CHAT_FAILED_TEXT,
    PARSE_FAILED_TEXT,
    SessionWorkspace,
)
from splitsmart.domain.receipt import AssignmentUpdate, DietaryTags
from splitsmart.domain.session import WorkflowState
from splitsmart.receipt.extraction import CommandResult
from splitsmart.receipt.serialization import decode_session_data
from splitsmart.runtime.ai_client import AIServiceClient
from splitsmart.runtime.kv_store import MemoryKeyValueStore
from splitsmart.runtime.session_store import SessionStore, session_key


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (40, 80), color=(250, 250, 245)).save(buffer, format="PNG")
    return buffer.getvalue()


def _workspace(store: SessionStore, ai: FakeAIClient | None = None) -> SessionWorkspace:
    return SessionWorkspace(store, ai or FakeAIClient(), clock=StepClock())


def _splitting(store: SessionStore, ai: FakeAIClient | None = None) -> SessionWorkspace:
    workspace = _workspace(store, ai)
    assert asyncio.run(workspace.upload_receipt(b"jpeg", "dinner.jpg")).status == "applied"
    return workspace


def test_upload_success_starts_splitting(store: SessionStore) -> None:
    workspace = _workspace(store)

    result = asyncio.run(workspace.upload_receipt(b"jpeg", "dinner.jpg"))

    assert result.status == "applied"
    assert result.message == ANALYZED_TEXT
    assert workspace.state is WorkflowState.SPLITTING
    assert [m.id for m in workspace.messages][0] == "welcome"
    assert workspace.messages[-1].text == ANALYZED_TEXT
    assert store.read(workspace.session_id) == workspace.data
    assert store.get_meta(workspace.session_id).total == Decimal("38.50")


def test_analyzing_state_is_persisted_while_parsing(store: SessionStore, backend: MemoryKeyValueStore) -> None:
    ai = FakeAIClient()
    workspace = _workspace(store, ai)
    seen: list[WorkflowState] = []
    ai.before_reply = lambda: seen.append(decode_session_data(backend.get(session_key(workspace.session_id))).state)

    asyncio.run(workspace.upload_receipt(b"jpeg"))

    assert seen == [WorkflowState.ANALYZING]


def test_upload_failure_returns_to_upload_with_apology(store: SessionStore) -> None:
    workspace = _workspace(store, FakeAIClient(fail=True))

    result = asyncio.run(workspace.upload_receipt(b"jpeg"))

    assert result.status == "failed"
    assert workspace.state is WorkflowState.UPLOAD
    assert workspace.receipt is None
    assert workspace.messages[-1].text == PARSE_FAILED_TEXT
    assert store.read(workspace.session_id).messages[-1].text == PARSE_FAILED_TEXT


def test_unexpected_parse_error_leaves_session_resumable(store: SessionStore) -> None:
    ai = FakeAIClient()
    workspace = _workspace(store, ai)

    def explode() -> None:
        raise InvalidOperation("bad amount")

    ai.before_reply = explode
    with pytest.raises(InvalidOperation):
        asyncio.run(workspace.upload_receipt(b"jpeg"))

    assert workspace.state is WorkflowState.UPLOAD
    assert store.read(workspace.session_id).state is WorkflowState.UPLOAD
    assert workspace.reset() == "saved"

    ai.before_reply = None
    assert asyncio.run(workspace.upload_receipt(b"jpeg")).status == "applied"


def test_parser_answer_with_non_finite_numbers_still_uploads(store: SessionStore) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=b'{"items": [{"name": "Soup", "price": "NaN"}, {"name": "Tea", "price": "3", "quantity": 1e999}]}',
            headers={"content-type": "application/json"},
        )

    client = AIServiceClient("http://ai.test", transport=httpx.MockTransport(handler))
    workspace = SessionWorkspace(store, client, clock=StepClock())

    result = asyncio.run(workspace.upload_receipt(_png()))

    assert result.status == "applied"
    assert workspace.state is WorkflowState.SPLITTING
    assert [(item.name, item.quantity) for item in workspace.receipt.items] == [("Tea", 1)]


def test_late_parse_result_for_other_session_is_discarded(store: SessionStore) -> None:
    ai = FakeAIClient()
    workspace = _workspace(store, ai)
    original = workspace.session_id
    ai.before_reply = lambda: workspace.new_session("Elsewhere")

    result = asyncio.run(workspace.upload_receipt(b"jpeg"))

    assert result.status == "discarded"
    assert workspace.session_id != original
    assert workspace.receipt is None
    assert workspace.state is WorkflowState.UPLOAD
    # The interrupted session comes back resumable, without the parsed receipt.
    assert store.read(original).state is WorkflowState.UPLOAD
    assert store.read(original).receipt is None


def test_upload_is_rejected_while_splitting(store: SessionStore) -> None:
    workspace = _splitting(store)

    assert asyncio.run(workspace.upload_receipt(b"jpeg")).status == "rejected"


def test_edits_are_rejected_before_a_receipt_exists(store: SessionStore, backend: MemoryKeyValueStore) -> None:
    workspace = _workspace(store)
    before = backend.get(session_key(workspace.session_id))

    assert workspace.add_item() == "rejected"
    assert workspace.set_tax(Decimal("2")) == "rejected"
    assert workspace.toggle_assignment(1, "Ann") == "rejected"
    assert backend.get(session_key(workspace.session_id)) == before


def test_edits_are_saved_immediately(store: SessionStore, backend: MemoryKeyValueStore) -> None:
    workspace = _splitting(store)

    assert workspace.toggle_assignment(1, "Ann") == "saved"
    assert workspace.toggle_assignment(1, "Ben") == "saved"
    assert workspace.update_weight(1, "Ann", 1) == "saved"
    assert workspace.set_tip_percent(Decimal("20")) == "saved"
    assert workspace.edit_item(2, name=" Pizza ", price=Decimal("20.00"), quantity=2) == "saved"

    with SessionStore(backend) as reopened:
        data = reopened.read(reopened.active_id)
    salad, pizza = data.receipt.items[0], data.receipt.items[1]
    assert salad.assigned_to == ("Ann", "Ben")
    assert salad.assignment_weights == {"Ann": 2, "Ben": 1}
    assert (pizza.name, pizza.price, pizza.quantity) == ("Pizza", Decimal("20.00"), 2)
    assert data.receipt.tip == Decimal("7")


def test_add_and_delete_items(store: SessionStore) -> None:
    workspace = _splitting(store)

    workspace.add_item()
    assert workspace.receipt.items[0].id == 4
    workspace.delete_item(4)
    workspace.delete_item(4)
    workspace.add_item()
    assert [item.id for item in workspace.receipt.items] == [5, 1, 2, 3]


def test_add_assignee_remembers_friend(store: SessionStore) -> None:
    workspace = _splitting(store)

    assert workspace.add_assignee(3, "  Dana ") == "saved"
    assert workspace.add_assignee(3, "Dana") == "saved"

    assert workspace.receipt.items[2].assigned_to == ("Dana",)
    assert workspace.friends() == ["Dana"]
    assert workspace.participants() == ["Dana"]


def test_summary_reflects_assignments(store: SessionStore) -> None:
    workspace = _splitting(store)
    assert workspace.summary().people == ()

    for item_id in (1, 2, 3):
        workspace.toggle_assignment(item_id, "Ann")

    ann = workspace.summary().for_person("Ann")
    assert ann.final_total == workspace.receipt.total


def test_chat_applies_interpreter_updates(store: SessionStore) -> None:
    ai = FakeAIClient(command=CommandResult(updates=(AssignmentUpdate(1, ("John",)),), reply="John has the salad."))
    workspace = _splitting(store, ai)

    result = asyncio.run(workspace.send_message("John had the salad"))

    assert result.status == "applied"
    assert workspace.receipt.items[0].assigned_to == ("John",)
    assert [(m.role, m.text) for m in workspace.messages[-2:]] == [
        ("user", "John had the salad"),
        ("model", "John has the salad."),
    ]


def test_chat_failure_keeps_receipt_and_explains(store: SessionStore) -> None:
    ai = FakeAIClient()
    workspace = _splitting(store, ai)
    receipt = workspace.receipt
    ai.fail = True

    result = asyncio.run(workspace.send_message("Bob had everything"))

    assert result.status == "failed"
    assert workspace.receipt == receipt
    assert workspace.state is WorkflowState.SPLITTING
    assert workspace.messages[-1].text == CHAT_FAILED_TEXT


def test_blank_chat_message_is_rejected(store: SessionStore) -> None:
    workspace = _splitting(store)

    assert asyncio.run(workspace.send_message("   ")).status == "rejected"


def test_append_receipt_merges_items(store: SessionStore) -> None:
    workspace = _splitting(store)

    result = asyncio.run(workspace.append_receipt(b"jpeg"))

    assert result.status == "applied"
    assert result.message == "I've added 3 items from the new receipt to your list."
    assert [item.id for item in workspace.receipt.items] == [1, 2, 3, 4, 5, 6]
    assert workspace.receipt.tax == Decimal("7.00")


def test_append_requires_an_existing_receipt(store: SessionStore) -> None:
    workspace = _workspace(store)

    assert asyncio.run(workspace.append_receipt(b"jpeg")).status == "rejected"


def test_dietary_tags_and_roast(store: SessionStore) -> None:
    ai = FakeAIClient(tags=[DietaryTags(1, ("Vegan",))], roast_text="Salad people, huh?")
    workspace = _splitting(store, ai)

    assert asyncio.run(workspace.tag_dietary()).status == "applied"
    assert workspace.receipt.items[0].dietary_tags == ("Vegan",)

    result = asyncio.run(workspace.roast())
    assert result.message == "Salad people, huh?"
    assert workspace.messages[-1].text == "Salad people, huh?"


def test_reset_clears_receipt_and_transcript(store: SessionStore) -> None:
    workspace = _splitting(store)
    workspace.toggle_assignment(1, "Ann")

    assert workspace.reset() == "saved"

    assert workspace.receipt is None
    assert workspace.state is WorkflowState.UPLOAD
    assert [m.id for m in workspace.messages] == ["welcome"]
    assert store.read(workspace.session_id) == workspace.data


def test_switching_sessions_swaps_working_copy(store: SessionStore) -> None:
    workspace = _splitting(store)
    first = workspace.session_id

    second = workspace.new_session("Brunch")
    assert workspace.receipt is None
    assert workspace.add_item() == "rejected"

    assert workspace.switch_session(first)
    assert workspace.receipt is not None
    assert not workspace.switch_session("missing")
    assert workspace.session_id == first

    workspace.rename_session(second, "Late brunch")
    assert [meta.name for meta in workspace.sessions()] == ["Late brunch", "New Receipt"]


def test_deleting_active_session_loads_the_next_one(store: SessionStore) -> None:
    workspace = _splitting(store)
    first = workspace.session_id
    second = workspace.new_session()

    assert workspace.delete_session(second) == first
    assert workspace.session_id == first
    assert workspace.state is WorkflowState.SPLITTING


def test_theme_preference(store: SessionStore) -> None:
    workspace = _workspace(store)

    workspace.set_theme("light")

    assert workspace.theme == "light"
