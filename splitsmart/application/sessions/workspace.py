"""Session workspace orchestration.

``SessionWorkspace`` holds the working copy of the active session and is the
mutation surface for presentation layers (CLI, HTTP backend). Every accepted
change is written through ``SessionStore.save()`` straight away.

External calls are awaited; their results are only applied when the
workspace is still on the session (and store epoch) the call started from.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal

from splitsmart.domain import receipt as ops
from splitsmart.domain.allocation import Allocation, compute_allocation
from splitsmart.domain.participants import add_friend, known_participants, remove_friend
from splitsmart.domain.receipt import Receipt, ReceiptItem
from splitsmart.domain.session import (
    ChatMessage,
    MessageRole,
    SessionData,
    SessionMeta,
    WorkflowEvent,
    WorkflowState,
    accepts_edits,
    next_state,
    welcome_message,
)
from splitsmart.runtime.ai_client import AIServiceClient, AIServiceError
from splitsmart.runtime.logging import get_logger
from splitsmart.runtime.session_store import SessionStore, Theme

logger = get_logger(__name__)

ANALYZED_TEXT = "I've analyzed the receipt. You can now tell me who had what! (e.g., 'John had the salad')"
PARSE_FAILED_TEXT = "Sorry, I couldn't analyze that receipt. Please try again."
APPEND_FAILED_TEXT = "Sorry, I couldn't analyze the additional receipt. Please try again."
CHAT_FAILED_TEXT = "I encountered an error processing that command."
DIETARY_FAILED_TEXT = "I couldn't work out dietary tags right now."
ROAST_FAILED_TEXT = "I couldn't come up with a roast right now."

EditStatus = Literal["saved", "rejected"]

ExternalStatus = Literal[
    "applied",
    "failed",
    "discarded",
    "rejected",
    "busy",
]


@dataclass(frozen=True)
class ExternalResult:
    """Outcome of an operation that called the AI service."""

    status: ExternalStatus
    # Assistant text added to the transcript, if any.
    message: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionWorkspace:
    """Working copy of the active session."""

    def __init__(
        self,
        store: SessionStore,
        ai_client: AIServiceClient | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._ai = ai_client
        self._clock = clock or _utcnow
        self._locks: dict[str, asyncio.Lock] = {}
        self._load(store.active_id, store.read(store.active_id))

    # --- State ---

    def _load(self, session_id: str, data: SessionData) -> None:
        self._session_id = session_id
        self._data = data
        self._epoch = self._store.epoch

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def data(self) -> SessionData:
        return self._data

    @property
    def receipt(self) -> Receipt | None:
        return self._data.receipt

    @property
    def state(self) -> WorkflowState:
        return self._data.state

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._data.messages

    def _now_millis(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def _message(self, role: MessageRole, text: str) -> ChatMessage:
        return ChatMessage(id=uuid.uuid4().hex, role=role, text=text, timestamp=self._now_millis())

    def _commit(self, data: SessionData) -> bool:
        self._data = data
        return self._store.save(self._session_id, data, epoch=self._epoch)

    def _is_current(self, session_id: str, epoch: int) -> bool:
        return self._session_id == session_id and self._store.epoch == epoch == self._epoch

    def _require_ai(self) -> AIServiceClient:
        if self._ai is None:
            raise RuntimeError("No AI service client configured for this workspace")
        return self._ai

    # --- Receipt edits ---

    def _edit(self, change: Callable[[Receipt], Receipt]) -> EditStatus:
        receipt = self._data.receipt
        if receipt is None or not accepts_edits(self._data.state):
            logger.debug("Rejected edit in state %s", self._data.state.value)
            return "rejected"
        self._commit(replace(self._data, receipt=change(receipt)))
        return "saved"

    def _edit_item(self, item_id: int, change: Callable[[ReceiptItem], ReceiptItem]) -> EditStatus:
        def apply(receipt: Receipt) -> Receipt:
            item = ops.find_item(receipt, item_id)
            if item is None:
                logger.debug("Item %s no longer exists; ignoring edit", item_id)
                return receipt
            return ops.update_item(receipt, change(item))

        return self._edit(apply)

    def add_item(self) -> EditStatus:
        return self._edit(ops.add_item)

    def update_item(self, item: ReceiptItem) -> EditStatus:
        # Re-derive weights so they always match the assignee list.
        clean = ops.set_assignees(item, item.assigned_to)
        return self._edit(lambda receipt: ops.update_item(receipt, clean))

    def edit_item(
        self,
        item_id: int,
        *,
        name: str | None = None,
        price: Decimal | None = None,
        quantity: int | None = None,
    ) -> EditStatus:
        def change(item: ReceiptItem) -> ReceiptItem:
            if name is not None and name.strip():
                item = replace(item, name=name.strip())
            if price is not None:
                item = replace(item, price=price)
            if quantity is not None and quantity >= 1:
                item = replace(item, quantity=quantity)
            return item

        return self._edit_item(item_id, change)

    def delete_item(self, item_id: int) -> EditStatus:
        return self._edit(lambda receipt: ops.delete_item(receipt, item_id))

    def set_tax(self, amount: Decimal) -> EditStatus:
        return self._edit(lambda receipt: ops.set_tax(receipt, amount))

    def set_tip(self, amount: Decimal) -> EditStatus:
        return self._edit(lambda receipt: ops.set_tip(receipt, amount))

    def set_tax_percent(self, percent: Decimal) -> EditStatus:
        return self._edit(lambda receipt: ops.set_tax_percent(receipt, percent))

    def set_tip_percent(self, percent: Decimal) -> EditStatus:
        return self._edit(lambda receipt: ops.set_tip_percent(receipt, percent))

    def toggle_assignment(self, item_id: int, person: str) -> EditStatus:
        name = person.strip()
        if not name:
            return self._edit(lambda receipt: receipt)
        return self._edit_item(item_id, lambda item: ops.toggle_assignment(item, name))

    def update_weight(self, item_id: int, person: str, delta: int) -> EditStatus:
        return self._edit_item(item_id, lambda item: ops.update_weight(item, person, delta))

    def add_assignee(self, item_id: int, name: str) -> EditStatus:
        """Assign a (possibly new) person to an item and remember them as a friend."""
        if not accepts_edits(self._data.state) or self._data.receipt is None:
            return "rejected"
        clean_name = self.add_friend(name)
        if clean_name is None:
            return "saved"

        def change(item: ReceiptItem) -> ReceiptItem:
            if clean_name in item.assigned_to:
                return item
            return ops.toggle_assignment(item, clean_name)

        return self._edit_item(item_id, change)

    def reset(self) -> Literal["saved", "busy"]:
        """Clear the receipt and transcript, back to waiting for an upload."""
        if self._data.state is WorkflowState.ANALYZING:
            return "busy"
        state = next_state(self._data.state, WorkflowEvent.RESET)
        self._commit(SessionData(receipt=None, messages=(welcome_message(self._now_millis()),), state=state))
        logger.info("Reset session %s", self._session_id)
        return "saved"

    # --- Derived views ---

    def summary(self) -> Allocation | None:
        if self._data.receipt is None:
            return None
        return compute_allocation(self._data.receipt)

    def participants(self) -> list[str]:
        return known_participants(self._data.receipt, self._store.get_friends())

    def friends(self) -> list[str]:
        return self._store.get_friends()

    def add_friend(self, name: str) -> str | None:
        friends, clean_name = add_friend(self._store.get_friends(), name)
        if clean_name is not None:
            self._store.set_friends(friends)
        return clean_name

    def remove_friend(self, name: str) -> None:
        self._store.set_friends(remove_friend(self._store.get_friends(), name))

    @property
    def theme(self) -> Theme | None:
        return self._store.get_theme()

    def set_theme(self, theme: Theme) -> None:
        self._store.set_theme(theme)

    # --- Sessions ---

    def sessions(self) -> list[SessionMeta]:
        return self._store.list_sessions()

    def new_session(self, name: str | None = None) -> str:
        session_id = self._store.create_session(name)
        self.switch_session(session_id)
        return session_id

    def switch_session(self, session_id: str) -> bool:
        data = self._store.switch_to(session_id)
        if data is None:
            return False
        self._load(session_id, data)
        return True

    def delete_session(self, session_id: str) -> str:
        was_active = session_id == self._session_id
        active_id = self._store.delete_session(session_id)
        if was_active:
            self._load(active_id, self._store.read(active_id))
        return active_id

    def rename_session(self, session_id: str, name: str) -> None:
        self._store.rename(session_id, name)

    # --- External operations ---

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def _fail(self, session_id: str, epoch: int, text: str, data: SessionData | None = None) -> ExternalResult:
        if not self._is_current(session_id, epoch):
            return ExternalResult(status="discarded")
        self._commit((data or self._data).with_message(self._message("model", text)))
        return ExternalResult(status="failed", message=text)

    async def upload_receipt(self, image_bytes: bytes, filename: str = "receipt.jpg") -> ExternalResult:
        """Parse a receipt photo and start splitting it.

        Only valid while waiting for an upload. On failure the session goes
        back to the upload state with an apology in the transcript.
        """
        ai = self._require_ai()
        if self._data.state is not WorkflowState.UPLOAD:
            return ExternalResult(status="busy" if self._data.state is WorkflowState.ANALYZING else "rejected")

        session_id = self._session_id
        lock = self._lock_for(session_id)
        if lock.locked():
            return ExternalResult(status="busy")

        async with lock:
            self._commit(replace(self._data, state=next_state(self._data.state, WorkflowEvent.PARSE_STARTED)))
            epoch = self._epoch
            try:
                parsed = await ai.parse_receipt(image_bytes, filename)
            except AIServiceError as e:
                logger.warning("Receipt parse failed for session %s: %s", session_id, e)
                if not self._is_current(session_id, epoch):
                    return ExternalResult(status="discarded")
                failed = replace(self._data, state=next_state(self._data.state, WorkflowEvent.PARSE_FAILED))
                return self._fail(session_id, epoch, PARSE_FAILED_TEXT, failed)
            except BaseException:
                # Never leave the session stuck in analyzing.
                if self._is_current(session_id, epoch):
                    self._commit(replace(self._data, state=next_state(self._data.state, WorkflowEvent.PARSE_FAILED)))
                raise

            if not self._is_current(session_id, epoch):
                logger.info("Discarding receipt parsed for inactive session %s", session_id)
                return ExternalResult(status="discarded")

            messages = (welcome_message(self._now_millis()), self._message("model", ANALYZED_TEXT))
            state = next_state(self._data.state, WorkflowEvent.PARSE_SUCCEEDED)
            self._commit(SessionData(receipt=parsed.receipt, messages=messages, state=state))
            return ExternalResult(status="applied", message=ANALYZED_TEXT)

    async def append_receipt(self, image_bytes: bytes, filename: str = "receipt.jpg") -> ExternalResult:
        """Parse another photo and merge its items into the current receipt."""
        ai = self._require_ai()
        if self._data.receipt is None or not accepts_edits(self._data.state):
            return ExternalResult(status="rejected")

        session_id = self._session_id
        lock = self._lock_for(session_id)
        if lock.locked():
            return ExternalResult(status="busy")

        async with lock:
            epoch = self._epoch
            try:
                parsed = await ai.parse_receipt(image_bytes, filename)
            except AIServiceError as e:
                logger.warning("Additional receipt parse failed for session %s: %s", session_id, e)
                return self._fail(session_id, epoch, APPEND_FAILED_TEXT)

            if not self._is_current(session_id, epoch) or self._data.receipt is None:
                return ExternalResult(status="discarded")

            merged = ops.append_receipt(self._data.receipt, parsed.receipt)
            text = f"I've added {len(parsed.receipt.items)} items from the new receipt to your list."
            self._commit(replace(self._data, receipt=merged).with_message(self._message("model", text)))
            return ExternalResult(status="applied", message=text)

    async def send_message(self, text: str) -> ExternalResult:
        """Let the command interpreter turn a chat message into assignment changes."""
        ai = self._require_ai()
        text = text.strip()
        if not text or self._data.receipt is None or not accepts_edits(self._data.state):
            return ExternalResult(status="rejected")

        session_id = self._session_id
        epoch = self._epoch
        self._commit(self._data.with_message(self._message("user", text)))
        try:
            result = await ai.interpret_command(self._data.receipt.items, text)
        except AIServiceError as e:
            logger.warning("Chat command failed for session %s: %s", session_id, e)
            return self._fail(session_id, epoch, CHAT_FAILED_TEXT)

        if not self._is_current(session_id, epoch) or self._data.receipt is None:
            return ExternalResult(status="discarded")

        receipt = ops.apply_assignment_updates(self._data.receipt, result.updates)
        self._commit(replace(self._data, receipt=receipt).with_message(self._message("model", result.reply)))
        return ExternalResult(status="applied", message=result.reply)

    async def tag_dietary(self) -> ExternalResult:
        """Label items with dietary tags. Prices and assignments are untouched."""
        ai = self._require_ai()
        if self._data.receipt is None or not accepts_edits(self._data.state):
            return ExternalResult(status="rejected")

        session_id = self._session_id
        epoch = self._epoch
        try:
            tags = await ai.tag_dietary(self._data.receipt.items)
        except AIServiceError as e:
            logger.warning("Dietary tagging failed for session %s: %s", session_id, e)
            return self._fail(session_id, epoch, DIETARY_FAILED_TEXT)

        if not self._is_current(session_id, epoch) or self._data.receipt is None:
            return ExternalResult(status="discarded")

        self._commit(replace(self._data, receipt=ops.apply_dietary_tags(self._data.receipt, tags)))
        return ExternalResult(status="applied")

    async def roast(self) -> ExternalResult:
        """Add a lighthearted roast of the group's spending to the transcript."""
        ai = self._require_ai()
        receipt = self._data.receipt
        if receipt is None or not accepts_edits(self._data.state):
            return ExternalResult(status="rejected")

        session_id = self._session_id
        epoch = self._epoch
        try:
            text = await ai.roast(receipt, compute_allocation(receipt))
        except AIServiceError as e:
            logger.warning("Roast failed for session %s: %s", session_id, e)
            return self._fail(session_id, epoch, ROAST_FAILED_TEXT)

        if not self._is_current(session_id, epoch):
            return ExternalResult(status="discarded")

        self._commit(self._data.with_message(self._message("model", text)))
        return ExternalResult(status="applied", message=text)
