"""Session models and the per-session workflow state machine."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal

from splitsmart.domain.receipt import DEFAULT_CURRENCY, Receipt

MessageRole = Literal["user", "model", "system"]

WELCOME_MESSAGE_ID = "welcome"
WELCOME_TEXT = "Upload a receipt to get started! I can help you split the bill."


class WorkflowState(str, Enum):
    UPLOAD = "upload"
    ANALYZING = "analyzing"
    SPLITTING = "splitting"


class WorkflowEvent(str, Enum):
    PARSE_STARTED = "parse_started"
    PARSE_SUCCEEDED = "parse_succeeded"
    PARSE_FAILED = "parse_failed"
    RESET = "reset"


class InvalidTransition(ValueError):
    """Raised when an event is not valid in the current workflow state."""

    def __init__(self, state: WorkflowState, event: WorkflowEvent) -> None:
        super().__init__(f"Cannot apply {event.value} in state {state.value}")
        self.state = state
        self.event = event


_TRANSITIONS: dict[tuple[WorkflowState, WorkflowEvent], WorkflowState] = {
    (WorkflowState.UPLOAD, WorkflowEvent.PARSE_STARTED): WorkflowState.ANALYZING,
    (WorkflowState.ANALYZING, WorkflowEvent.PARSE_SUCCEEDED): WorkflowState.SPLITTING,
    (WorkflowState.ANALYZING, WorkflowEvent.PARSE_FAILED): WorkflowState.UPLOAD,
    (WorkflowState.SPLITTING, WorkflowEvent.RESET): WorkflowState.UPLOAD,
    (WorkflowState.UPLOAD, WorkflowEvent.RESET): WorkflowState.UPLOAD,
}


def next_state(state: WorkflowState, event: WorkflowEvent) -> WorkflowState:
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None


def recover_state(state: WorkflowState) -> WorkflowState:
    """Map a persisted state to one that can be resumed.

    A parse that was in flight when the data was saved cannot be resumed.
    """
    if state is WorkflowState.ANALYZING:
        return WorkflowState.UPLOAD
    return state


def accepts_edits(state: WorkflowState) -> bool:
    """Item/assignment mutations and chat commands are only valid while splitting."""
    return state is WorkflowState.SPLITTING


@dataclass(frozen=True)
class ChatMessage:
    """One transcript entry. Never modified after creation."""

    id: str
    role: MessageRole
    text: str
    timestamp: int  # epoch milliseconds


def welcome_message(timestamp: int) -> ChatMessage:
    return ChatMessage(id=WELCOME_MESSAGE_ID, role="model", text=WELCOME_TEXT, timestamp=timestamp)


@dataclass(frozen=True)
class SessionData:
    """Everything persisted for one session."""

    receipt: Receipt | None
    messages: tuple[ChatMessage, ...]
    state: WorkflowState

    def with_message(self, message: ChatMessage) -> SessionData:
        return replace(self, messages=(*self.messages, message))


def default_session_data(timestamp: int) -> SessionData:
    """A fresh session: no receipt, waiting for an upload."""
    return SessionData(receipt=None, messages=(welcome_message(timestamp),), state=WorkflowState.UPLOAD)


@dataclass(frozen=True)
class SessionMeta:
    """Index entry used to list sessions without loading their payloads."""

    id: str
    name: str
    date: datetime
    total: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY
