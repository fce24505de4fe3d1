"""Durable storage of sessions on top of a key/value backend.

Layout:
    splitSmart_sessions            - JSON list of SessionMeta (newest first)
    splitSmart_session_<id>        - JSON SessionData for one session
    splitSmart_activeSessionId     - id of the active session
    splitSmart_friends             - JSON list of friend names
    theme                          - "light" or "dark"

Older installs kept a single implicit session under the legacy keys
(splitSmart_receiptData, splitSmart_messages, splitSmart_appState).
``open()`` migrates them to the keyed layout once.

Every session switch bumps ``epoch``. Writers that captured an older epoch
have their saves discarded, so a late write from the previous session can
never land on the newly active one.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from types import TracebackType
from typing import Literal

from splitsmart.domain.session import SessionData, SessionMeta, default_session_data, recover_state
from splitsmart.receipt.serialization import (
    decode_index,
    decode_messages,
    decode_receipt,
    decode_session_data,
    encode_index,
    encode_session_data,
    state_from_json,
)
from splitsmart.runtime.kv_store import KeyValueStore
from splitsmart.runtime.logging import get_logger

logger = get_logger(__name__)

# Same key names as the browser build's localStorage.
INDEX_KEY = "splitSmart_sessions"
ACTIVE_SESSION_KEY = "splitSmart_activeSessionId"
SESSION_KEY_PREFIX = "splitSmart_session_"
FRIENDS_KEY = "splitSmart_friends"
THEME_KEY = "theme"

LEGACY_RECEIPT_KEY = "splitSmart_receiptData"
LEGACY_MESSAGES_KEY = "splitSmart_messages"
LEGACY_STATE_KEY = "splitSmart_appState"
LEGACY_KEYS = (LEGACY_RECEIPT_KEY, LEGACY_MESSAGES_KEY, LEGACY_STATE_KEY)

FIRST_SESSION_NAME = "New Receipt"
MIGRATED_SESSION_NAME = "Previous Session"

Theme = Literal["light", "dark"]


class SessionStoreClosed(RuntimeError):
    """Raised when the store is used outside open()/close()."""


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return uuid.uuid4().hex


def _millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def migrate_legacy_layout(
    backend: KeyValueStore,
    *,
    clock: Callable[[], datetime] = _utcnow,
    id_factory: Callable[[], str] = _new_session_id,
) -> str | None:
    """
    Move a legacy single-session layout into the keyed layout.

    Runs only when the legacy receipt key exists and no index has been
    written yet. The legacy keys are removed afterwards, so running it again
    is a no-op.

    Returns:
        The id of the migrated session, or None if there was nothing to migrate.
    """
    legacy_receipt = backend.get(LEGACY_RECEIPT_KEY)
    if legacy_receipt is None or backend.get(INDEX_KEY) is not None:
        return None

    now = clock()
    session_id = id_factory()
    data = default_session_data(_millis(now))

    try:
        receipt = decode_receipt(legacy_receipt)
        messages_raw = backend.get(LEGACY_MESSAGES_KEY)
        messages = decode_messages(messages_raw) if messages_raw else ()
        state_raw = backend.get(LEGACY_STATE_KEY)
        state = state_from_json(state_raw.strip().strip('"')) if state_raw else data.state
        data = SessionData(receipt=receipt, messages=messages, state=recover_state(state))
    except (TypeError, ValueError) as e:
        logger.warning("Legacy session data is unreadable, starting it fresh: %s", e)

    meta = SessionMeta(
        id=session_id,
        name=MIGRATED_SESSION_NAME,
        date=now,
    )
    if data.receipt is not None:
        meta = replace(meta, total=data.receipt.total, currency=data.receipt.currency)
    backend.set(session_key(session_id), encode_session_data(data))
    backend.set(INDEX_KEY, encode_index([meta]))
    backend.set(ACTIVE_SESSION_KEY, session_id)
    for key in LEGACY_KEYS:
        backend.delete(key)

    logger.info("Migrated legacy session into %s", session_id)
    return session_id


class SessionStore:
    """Keyed session payloads plus the index used to list them.

    Lifecycle: ``open()`` -> read/save/... -> ``close()``. The store can also
    be used as a context manager.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_session_id
        self._index: list[SessionMeta] = []
        self._active_id: str | None = None
        self._epoch = 0
        self._open = False

    # --- Lifecycle ---

    def open(self) -> SessionStore:
        """Load the index, migrating legacy data and creating a first session if needed."""
        if self._open:
            return self

        migrate_legacy_layout(self._backend, clock=self._clock, id_factory=self._id_factory)
        self._index = self._load_index()
        self._open = True

        if not self._index:
            self.create_session(FIRST_SESSION_NAME)

        saved_active = self._backend.get(ACTIVE_SESSION_KEY)
        if saved_active and self._find(saved_active) is not None:
            self._active_id = saved_active
        else:
            self._active_id = self._index[0].id
            self._backend.set(ACTIVE_SESSION_KEY, self._active_id)

        logger.debug("Opened session store with %d session(s), active=%s", len(self._index), self._active_id)
        return self

    def close(self) -> None:
        self._open = False
        self._epoch += 1

    def __enter__(self) -> SessionStore:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise SessionStoreClosed("SessionStore is not open")

    # --- Index ---

    def _load_index(self) -> list[SessionMeta]:
        raw = self._backend.get(INDEX_KEY)
        if raw is None:
            return []
        try:
            return decode_index(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Session index is unreadable, starting a new one: %s", e)
            return []

    def _write_index(self) -> None:
        self._backend.set(INDEX_KEY, encode_index(self._index))

    def _find(self, session_id: str) -> SessionMeta | None:
        for meta in self._index:
            if meta.id == session_id:
                return meta
        return None

    def _replace_meta(self, updated: SessionMeta) -> None:
        self._index = [updated if meta.id == updated.id else meta for meta in self._index]
        self._write_index()

    def list_sessions(self) -> list[SessionMeta]:
        """Session index, newest first."""
        self._require_open()
        return list(self._index)

    def get_meta(self, session_id: str) -> SessionMeta | None:
        self._require_open()
        return self._find(session_id)

    @property
    def active_id(self) -> str:
        self._require_open()
        assert self._active_id is not None
        return self._active_id

    @property
    def epoch(self) -> int:
        """Changes whenever the active session changes."""
        return self._epoch

    # --- Session lifecycle ---

    def _now_millis(self) -> int:
        return _millis(self._clock())

    def create_session(self, name: str | None = None) -> str:
        """Create an empty session at the front of the index. Does not switch to it."""
        self._require_open()
        session_id = self._id_factory()
        meta = SessionMeta(
            id=session_id,
            name=name or f"Receipt {len(self._index) + 1}",
            date=self._clock(),
        )
        self._backend.set(session_key(session_id), encode_session_data(default_session_data(self._now_millis())))
        self._index = [meta, *self._index]
        self._write_index()
        logger.info("Created session %s (%s)", session_id, meta.name)
        return session_id

    def switch_to(self, session_id: str) -> SessionData | None:
        """
        Make ``session_id`` the active session and return its data.

        Returns:
            The loaded payload, or None if the id is not in the index (no-op).
        """
        self._require_open()
        if self._find(session_id) is None:
            logger.debug("Ignoring switch to unknown session %s", session_id)
            return None
        data = self.read(session_id)
        self._active_id = session_id
        self._epoch += 1
        self._backend.set(ACTIVE_SESSION_KEY, session_id)
        logger.debug("Switched to session %s (epoch %d)", session_id, self._epoch)
        return data

    def delete_session(self, session_id: str) -> str:
        """
        Remove a session and its payload.

        If it was active, the first remaining session becomes active, or a new
        session is created when none remain.

        Returns:
            The active session id after deletion.
        """
        self._require_open()
        if self._find(session_id) is None:
            logger.debug("Ignoring delete of unknown session %s", session_id)
            return self.active_id

        self._index = [meta for meta in self._index if meta.id != session_id]
        self._write_index()
        self._backend.delete(session_key(session_id))
        logger.info("Deleted session %s", session_id)

        if session_id == self._active_id:
            next_id = self._index[0].id if self._index else self.create_session()
            self.switch_to(next_id)
        return self.active_id

    def rename(self, session_id: str, name: str) -> None:
        """Change a session's display name. Blank names and unknown ids are ignored."""
        self._require_open()
        meta = self._find(session_id)
        clean_name = name.strip()
        if meta is None or not clean_name:
            return
        self._replace_meta(replace(meta, name=clean_name))

    # --- Payloads ---

    def read(self, session_id: str) -> SessionData:
        """
        Load a session payload.

        Missing or unreadable payloads yield a fresh default payload. A
        session persisted mid-parse comes back in the upload state.
        """
        self._require_open()
        raw = self._backend.get(session_key(session_id))
        if raw is None:
            return default_session_data(self._now_millis())
        try:
            data = decode_session_data(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Session %s payload is unreadable, using a fresh one: %s", session_id, e)
            return default_session_data(self._now_millis())

        recovered = recover_state(data.state)
        if recovered is not data.state:
            logger.info("Session %s was saved mid-parse; resetting to %s", session_id, recovered.value)
            data = replace(data, state=recovered)
        return data

    def save(self, session_id: str, data: SessionData, *, epoch: int | None = None) -> bool:
        """
        Overwrite a session's payload.

        Args:
            session_id: Session to write.
            data: Full payload.
            epoch: Epoch the caller loaded its data under. A stale epoch
                discards the write.

        Returns:
            True if written, False if discarded.
        """
        self._require_open()
        if epoch is not None and epoch != self._epoch:
            logger.debug("Discarding stale save for %s (epoch %d != %d)", session_id, epoch, self._epoch)
            return False
        meta = self._find(session_id)
        if meta is None:
            logger.debug("Discarding save for unknown session %s", session_id)
            return False

        self._backend.set(session_key(session_id), encode_session_data(data))

        receipt = data.receipt
        if receipt is not None and (meta.total != receipt.total or meta.currency != receipt.currency):
            self._replace_meta(replace(meta, total=receipt.total, currency=receipt.currency))
        return True

    # --- Preferences ---

    def get_theme(self) -> Theme | None:
        value = self._backend.get(THEME_KEY)
        if value in ("light", "dark"):
            return value  # type: ignore[return-value]
        return None

    def set_theme(self, theme: Theme) -> None:
        if theme not in ("light", "dark"):
            raise ValueError(f"Unknown theme: {theme!r}")
        self._backend.set(THEME_KEY, theme)

    def get_friends(self) -> list[str]:
        raw = self._backend.get(FRIENDS_KEY)
        if raw is None:
            return []
        try:
            friends = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Friends list is unreadable, ignoring it")
            return []
        if not isinstance(friends, list):
            return []
        return [name for name in friends if isinstance(name, str)]

    def set_friends(self, friends: list[str]) -> None:
        self._backend.set(FRIENDS_KEY, json.dumps(friends, ensure_ascii=False))
