"""Shared pytest fixtures for SplitSmart tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from factories import StepClock, sequential_ids

from splitsmart.runtime.kv_store import MemoryKeyValueStore
from splitsmart.runtime.session_store import SessionStore


@pytest.fixture
def backend() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(backend: MemoryKeyValueStore, clock: StepClock) -> Iterator[SessionStore]:
    session_store = SessionStore(backend, clock=clock, id_factory=sequential_ids())
    session_store.open()
    yield session_store
    session_store.close()
