"""Tests for the splitsmart command-line interface."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

import pytest
from factories import sample_receipt

from splitsmart.cli.main import main
from splitsmart.domain.session import WorkflowState
from splitsmart.runtime.kv_store import FileKeyValueStore
from splitsmart.runtime.paths import reset_paths
from splitsmart.runtime.session_store import SessionStore


@pytest.fixture(autouse=True)
def _isolated_paths(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("SPLITSMART_HOME", raising=False)
    monkeypatch.delenv("SPLITSMART_AI_URL", raising=False)
    reset_paths()
    yield
    reset_paths()


def _run(home: Path, *args: str) -> int:
    return main(["--home", str(home), *args])


def _seed_splitting_session(home: Path) -> None:
    with SessionStore(FileKeyValueStore(home / "store")) as store:
        data = store.read(store.active_id)
        store.save(store.active_id, replace(data, receipt=sample_receipt(), state=WorkflowState.SPLITTING))


def test_no_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert main([]) == 1
    assert "usage: splitsmart" in capsys.readouterr().out


def test_sessions_lifecycle(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "sessions") == 0
    assert "New Receipt" in capsys.readouterr().out

    assert _run(tmp_path, "new", "Lunch") == 0
    new_id = capsys.readouterr().out.strip().split()[-1]

    assert _run(tmp_path, "rename", new_id, "Team lunch") == 0
    assert _run(tmp_path, "rename", "missing", "x") == 1
    assert _run(tmp_path, "switch", "missing") == 1
    capsys.readouterr()

    assert _run(tmp_path, "sessions") == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("*") and lines[0].endswith("Team lunch")
    assert lines[1].endswith("New Receipt")

    assert _run(tmp_path, "delete", new_id) == 0
    assert not (tmp_path / "store" / f"splitSmart_session_{new_id}.json").exists()


def test_edits_need_a_receipt(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "add-item") == 1
    out = capsys.readouterr().out
    assert "Not allowed while the session is in the upload state." in out


def test_negative_and_non_numeric_amounts_are_rejected(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_splitting_session(tmp_path)

    assert _run(tmp_path, "tax", "-3") == 1
    assert _run(tmp_path, "tip", "lots") == 1
    assert _run(tmp_path, "edit-item", "1", "--price", "free") == 1
    assert "Error:" in capsys.readouterr().out


def test_assign_and_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_splitting_session(tmp_path)

    assert _run(tmp_path, "assign", "1", "Ann") == 0
    assert _run(tmp_path, "assign", "2", "Ben") == 0
    assert _run(tmp_path, "assign", "3", "Ann") == 0
    assert _run(tmp_path, "tip", "20", "--percent") == 0
    capsys.readouterr()

    assert _run(tmp_path, "summary") == 0
    out = capsys.readouterr().out
    assert "Ann: $22.10" in out
    assert "Ben: $23.40" in out

    assert _run(tmp_path, "friends") == 0
    assert capsys.readouterr().out.split() == ["Ann", "Ben"]


def test_assign_twice_unassigns(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_splitting_session(tmp_path)

    _run(tmp_path, "assign", "1", "Ann")
    _run(tmp_path, "assign", "1", "Ann")
    capsys.readouterr()

    _run(tmp_path, "summary")
    assert "No assignments yet" in capsys.readouterr().out


def test_show_prints_receipt_and_transcript(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_splitting_session(tmp_path)

    assert _run(tmp_path, "show") == 0

    out = capsys.readouterr().out
    assert "#1 Caesar Salad" in out
    assert "Total" in out
    assert "[assistant] Upload a receipt to get started!" in out


def test_reset_returns_to_upload(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_splitting_session(tmp_path)

    assert _run(tmp_path, "reset") == 0
    assert _run(tmp_path, "add-item") == 1


def test_upload_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "upload", str(tmp_path / "nope.jpg")) == 1
    assert "file not found" in capsys.readouterr().out


def test_friends_and_theme(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "friends", "add", "Zoe") == 0
    assert _run(tmp_path, "friends", "add") == 1
    assert _run(tmp_path, "friends", "remove", "Zoe") == 0
    capsys.readouterr()

    assert _run(tmp_path, "theme", "dark") == 0
    assert capsys.readouterr().out.strip() == "dark"
