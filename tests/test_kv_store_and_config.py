"""Tests for the key/value backends, paths and TOML configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from splitsmart.runtime.config import DEFAULT_AI_SERVICE_URL, load_config
from splitsmart.runtime.kv_store import FileKeyValueStore, MemoryKeyValueStore
from splitsmart.runtime.paths import AppPaths, get_paths, reset_paths, set_home


@pytest.mark.parametrize("factory", [lambda p: MemoryKeyValueStore(), lambda p: FileKeyValueStore(p / "store")])
def test_backends_share_whole_value_semantics(tmp_path: Path, factory) -> None:
    backend = factory(tmp_path)

    assert backend.get("splitsmart_sessions") is None
    backend.set("splitsmart_sessions", "[]")
    backend.set("splitsmart_sessions", '[{"id": "a"}]')
    backend.set("theme", "dark")

    assert backend.get("splitsmart_sessions") == '[{"id": "a"}]'
    assert backend.keys() == ["splitsmart_sessions", "theme"]

    backend.delete("theme")
    backend.delete("theme")
    assert backend.keys() == ["splitsmart_sessions"]


def test_file_store_leaves_no_temp_files(tmp_path: Path) -> None:
    backend = FileKeyValueStore(tmp_path)

    backend.set("splitsmart_session_abc", "{}")

    assert sorted(p.name for p in tmp_path.iterdir()) == ["splitsmart_session_abc.json"]


@pytest.mark.parametrize("key", ["../escape", "a/b", "", "with space"])
def test_file_store_rejects_unsafe_keys(tmp_path: Path, key: str) -> None:
    with pytest.raises(ValueError):
        FileKeyValueStore(tmp_path).set(key, "x")


def test_paths_follow_home(tmp_path: Path) -> None:
    try:
        paths = set_home(tmp_path / "data")
        assert get_paths() is paths
        assert paths.config_file == (tmp_path / "data" / "config.toml").resolve()
        paths.ensure_directories()
        assert paths.store.is_dir()
    finally:
        reset_paths()


def test_paths_default_to_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPLITSMART_HOME", str(tmp_path))

    assert AppPaths().home == tmp_path.resolve()


def test_missing_config_file_gives_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SPLITSMART_AI_URL", raising=False)
    monkeypatch.delenv("SPLITSMART_HOME", raising=False)

    config = load_config(tmp_path / "missing.toml")

    assert config.ai.service_url == DEFAULT_AI_SERVICE_URL
    assert config.ai.max_image_dimension == 2000
    assert config.server.port == 8080


def test_config_file_and_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[ai]
service_url = "http://ai.local:9000"
timeout = 5

[storage]
home = "/srv/splitsmart"

[server]
port = 9999
""",
        encoding="utf-8",
    )
    monkeypatch.delenv("SPLITSMART_HOME", raising=False)
    monkeypatch.setenv("SPLITSMART_AI_URL", "http://override:1")

    config = load_config(config_path)

    assert config.ai.service_url == "http://override:1"
    assert config.ai.timeout == 5.0
    assert config.storage.home == "/srv/splitsmart"
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 9999
