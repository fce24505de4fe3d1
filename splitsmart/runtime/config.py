"""TOML configuration loader.

Example ``config.toml``:

    [ai]
    service_url = "http://localhost:8001"
    timeout = 60.0
    max_image_dimension = 2000

    [storage]
    home = "~/.splitsmart"

    [server]
    host = "127.0.0.1"
    port = 8080

A missing file yields the defaults. SPLITSMART_AI_URL and SPLITSMART_HOME
override the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from splitsmart.runtime.logging import get_logger
from splitsmart.runtime.paths import DEFAULT_HOME

logger = get_logger(__name__)

DEFAULT_AI_SERVICE_URL = "http://localhost:8001"
DEFAULT_AI_TIMEOUT = 60.0
DEFAULT_MAX_IMAGE_DIMENSION = 2000


@dataclass(frozen=True)
class AIConfig:
    service_url: str = DEFAULT_AI_SERVICE_URL
    timeout: float = DEFAULT_AI_TIMEOUT
    max_image_dimension: int = DEFAULT_MAX_IMAGE_DIMENSION


@dataclass(frozen=True)
class StorageConfig:
    home: str = DEFAULT_HOME


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(frozen=True)
class AppConfig:
    ai: AIConfig = field(default_factory=AIConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    with open(path, "rb") as f:
        return tomllib.load(f)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Args:
        path: Optional TOML path. Missing files fall back to defaults.

    Returns:
        The merged configuration.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path).expanduser()
        if config_path.exists():
            raw = _read_toml(config_path)
            logger.debug("Loaded config from %s", config_path)
        else:
            logger.debug("Config file not found: %s, using defaults", config_path)

    ai = raw.get("ai", {})
    storage = raw.get("storage", {})
    server = raw.get("server", {})

    service_url = os.environ.get("SPLITSMART_AI_URL", "") or ai.get("service_url", DEFAULT_AI_SERVICE_URL)
    home = os.environ.get("SPLITSMART_HOME", "") or storage.get("home", DEFAULT_HOME)

    return AppConfig(
        ai=AIConfig(
            service_url=service_url,
            timeout=float(ai.get("timeout", DEFAULT_AI_TIMEOUT)),
            max_image_dimension=int(ai.get("max_image_dimension", DEFAULT_MAX_IMAGE_DIMENSION)),
        ),
        storage=StorageConfig(home=home),
        server=ServerConfig(
            host=server.get("host", "127.0.0.1"),
            port=int(server.get("port", 8080)),
        ),
    )
