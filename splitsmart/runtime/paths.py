"""Centralized path management for SplitSmart.

All on-disk state lives under one home directory:

    ~/.splitsmart/
    ├── config.toml  - Optional configuration
    └── store/       - One JSON file per storage key (sessions, index, preferences)

The home directory can be moved with the SPLITSMART_HOME environment variable
or the ``--home`` CLI option.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_HOME = "~/.splitsmart"


def _get_default_home() -> Path:
    """Determine the home directory from the environment."""
    return Path(os.environ.get("SPLITSMART_HOME", DEFAULT_HOME)).expanduser()


@dataclass
class AppPaths:
    """Container for all application paths, computed relative to ``home``."""

    home: Path = field(default_factory=_get_default_home)

    def __post_init__(self) -> None:
        self.home = Path(self.home).expanduser().resolve()

    @property
    def config_file(self) -> Path:
        """Optional TOML configuration file."""
        return self.home / "config.toml"

    @property
    def store(self) -> Path:
        """Directory backing the key/value session store."""
        return self.home / "store"

    def ensure_directories(self) -> None:
        """Create the store directory if it doesn't exist."""
        self.store.mkdir(parents=True, exist_ok=True)


# Module-level singleton
_paths: AppPaths | None = None


def get_paths() -> AppPaths:
    """Get the singleton AppPaths instance."""
    global _paths
    if _paths is None:
        _paths = AppPaths()
    return _paths


def set_home(home: str | Path) -> AppPaths:
    """Point the singleton at a different home directory.

    Args:
        home: New home directory (``~`` is expanded).
    """
    global _paths
    _paths = AppPaths(home=Path(home))
    return _paths


def reset_paths() -> None:
    """Forget the singleton so the next get_paths() re-reads the environment."""
    global _paths
    _paths = None
