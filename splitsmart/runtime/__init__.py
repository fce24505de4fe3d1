"""Runtime infrastructure for SplitSmart.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Path resolution via get_paths(), AppPaths
- TOML configuration via load_config()
- Session persistence via SessionStore and the key/value backends
- The AI service client

Usage:
    from splitsmart.runtime import get_logger, get_paths

    logger = get_logger(__name__)
    paths = get_paths()
    print(paths.home, paths.store)
"""

from splitsmart.runtime.config import AIConfig, AppConfig, ServerConfig, StorageConfig, load_config
from splitsmart.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    set_log_level,
)
from splitsmart.runtime.paths import (
    AppPaths,
    get_paths,
    reset_paths,
    set_home,
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "set_log_level",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    # Config
    "load_config",
    "AppConfig",
    "AIConfig",
    "StorageConfig",
    "ServerConfig",
    # Paths
    "get_paths",
    "set_home",
    "reset_paths",
    "AppPaths",
]
