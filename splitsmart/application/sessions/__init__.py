"""Session workflows."""

from splitsmart.application.sessions.workspace import (
    EditStatus,
    ExternalResult,
    ExternalStatus,
    SessionWorkspace,
)

__all__ = [
    "SessionWorkspace",
    "EditStatus",
    "ExternalResult",
    "ExternalStatus",
]
