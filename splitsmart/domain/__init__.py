"""Core domain models for SplitSmart.

This package is pure: no I/O, no logging, no runtime imports.
- Receipt, ReceiptItem: the receipt aggregate and its operations
- Allocation, PersonTotal: per-participant cost breakdown
- SessionData, SessionMeta, ChatMessage, WorkflowState: session models

Usage:
    from splitsmart.domain import Receipt, compute_allocation
"""

from splitsmart.domain.allocation import Allocation, PersonTotal, compute_allocation
from splitsmart.domain.receipt import AssignmentUpdate, DietaryTags, Receipt, ReceiptItem
from splitsmart.domain.session import (
    ChatMessage,
    InvalidTransition,
    SessionData,
    SessionMeta,
    WorkflowEvent,
    WorkflowState,
)

__all__ = [
    "Allocation",
    "PersonTotal",
    "compute_allocation",
    "AssignmentUpdate",
    "DietaryTags",
    "Receipt",
    "ReceiptItem",
    "ChatMessage",
    "InvalidTransition",
    "SessionData",
    "SessionMeta",
    "WorkflowEvent",
    "WorkflowState",
]
