"""Approval and versioning workflow engine for manuals.

Implements the decision log, approval rules and status derivation.
"""

from .states import ApprovalStatus, DecisionKind, StatusTransition
from .records import ApprovalRule, ApprovalStats, ApprovalSummary, Decision, ManualStatus
from .exceptions import (
    ApprovalWorkflowError,
    NotFoundError,
    UnauthorizedError,
    ConflictError,
    StorageError,
)
from .derivation import derive, latest_per_approver
from .events import WorkflowEvent, WorkflowEventType
from .service import ApprovalWorkflowService

__all__ = [
    "ApprovalStatus",
    "DecisionKind",
    "StatusTransition",
    "ApprovalRule",
    "ApprovalStats",
    "ApprovalSummary",
    "Decision",
    "ManualStatus",
    "ApprovalWorkflowError",
    "NotFoundError",
    "UnauthorizedError",
    "ConflictError",
    "StorageError",
    "derive",
    "latest_per_approver",
    "WorkflowEvent",
    "WorkflowEventType",
    "ApprovalWorkflowService",
]
