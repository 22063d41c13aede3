"""Errors raised by the approval workflow engine."""

from typing import Optional


class ApprovalWorkflowError(Exception):
    """Base class for approval workflow errors."""


class NotFoundError(ApprovalWorkflowError):
    """Raised when a manual or manual version does not exist."""

    def __init__(self, manual_id: str, version_seq: Optional[int] = None):
        if version_seq is None:
            message = f"Manual {manual_id} not found"
        else:
            message = f"Manual {manual_id} version {version_seq} not found"
        super().__init__(message)
        self.manual_id = manual_id
        self.version_seq = version_seq


class UnauthorizedError(ApprovalWorkflowError):
    """Raised when the approval policy refuses an approver."""

    def __init__(self, manual_id: str, identity: str):
        super().__init__(f"User {identity} may not decide on manual {manual_id}")
        self.manual_id = manual_id
        self.identity = identity


class ConflictError(ApprovalWorkflowError):
    """Raised when sequence assignment keeps colliding after retries."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class StorageError(ApprovalWorkflowError):
    """Raised when the persistence layer fails."""
