"""Database models for manualflow."""

from manualflow.db.models.manual import Manual, ManualVersion
from manualflow.db.models.approval import ManualApproval, ManualApprovalRule, ManualApprovalSequence
from manualflow.db.models.notification import (
    Notification,
    NotificationType,
)

__all__ = [
    "Manual",
    "ManualVersion",
    "ManualApproval",
    "ManualApprovalRule",
    "ManualApprovalSequence",
    "Notification",
    "NotificationType",
]
