"""In-app notification models."""

from enum import Enum
from sqlalchemy import Column, String, DateTime, Boolean, Text, Integer

from manualflow.db.base import Base, utcnow


class NotificationType(str, Enum):
    """Categories shown to the user in the notification inbox."""
    APPROVAL_REQUEST = "approval_request"
    APPROVAL_DECISION = "approval_decision"
    MANUAL_UPDATE = "manual_update"
    SYSTEM = "system"


class Notification(Base):
    """
    A message addressed to one user.

    Rows are created by the notification emitter in response to workflow
    events and managed by their recipient.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_username = Column(String(255), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False, default=NotificationType.SYSTEM.value)

    related_manual_id = Column(String(64), nullable=True)
    related_version_seq = Column(Integer, nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    read_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Notification {self.type} to {self.recipient_username}>"
