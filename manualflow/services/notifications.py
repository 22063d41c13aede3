"""Notification service for in-app messages and webhook delivery.

Handles:
- Persisted per-user notifications (inbox, unread tracking)
- Translating workflow events into notifications for the right people
- Optional webhook fan-out of every workflow event
"""

import json
import logging
from typing import Optional, Dict, Any, List

import httpx
from jinja2 import Template, TemplateError
from sqlalchemy import and_
from sqlalchemy.orm import Session

from manualflow.core.approval.events import WorkflowEvent, WorkflowEventType
from manualflow.core.approval.states import ApprovalStatus, DecisionKind
from manualflow.core.approval.store import storage_errors
from manualflow.core.config import Settings, get_settings
from manualflow.db.base import utcnow
from manualflow.db.models import Notification, NotificationType
from manualflow.services.manuals import ManualRegistry

logger = logging.getLogger(__name__)


# In-app message templates
MESSAGE_TEMPLATES = {
    WorkflowEventType.REVIEW_REQUESTED: {
        "title": "Manual awaiting approval",
        "message": 'Manual "{title}" (v{version_seq}) is awaiting your approval',
        "type": NotificationType.APPROVAL_REQUEST,
    },
    WorkflowEventType.DECISION_RECORDED: {
        "title": "Manual {decision_label}",
        "message": 'Your manual "{title}" (v{version_seq}) was {decision_label} by {actor}',
        "type": NotificationType.APPROVAL_DECISION,
    },
    WorkflowEventType.STATUS_CHANGED: {
        "title": "Manual is now {status}",
        "message": 'Manual "{title}" (v{version_seq}) changed from {previous_status} to {status} by {actor}',
        "type": NotificationType.MANUAL_UPDATE,
    },
}


class NotificationService:
    """
    Service for reading and writing a user's notifications.

    Every read and write is scoped to the recipient, so a user can never
    see or modify another user's notifications.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_notification(
        self,
        recipient: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
        *,
        manual_id: Optional[str] = None,
        version_seq: Optional[int] = None,
    ) -> Notification:
        """Persist a notification for one user."""
        with storage_errors(self.db, "create notification"):
            notification = Notification(
                recipient_username=recipient,
                title=title,
                message=message,
                type=NotificationType(type).value,
                related_manual_id=manual_id,
                related_version_seq=version_seq,
                is_read=False,
                created_at=utcnow(),
            )
            self.db.add(notification)
            self.db.commit()
        return notification

    def list_for_user(self, username: str, limit: int = 50) -> List[Notification]:
        """Newest notifications of a user."""
        with storage_errors(self.db, "list notifications"):
            return self.db.query(Notification).filter(
                Notification.recipient_username == username
            ).order_by(
                Notification.created_at.desc(), Notification.id.desc()
            ).limit(limit).all()

    def list_unread(self, username: str) -> List[Notification]:
        with storage_errors(self.db, "list unread notifications"):
            return self.db.query(Notification).filter(
                and_(
                    Notification.recipient_username == username,
                    Notification.is_read == False,  # noqa: E712
                )
            ).order_by(
                Notification.created_at.desc(), Notification.id.desc()
            ).all()

    def unread_count(self, username: str) -> int:
        with storage_errors(self.db, "count unread notifications"):
            return self.db.query(Notification).filter(
                and_(
                    Notification.recipient_username == username,
                    Notification.is_read == False,  # noqa: E712
                )
            ).count()

    def mark_as_read(self, notification_id: int, username: str) -> bool:
        """Mark one notification read. Returns False if it is not the user's."""
        with storage_errors(self.db, "mark notification read"):
            notification = self.db.query(Notification).filter(
                and_(
                    Notification.id == notification_id,
                    Notification.recipient_username == username,
                )
            ).first()
            if not notification:
                return False
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
                self.db.commit()
        return True

    def mark_all_as_read(self, username: str) -> int:
        """Mark every unread notification of a user read."""
        with storage_errors(self.db, "mark notifications read"):
            count = self.db.query(Notification).filter(
                and_(
                    Notification.recipient_username == username,
                    Notification.is_read == False,  # noqa: E712
                )
            ).update(
                {Notification.is_read: True, Notification.read_at: utcnow()},
                synchronize_session=False,
            )
            self.db.commit()
        return count

    def delete_notification(self, notification_id: int, username: str) -> bool:
        with storage_errors(self.db, "delete notification"):
            deleted = self.db.query(Notification).filter(
                and_(
                    Notification.id == notification_id,
                    Notification.recipient_username == username,
                )
            ).delete(synchronize_session=False)
            self.db.commit()
        return deleted > 0


class NotificationEmitter:
    """
    Notification capability handed to the approval workflow.

    Turns each workflow event into in-app notifications and, when a
    webhook is configured, posts the event to it. A decision that moves the
    status reaches the inbox once, through its status change. Webhook
    failures are logged, never raised.
    """

    def __init__(
        self,
        db: Session,
        *,
        registry: Optional[ManualRegistry] = None,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the emitter.

        Args:
            db: Database session
            registry: Manual registry used to look up titles and owners
            settings: Application settings (webhook configuration)
            client: HTTP client for webhook delivery; one is created per
                delivery when omitted
        """
        self.db = db
        self.registry = registry or ManualRegistry(db)
        self.settings = settings or get_settings()
        self.notifications = NotificationService(db)
        self._client = client

    def __call__(self, event: WorkflowEvent) -> List[int]:
        return self.emit(event)

    def emit(self, event: WorkflowEvent) -> List[int]:
        """
        Deliver one workflow event.

        Returns:
            IDs of the in-app notifications created
        """
        context = self._build_context(event)
        template = MESSAGE_TEMPLATES[event.event_type]

        notification_ids = []
        for recipient in self._recipients(event, context):
            notification = self.notifications.create_notification(
                recipient,
                template["title"].format(**context),
                template["message"].format(**context),
                template["type"],
                manual_id=event.manual_id,
                version_seq=event.version_seq,
            )
            notification_ids.append(notification.id)

        if self.settings.webhook_url:
            self._send_webhook(event, context)

        return notification_ids

    def _recipients(self, event: WorkflowEvent, context: Dict[str, Any]) -> List[str]:
        if event.event_type == WorkflowEventType.REVIEW_REQUESTED:
            return [event.recipient] if event.recipient else []
        if (
            event.event_type == WorkflowEventType.DECISION_RECORDED
            and event.status != event.previous_status
        ):
            # Reported by the STATUS_CHANGED event that follows
            return []

        owner = context.get("owner")
        # Nobody needs to be told about their own action
        if not owner or owner == event.actor:
            return []
        return [owner]

    def _build_context(self, event: WorkflowEvent) -> Dict[str, Any]:
        manual = self.registry.get_manual(event.manual_id)
        decision_label = {
            DecisionKind.APPROVED: "approved",
            DecisionKind.REJECTED: "rejected",
        }.get(event.decision, "reviewed")

        context = event.to_dict()
        context.update({
            "title": manual.title if manual else event.manual_id,
            "owner": manual.owner_username if manual else None,
            "decision_label": decision_label,
            "actor": event.actor or "system",
            "previous_status": (event.previous_status or ApprovalStatus.PENDING).value,
            "app_name": self.settings.app_name,
        })
        return context

    def _build_webhook_payload(self, event: WorkflowEvent, context: Dict[str, Any]) -> Dict[str, Any]:
        if self.settings.webhook_payload_template:
            try:
                template = Template(self.settings.webhook_payload_template)
                return json.loads(template.render(**context))
            except (TemplateError, ValueError) as e:
                logger.warning(f"Failed to render webhook template: {e}")

        return {
            "event": event.event_type.value,
            "timestamp": utcnow().isoformat(),
            "source": self.settings.app_name,
            "data": event.to_dict(),
        }

    def _send_webhook(self, event: WorkflowEvent, context: Dict[str, Any]) -> bool:
        """Post an event to the configured webhook with bounded retries."""
        payload = self._build_webhook_payload(event, context)
        attempts = max(1, self.settings.webhook_max_retries)

        for attempt in range(1, attempts + 1):
            try:
                self._deliver_webhook(payload)
                return True
            except httpx.HTTPError as e:
                logger.warning(
                    f"Webhook delivery of {event.event_type.value} failed "
                    f"(attempt {attempt}/{attempts}): {e}"
                )

        logger.error(
            f"Giving up on webhook delivery of {event.event_type.value} for "
            f"{event.manual_id} v{event.version_seq}"
        )
        return False

    def _deliver_webhook(self, payload: Dict[str, Any]) -> None:
        url = self.settings.webhook_url
        if self._client is not None:
            response = self._client.post(url, json=payload)
            response.raise_for_status()
            return

        with httpx.Client(timeout=self.settings.webhook_timeout) as client:
            response = client.post(url, json=payload)
            response.raise_for_status()
