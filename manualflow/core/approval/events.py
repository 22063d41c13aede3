"""Events the workflow hands to its notification capability."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from manualflow.db.base import utcnow

from .states import ApprovalStatus, DecisionKind


class WorkflowEventType(str, Enum):
    """Events that can trigger notifications."""
    REVIEW_REQUESTED = "review_requested"      # An approver is asked to review a version
    DECISION_RECORDED = "decision_recorded"    # Any approve/reject was appended
    STATUS_CHANGED = "status_changed"          # Derived status differs from before


@dataclass(frozen=True)
class WorkflowEvent:
    """Something the notification collaborator may want to tell people about."""
    event_type: WorkflowEventType
    manual_id: str
    version_seq: int
    status: ApprovalStatus
    previous_status: Optional[ApprovalStatus] = None
    actor: Optional[str] = None        # Approver or administrator who caused the event
    recipient: Optional[str] = None    # Set for events aimed at one user
    decision: Optional[DecisionKind] = None
    comment: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type.value,
            "manual_id": self.manual_id,
            "version_seq": self.version_seq,
            "status": self.status.value,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "actor": self.actor,
            "recipient": self.recipient,
            "decision": self.decision.value if self.decision else None,
            "comment": self.comment,
            "occurred_at": self.occurred_at.isoformat(),
        }


Notifier = Callable[[WorkflowEvent], Any]


def discard_event(event: WorkflowEvent) -> None:
    """Default notifier: drop the event."""
    return None
