"""Value objects passed between the approval stores, engine and service."""

from dataclasses import dataclass, replace, asdict
from datetime import datetime
from typing import Optional, Dict, Any, Tuple

from .states import ApprovalStatus, DecisionKind


@dataclass(frozen=True)
class Decision:
    """A single approve/reject entry from the decision log."""
    manual_id: str
    version_seq: int
    approver: str
    decision_seq: int
    decision: DecisionKind
    decided_at: datetime
    comment: Optional[str] = None
    id: Optional[int] = None  # Log position across approvers; None for hand-built decisions

    @classmethod
    def from_row(cls, row) -> "Decision":
        """Build from a ``ManualApproval`` row."""
        return cls(
            manual_id=row.manual_id,
            version_seq=row.version_seq,
            approver=row.approver_username,
            decision_seq=row.decision_seq,
            decision=DecisionKind(row.decision),
            decided_at=row.decided_at,
            comment=row.comment,
            id=row.id,
        )


@dataclass(frozen=True)
class ApprovalRule:
    """Number of distinct approvals a manual's versions need."""
    manual_id: str
    required_approvals: int = 0
    is_default: bool = False


@dataclass(frozen=True)
class ApprovalSummary:
    """Derived approval state of one manual version."""
    status: ApprovalStatus
    approvals_count: int
    required_approvals: int
    rejections_count: int = 0
    approvers: Tuple[str, ...] = ()
    last_decision_at: Optional[datetime] = None
    manual_id: Optional[str] = None
    version_seq: Optional[int] = None
    title: Optional[str] = None

    def for_version(
        self,
        manual_id: str,
        version_seq: int,
        title: Optional[str] = None,
    ) -> "ApprovalSummary":
        """Return a copy keyed to a specific manual version."""
        return replace(self, manual_id=manual_id, version_seq=version_seq, title=title)


@dataclass(frozen=True)
class ApprovalStats:
    """Aggregate counts over all versions that have decisions."""
    total_pending: int = 0
    total_approved: int = 0
    total_rejected: int = 0
    avg_approval_latency: Optional[float] = None  # hours

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ManualStatus:
    """A manual together with the summary of its latest version."""
    manual_id: str
    title: str
    owner_username: str
    state: str
    latest_version_seq: int
    summary: Optional[ApprovalSummary] = None
