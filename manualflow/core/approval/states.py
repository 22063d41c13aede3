"""Approval statuses and transitions.

A version's status is never stored; it is recomputed from the decision
log. Transitions are therefore observed (old summary vs new summary)
rather than requested. Every status can be reached from every other and
none is final, since decisions can always be appended or removed.

State Machine Diagram:

    ┌──────────┐   APPROVE    ┌──────────┐
    │ PENDING  │─────────────►│ APPROVED │
    │          │◄─────────────│          │
    └──┬────▲──┘   REOPEN     └──┬────▲──┘
       │    │                    │    │
 REJECT│    │REOPEN        REJECT│    │APPROVE
       │    │                    │    │ (rejecter flipped,
    ┌──▼────┴──┐                 │    │  threshold met)
    │ REJECTED │◄────────────────┘    │
    │          │──────────────────────┘
    └──────────┘

REOPEN happens when an approver withdraws the deciding vote or an
administrator removes decisions.
"""

from enum import Enum
from typing import Dict, Optional, NamedTuple


class ApprovalStatus(str, Enum):
    """Derived approval status of a manual version."""

    PENDING = "pending"      # Threshold not met, no blocking rejection
    APPROVED = "approved"    # Threshold met, no blocking rejection
    REJECTED = "rejected"    # At least one approver's latest decision is a rejection


class DecisionKind(str, Enum):
    """What an approver decided."""

    APPROVED = "approved"
    REJECTED = "rejected"


class StatusTransition(str, Enum):
    """Status changes the workflow reports to the notification emitter."""

    APPROVE = "approve"    # → APPROVED
    REJECT = "reject"      # → REJECTED
    REOPEN = "reopen"      # → PENDING


class TransitionRule(NamedTuple):
    """A status change and the name it is reported under."""
    from_status: ApprovalStatus
    to_status: ApprovalStatus
    transition: StatusTransition


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ApprovalStatus.PENDING, ApprovalStatus.APPROVED, StatusTransition.APPROVE),
    TransitionRule(ApprovalStatus.PENDING, ApprovalStatus.REJECTED, StatusTransition.REJECT),
    TransitionRule(ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, StatusTransition.REJECT),
    TransitionRule(ApprovalStatus.APPROVED, ApprovalStatus.PENDING, StatusTransition.REOPEN),
    TransitionRule(ApprovalStatus.REJECTED, ApprovalStatus.PENDING, StatusTransition.REOPEN),
    TransitionRule(ApprovalStatus.REJECTED, ApprovalStatus.APPROVED, StatusTransition.APPROVE),
]

TRANSITION_LOOKUP: Dict[tuple[ApprovalStatus, ApprovalStatus], TransitionRule] = {
    (rule.from_status, rule.to_status): rule for rule in TRANSITION_RULES
}


def classify_transition(
    from_status: ApprovalStatus,
    to_status: ApprovalStatus,
) -> Optional[StatusTransition]:
    """Name the transition between two statuses, or None if nothing changed."""
    rule = TRANSITION_LOOKUP.get((from_status, to_status))
    return rule.transition if rule else None
