"""Approval workflow service for manual versions.

Provides the public API of the approval engine: recording and removing
decisions, managing approval rules, and querying derived status. Status
is recomputed from the decision log on every call.
"""

import logging
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from manualflow.core.config import Settings, get_settings

from .derivation import aggregate_stats, derive, group_by_version
from .events import Notifier, WorkflowEvent, WorkflowEventType, discard_event
from .exceptions import NotFoundError, UnauthorizedError
from .records import ApprovalRule, ApprovalStats, ApprovalSummary, Decision, ManualStatus
from .states import ApprovalStatus, DecisionKind, classify_transition
from .store import ApprovalRuleStore, DecisionLogStore

if TYPE_CHECKING:
    from manualflow.services.manuals import ManualRegistry

logger = logging.getLogger(__name__)

ApprovalPolicy = Callable[[str, str], bool]


def allow_all(manual_id: str, identity: str) -> bool:
    """Default approval policy: every identity may decide."""
    return True


class ApprovalWorkflowService:
    """
    High-level service for manual approval workflows.

    Handles:
    - Recording approve/reject decisions against manual versions
    - Managing per-manual approval rules
    - Deriving version status, request listings and statistics
    - Administrative removal of decisions
    - Emitting workflow events to the notification capability
    """

    def __init__(
        self,
        db: Session,
        *,
        registry: Optional["ManualRegistry"] = None,
        can_approve: Optional[ApprovalPolicy] = None,
        notify: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the workflow service.

        Args:
            db: Database session for this unit of work
            registry: Manual registry (defaults to one on the same session)
            can_approve: Policy deciding whether an identity may decide on
                a manual
            notify: Callable receiving workflow events
            settings: Application settings
        """
        from manualflow.services.manuals import ManualRegistry

        self.db = db
        self.settings = settings or get_settings()
        self.registry = registry or ManualRegistry(db)
        self.can_approve = can_approve or allow_all
        self.notify = notify or discard_event
        self.decisions = DecisionLogStore(
            db, conflict_retries=self.settings.decision_conflict_retries
        )
        self.rules = ApprovalRuleStore(db)

    # Rules

    def get_rule(self, manual_id: str) -> ApprovalRule:
        """Rule of a manual; a default rule of 0 when none is stored."""
        rule = self.rules.get(manual_id)
        if rule is None:
            return ApprovalRule(manual_id=manual_id, required_approvals=0, is_default=True)
        return rule

    def set_rule(self, manual_id: str, required_approvals: int) -> ApprovalRule:
        """
        Set how many approvals a manual's versions need.

        Raises:
            NotFoundError: If the manual does not exist
            ValueError: If required_approvals is negative
        """
        if self.registry.get_manual(manual_id) is None:
            raise NotFoundError(manual_id)
        return self.rules.upsert(manual_id, required_approvals)

    # Decisions

    def record_decision(
        self,
        manual_id: str,
        version_seq: int,
        approver: str,
        decision: DecisionKind,
        comment: Optional[str] = None,
    ) -> ApprovalSummary:
        """
        Record an approver's decision on a manual version.

        A later decision by the same approver supersedes the earlier one;
        both stay in the log.

        Args:
            manual_id: Manual identifier
            version_seq: Version number
            approver: Identity of the deciding user
            decision: approved or rejected
            comment: Optional free-text comment

        Returns:
            Summary of the version after the decision

        Raises:
            NotFoundError: If the version does not exist
            UnauthorizedError: If the approval policy refuses the approver
            ConflictError: If the decision sequence could not be assigned
            StorageError: On database failure
        """
        decision = DecisionKind(decision)
        self._require_version(manual_id, version_seq)

        if not self.can_approve(manual_id, approver):
            logger.warning(f"Refused decision by {approver} on {manual_id} v{version_seq}")
            raise UnauthorizedError(manual_id, approver)

        stored = self.decisions.append(manual_id, version_seq, approver, decision, comment)

        # Judge the change on the log up to this decision's own row
        log = self.decisions.list_for_version(manual_id, version_seq)
        required = self.get_rule(manual_id).required_approvals
        before = derive([d for d in log if d.id < stored.id], required).for_version(
            manual_id, version_seq
        )
        written = derive([d for d in log if d.id <= stored.id], required).for_version(
            manual_id, version_seq
        )

        self._emit(WorkflowEvent(
            event_type=WorkflowEventType.DECISION_RECORDED,
            manual_id=manual_id,
            version_seq=version_seq,
            status=written.status,
            previous_status=before.status,
            actor=approver,
            decision=decision,
            comment=comment,
        ))
        self._emit_status_change(before, written, actor=approver, decision=decision, comment=comment)
        return self.get_summary(manual_id, version_seq)

    def remove_decision(
        self,
        manual_id: str,
        version_seq: int,
        approver: str,
        decision_seq: Optional[int] = None,
        *,
        actor: Optional[str] = None,
    ) -> Optional[ApprovalSummary]:
        """
        Remove one decision, or all of an approver's decisions on a version.

        Removing decisions that do not exist is a no-op. The status may
        move in any direction afterwards (approved back to pending is
        normal).

        Args:
            manual_id: Manual identifier
            version_seq: Version number
            approver: Approver whose decisions are removed
            decision_seq: A single decision to remove; all when None
            actor: Administrator performing the removal, for events

        Returns:
            The recomputed summary, or None if the version is unknown
        """
        if not self.registry.version_exists(manual_id, version_seq):
            return None

        before = self.get_summary(manual_id, version_seq)
        removed = self.decisions.remove(manual_id, version_seq, approver, decision_seq)
        if not removed:
            return before

        after = self.get_summary(manual_id, version_seq)
        self._emit_status_change(before, after, actor=actor)
        return after

    def request_review(
        self,
        manual_id: str,
        version_seq: int,
        approvers: Iterable[str],
        *,
        actor: Optional[str] = None,
    ) -> List[str]:
        """
        Ask approvers to review a version.

        Approvers who already decided on the version are skipped.

        Returns:
            The approvers a review request was sent to, in input order
        """
        self._require_version(manual_id, version_seq)
        summary = self.get_summary(manual_id, version_seq)
        decided = set(summary.approvers)

        requested: List[str] = []
        for approver in approvers:
            if approver in decided or approver in requested:
                continue
            self._emit(WorkflowEvent(
                event_type=WorkflowEventType.REVIEW_REQUESTED,
                manual_id=manual_id,
                version_seq=version_seq,
                status=summary.status,
                actor=actor,
                recipient=approver,
            ))
            requested.append(approver)

        if requested:
            logger.info(
                f"Requested review of {manual_id} v{version_seq} from {', '.join(requested)}"
            )
        return requested

    # Queries

    def get_summary(self, manual_id: str, version_seq: int) -> ApprovalSummary:
        """
        Derive the current approval summary of a version.

        Raises:
            NotFoundError: If the version does not exist
        """
        self._require_version(manual_id, version_seq)
        manual = self.registry.get_manual(manual_id)
        decisions = self.decisions.list_for_version(manual_id, version_seq)
        rule = self.get_rule(manual_id)
        return derive(decisions, rule.required_approvals).for_version(
            manual_id, version_seq, manual.title if manual else None
        )

    def check_status(self, manual_id: str, version_seq: int) -> ApprovalStatus:
        return self.get_summary(manual_id, version_seq).status

    def list_decisions(self, manual_id: str, version_seq: int) -> List[Decision]:
        """Full decision history of a version, superseded decisions included."""
        self._require_version(manual_id, version_seq)
        return self.decisions.list_for_version(manual_id, version_seq)

    def list_requests(self, status: Optional[ApprovalStatus] = None) -> List[ApprovalSummary]:
        """
        Summaries of every version with at least one decision.

        Args:
            status: Only return versions whose derived status matches

        Returns:
            Summaries ordered by most recent decision first
        """
        status = ApprovalStatus(status) if status is not None else None
        groups = group_by_version(self.decisions.list_all())
        required = self.rules.get_many(manual_id for manual_id, _ in groups)
        titles = {m.id: m.title for m in self.registry.list_manuals()}

        summaries = []
        for (manual_id, version_seq), decisions in groups.items():
            summary = derive(decisions, required.get(manual_id, 0)).for_version(
                manual_id, version_seq, titles.get(manual_id)
            )
            if status is None or summary.status == status:
                summaries.append(summary)

        summaries.sort(key=lambda s: (s.manual_id, s.version_seq))
        summaries.sort(key=lambda s: s.last_decision_at, reverse=True)
        return summaries

    def stats(self) -> ApprovalStats:
        """Status totals and mean approval latency (hours) over all requests."""
        groups = group_by_version(self.decisions.list_all())
        required = self.rules.get_many(manual_id for manual_id, _ in groups)
        return aggregate_stats(groups, required)

    def list_manual_statuses(self) -> List[ManualStatus]:
        """Every manual with the derived summary of its latest version."""
        statuses = []
        for manual in self.registry.list_manuals():
            summary = None
            if manual.latest_version_seq:
                summary = self.get_summary(manual.id, manual.latest_version_seq)
            statuses.append(ManualStatus(
                manual_id=manual.id,
                title=manual.title,
                owner_username=manual.owner_username,
                state=manual.state,
                latest_version_seq=manual.latest_version_seq or 0,
                summary=summary,
            ))
        return statuses

    # Helpers

    def _require_version(self, manual_id: str, version_seq: int) -> None:
        if not self.registry.version_exists(manual_id, version_seq):
            raise NotFoundError(manual_id, version_seq)

    def _emit_status_change(
        self,
        before: ApprovalSummary,
        after: ApprovalSummary,
        *,
        actor: Optional[str],
        decision: Optional[DecisionKind] = None,
        comment: Optional[str] = None,
    ) -> None:
        transition = classify_transition(before.status, after.status)
        if transition is None:
            return

        logger.info(
            f"{after.manual_id} v{after.version_seq}: {before.status.value} -> "
            f"{after.status.value} ({transition.value})"
        )
        self._emit(WorkflowEvent(
            event_type=WorkflowEventType.STATUS_CHANGED,
            manual_id=after.manual_id,
            version_seq=after.version_seq,
            status=after.status,
            previous_status=before.status,
            actor=actor,
            decision=decision,
            comment=comment,
        ))

    def _emit(self, event: WorkflowEvent) -> None:
        # The decision is already committed; a failing notifier must not undo it
        try:
            self.notify(event)
        except Exception:
            logger.exception(
                f"Notification of {event.event_type.value} for "
                f"{event.manual_id} v{event.version_seq} failed"
            )
