"""Status derivation for manual versions.

Everything in this module is a pure function of its arguments: the same
decision log and rule always produce the same summary, and nothing here
touches the database.

Derivation rules:

1. Reduce the log to each approver's latest decision (highest
   ``decision_seq``). Re-deciding supersedes an earlier vote, it does not
   add to it.
2. ``approvals_count`` is the number of approvers whose latest decision
   is an approval.
3. If any latest decision is a rejection the version is ``rejected``; an
   unresolved rejection blocks approval whatever the approval count.
4. Otherwise the version is ``approved`` once ``approvals_count`` reaches
   ``required_approvals``. A rule of zero approves an empty log.
5. Otherwise it is ``pending``.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .records import ApprovalStats, ApprovalSummary, Decision
from .states import ApprovalStatus, DecisionKind

VersionKey = Tuple[str, int]


def _precedence(decision: Decision) -> tuple:
    # decision_seq is unique per approver in the store; the rest only
    # keeps hand-built logs with duplicate sequences deterministic.
    return (
        decision.decision_seq,
        decision.decided_at or datetime.min,
        decision.decision.value,
    )


def latest_per_approver(decisions: Iterable[Decision]) -> Dict[str, Decision]:
    """Map each approver to their decision with the highest ``decision_seq``.

    Input order does not matter: an older decision seen after a newer one
    never replaces it.
    """
    latest: Dict[str, Decision] = {}
    for decision in decisions:
        current = latest.get(decision.approver)
        if current is None or _precedence(decision) > _precedence(current):
            latest[decision.approver] = decision
    return latest


def derive(decisions: Iterable[Decision], required_approvals: int) -> ApprovalSummary:
    """
    Compute the approval summary of one manual version.

    Args:
        decisions: Decision log of the version, in any order
        required_approvals: Threshold from the manual's approval rule

    Returns:
        The derived summary (not yet keyed to a manual version)

    Raises:
        ValueError: If required_approvals is negative
    """
    if required_approvals < 0:
        raise ValueError(f"required_approvals must be >= 0, got {required_approvals}")

    latest = latest_per_approver(decisions)

    approvals_count = sum(
        1 for d in latest.values() if d.decision is DecisionKind.APPROVED
    )
    rejections_count = len(latest) - approvals_count

    if rejections_count > 0:
        status = ApprovalStatus.REJECTED
    elif approvals_count >= required_approvals:
        status = ApprovalStatus.APPROVED
    else:
        status = ApprovalStatus.PENDING

    last_decision_at = max(
        (d.decided_at for d in latest.values() if d.decided_at is not None),
        default=None,
    )

    return ApprovalSummary(
        status=status,
        approvals_count=approvals_count,
        required_approvals=required_approvals,
        rejections_count=rejections_count,
        approvers=tuple(sorted(latest)),
        last_decision_at=last_decision_at,
    )


def group_by_version(decisions: Iterable[Decision]) -> Dict[VersionKey, List[Decision]]:
    """Split a mixed decision log into per-version logs."""
    groups: Dict[VersionKey, List[Decision]] = defaultdict(list)
    for decision in decisions:
        groups[(decision.manual_id, decision.version_seq)].append(decision)
    return dict(groups)


def approval_latency_hours(decisions: Sequence[Decision]) -> Optional[float]:
    """Hours between the first and last decision of one version's log.

    Every decision counts here, including superseded ones.
    """
    timestamps = [d.decided_at for d in decisions if d.decided_at is not None]
    if not timestamps:
        return None
    return (max(timestamps) - min(timestamps)).total_seconds() / 3600


def aggregate_stats(
    groups: Mapping[VersionKey, Sequence[Decision]],
    required_by_manual: Mapping[str, int],
) -> ApprovalStats:
    """
    Aggregate status counts and latency at the (manual, version) grain.

    Args:
        groups: Per-version decision logs, as from ``group_by_version``
        required_by_manual: Rule thresholds; missing manuals default to 0

    Returns:
        Totals per status and the mean latency in hours (None when empty)
    """
    totals = {status: 0 for status in ApprovalStatus}
    latencies: List[float] = []

    for (manual_id, _version_seq), decisions in groups.items():
        summary = derive(decisions, required_by_manual.get(manual_id, 0))
        totals[summary.status] += 1
        latency = approval_latency_hours(decisions)
        if latency is not None:
            latencies.append(latency)

    return ApprovalStats(
        total_pending=totals[ApprovalStatus.PENDING],
        total_approved=totals[ApprovalStatus.APPROVED],
        total_rejected=totals[ApprovalStatus.REJECTED],
        avg_approval_latency=sum(latencies) / len(latencies) if latencies else None,
    )
