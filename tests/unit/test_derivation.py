"""Tests for approval status derivation."""

import random
from datetime import datetime, timedelta

import pytest

from manualflow.core.approval.derivation import (
    aggregate_stats,
    approval_latency_hours,
    derive,
    group_by_version,
    latest_per_approver,
)
from manualflow.core.approval.records import Decision
from manualflow.core.approval.states import ApprovalStatus, DecisionKind


T0 = datetime(2026, 3, 1, 9, 0, 0)


def decision(approver, seq, kind="approved", *, at=None, manual_id="m1", version_seq=1):
    return Decision(
        manual_id=manual_id,
        version_seq=version_seq,
        approver=approver,
        decision_seq=seq,
        decision=DecisionKind(kind),
        decided_at=at or T0 + timedelta(minutes=seq),
    )


class TestLatestPerApprover:
    """Only the highest decision_seq of each approver counts."""

    def test_picks_highest_sequence(self):
        log = [decision("alice", 1, "approved"), decision("alice", 2, "rejected")]
        latest = latest_per_approver(log)
        assert latest["alice"].decision_seq == 2
        assert latest["alice"].decision is DecisionKind.REJECTED

    def test_older_decision_after_newer_is_ignored(self):
        """An older sequence seen last must not override the newer one."""
        log = [decision("alice", 3, "approved"), decision("alice", 1, "rejected")]
        assert latest_per_approver(log)["alice"].decision_seq == 3

    def test_approvers_are_independent(self):
        log = [decision("alice", 1), decision("bob", 1, "rejected"), decision("bob", 2)]
        latest = latest_per_approver(log)
        assert set(latest) == {"alice", "bob"}
        assert latest["bob"].decision is DecisionKind.APPROVED


class TestDerive:
    """Test the status rules."""

    def test_empty_log_with_zero_rule_is_approved(self):
        summary = derive([], 0)
        assert summary.status == ApprovalStatus.APPROVED
        assert summary.approvals_count == 0
        assert summary.approvers == ()
        assert summary.last_decision_at is None

    def test_empty_log_with_positive_rule_is_pending(self):
        summary = derive([], 2)
        assert summary.status == ApprovalStatus.PENDING
        assert summary.required_approvals == 2

    def test_threshold_met_is_approved(self):
        summary = derive([decision("alice", 1), decision("bob", 1)], 2)
        assert summary.status == ApprovalStatus.APPROVED
        assert summary.approvals_count == 2

    def test_below_threshold_is_pending(self):
        summary = derive([decision("alice", 1)], 2)
        assert summary.status == ApprovalStatus.PENDING
        assert summary.approvals_count == 1

    def test_rejection_blocks_even_above_threshold(self):
        """A rejection after the threshold was met keeps the version rejected."""
        log = [
            decision("alice", 1),
            decision("bob", 1),
            decision("carol", 1),
            decision("dave", 1, "rejected"),
        ]
        summary = derive(log, 2)
        assert summary.status == ApprovalStatus.REJECTED
        assert summary.approvals_count == 3
        assert summary.rejections_count == 1

    def test_rejecter_flipping_restores_approval(self):
        log = [
            decision("alice", 1),
            decision("bob", 1, "rejected"),
            decision("bob", 2, "approved"),
        ]
        summary = derive(log, 2)
        assert summary.status == ApprovalStatus.APPROVED
        assert summary.rejections_count == 0

    def test_re_approval_counts_once(self):
        log = [decision("alice", 1), decision("alice", 2), decision("alice", 3)]
        summary = derive(log, 2)
        assert summary.approvals_count == 1
        assert summary.status == ApprovalStatus.PENDING

    def test_approvers_sorted_and_distinct(self):
        log = [decision("carol", 1), decision("alice", 1), decision("carol", 2)]
        assert derive(log, 0).approvers == ("alice", "carol")

    def test_last_decision_at_uses_latest_decisions(self):
        late = T0 + timedelta(hours=5)
        log = [decision("alice", 1, at=T0), decision("bob", 1, at=late)]
        assert derive(log, 1).last_decision_at == late

    def test_negative_rule_rejected(self):
        with pytest.raises(ValueError):
            derive([], -1)

    def test_deterministic_under_reordering(self):
        """Any permutation of the same log yields the same summary."""
        log = [
            decision("alice", 1),
            decision("alice", 2, "rejected"),
            decision("bob", 1),
            decision("carol", 1, "rejected"),
            decision("carol", 2),
        ]
        expected = derive(log, 2)
        rng = random.Random(7)
        for _ in range(20):
            shuffled = log[:]
            rng.shuffle(shuffled)
            assert derive(shuffled, 2) == expected


class TestD1Scenario:
    """Two approvals required; the third decision is a change of mind."""

    def test_progression(self):
        log = [decision("A", 1)]
        first = derive(log, 2)
        assert (first.status, first.approvals_count) == (ApprovalStatus.PENDING, 1)

        log.append(decision("B", 1))
        second = derive(log, 2)
        assert (second.status, second.approvals_count) == (ApprovalStatus.APPROVED, 2)

        log.append(decision("A", 2, "rejected"))
        third = derive(log, 2)
        assert third.status == ApprovalStatus.REJECTED
        assert third.approvals_count == 1


class TestStats:
    """Test grouping, latency and aggregate statistics."""

    def test_group_by_version(self):
        log = [
            decision("alice", 1, manual_id="m1", version_seq=1),
            decision("bob", 1, manual_id="m1", version_seq=2),
            decision("bob", 2, manual_id="m1", version_seq=1),
        ]
        groups = group_by_version(log)
        assert set(groups) == {("m1", 1), ("m1", 2)}
        assert len(groups[("m1", 1)]) == 2

    def test_latency_spans_all_decisions(self):
        log = [
            decision("alice", 1, at=T0),
            decision("alice", 2, at=T0 + timedelta(hours=3)),
        ]
        assert approval_latency_hours(log) == pytest.approx(3.0)

    def test_latency_of_single_decision_is_zero(self):
        assert approval_latency_hours([decision("alice", 1)]) == 0

    def test_latency_of_empty_log_is_none(self):
        assert approval_latency_hours([]) is None

    def test_aggregate_stats(self):
        approved = [
            decision("alice", 1, at=T0, manual_id="m1"),
            decision("bob", 1, at=T0 + timedelta(hours=2), manual_id="m1"),
        ]
        rejected = [decision("carol", 1, "rejected", at=T0, manual_id="m2")]
        pending = [decision("dave", 1, at=T0, manual_id="m3")]
        groups = group_by_version(approved + rejected + pending)

        stats = aggregate_stats(groups, {"m1": 2, "m3": 2})

        assert stats.total_approved == 1
        assert stats.total_rejected == 1
        assert stats.total_pending == 1
        assert stats.avg_approval_latency == pytest.approx(2.0 / 3)

    def test_aggregate_stats_without_requests(self):
        stats = aggregate_stats({}, {})
        assert stats.to_dict() == {
            "total_pending": 0,
            "total_approved": 0,
            "total_rejected": 0,
            "avg_approval_latency": None,
        }
