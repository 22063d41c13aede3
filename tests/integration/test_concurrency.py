"""Tests for racing decision writers.

Races are staged deterministically: a second session commits its own
decision in the middle of the first writer's record, either between
reading the next sequence and inserting, or just before the append.
"""

import pytest

from manualflow.core.approval import (
    ApprovalStatus,
    ApprovalWorkflowService,
    ConflictError,
    WorkflowEventType,
)
from manualflow.core.approval.states import DecisionKind
from manualflow.core.approval.store import DecisionLogStore

from tests.factories import create_manual_version, create_rule


pytestmark = pytest.mark.integration


def stage_race(monkeypatch, store, competing_write, races=1):
    """Run ``competing_write`` right after ``store`` reads its next sequence."""
    original = store.next_decision_seq
    remaining = {"races": races}

    def racing_next_seq(manual_id, version_seq, approver):
        seq = original(manual_id, version_seq, approver)
        if remaining["races"] > 0:
            remaining["races"] -= 1
            competing_write()
        return seq

    monkeypatch.setattr(store, "next_decision_seq", racing_next_seq)


@pytest.fixture
def version(db_session):
    version = create_manual_version(db_session)
    create_rule(db_session, manual=version.manual, required_approvals=1)
    db_session.commit()
    return version


class TestRacingDecisions:
    """Two decisions by the same approver at the same moment."""

    def test_both_decisions_persist_with_distinct_sequences(
        self, monkeypatch, session_factory, service, version
    ):
        other_session = session_factory()
        other_service = ApprovalWorkflowService(other_session, settings=service.settings)

        def competing_write():
            other_service.record_decision(
                version.manual_id, version.version_seq, "carol", DecisionKind.REJECTED
            )

        stage_race(monkeypatch, service.decisions, competing_write)
        try:
            summary = service.record_decision(
                version.manual_id, version.version_seq, "carol", DecisionKind.APPROVED
            )
        finally:
            other_session.close()

        decisions = service.list_decisions(version.manual_id, version.version_seq)
        assert [d.decision_seq for d in decisions] == [1, 2]
        assert [d.decision for d in decisions] == [DecisionKind.REJECTED, DecisionKind.APPROVED]
        # The retried write got the higher sequence, so it is the one that counts
        assert summary.status == ApprovalStatus.APPROVED

    def test_conflict_surfaces_when_retries_exhausted(
        self, monkeypatch, db_session, session_factory, version
    ):
        store = DecisionLogStore(db_session, conflict_retries=0)
        other_session = session_factory()
        other_store = DecisionLogStore(other_session)

        def competing_write():
            other_store.append(version.manual_id, version.version_seq, "carol", DecisionKind.REJECTED)

        stage_race(monkeypatch, store, competing_write)
        try:
            with pytest.raises(ConflictError):
                store.append(version.manual_id, version.version_seq, "carol", DecisionKind.APPROVED)
        finally:
            other_session.close()

        decisions = store.list_for_version(version.manual_id, version.version_seq)
        assert [(d.decision_seq, d.decision) for d in decisions] == [(1, DecisionKind.REJECTED)]

    def test_racing_approvers_do_not_collide(self, monkeypatch, session_factory, service, version):
        """Different approvers never share a sequence space."""
        other_session = session_factory()
        other_store = DecisionLogStore(other_session)

        def competing_write():
            other_store.append(version.manual_id, version.version_seq, "dave", DecisionKind.APPROVED)

        stage_race(monkeypatch, service.decisions, competing_write)
        try:
            service.record_decision(version.manual_id, version.version_seq, "carol", DecisionKind.APPROVED)
        finally:
            other_session.close()

        decisions = service.list_decisions(version.manual_id, version.version_seq)
        assert [(d.approver, d.decision_seq) for d in decisions] == [("carol", 1), ("dave", 1)]

    def test_threshold_crossing_reported_once(
        self, monkeypatch, session_factory, service, events, version
    ):
        """Two approvals racing past a threshold of one yield a single status change."""
        other_session = session_factory()
        other_events = []
        other_service = ApprovalWorkflowService(
            other_session, notify=other_events.append, settings=service.settings
        )
        append = service.decisions.append

        def append_after_competitor(*args, **kwargs):
            other_service.record_decision(
                version.manual_id, version.version_seq, "dave", DecisionKind.APPROVED
            )
            return append(*args, **kwargs)

        monkeypatch.setattr(service.decisions, "append", append_after_competitor)
        try:
            summary = service.record_decision(
                version.manual_id, version.version_seq, "carol", DecisionKind.APPROVED
            )
        finally:
            other_session.close()

        assert summary.status == ApprovalStatus.APPROVED
        assert summary.approvals_count == 2
        changes = [
            e for e in events + other_events if e.event_type == WorkflowEventType.STATUS_CHANGED
        ]
        assert len(changes) == 1
        assert changes[0].actor == "dave"
        assert changes[0].previous_status == ApprovalStatus.PENDING
        assert changes[0].status == ApprovalStatus.APPROVED
