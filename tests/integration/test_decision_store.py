"""Tests for the decision log and approval rule stores."""

import pytest

from manualflow.core.approval.exceptions import ConflictError
from manualflow.core.approval.states import DecisionKind
from manualflow.core.approval.store import ApprovalRuleStore, DecisionLogStore
from manualflow.db.models import ManualApproval, ManualApprovalSequence

from tests.factories import create_decision_row, create_manual, create_manual_version


pytestmark = pytest.mark.integration


@pytest.fixture
def version(db_session):
    return create_manual_version(db_session)


@pytest.fixture
def store(db_session):
    return DecisionLogStore(db_session, conflict_retries=1)


class TestAppend:
    """Test sequence assignment on append."""

    def test_first_decision_gets_seq_one(self, store, version):
        stored = store.append(version.manual_id, version.version_seq, "alice", DecisionKind.APPROVED)
        assert stored.decision_seq == 1
        assert stored.approver == "alice"
        assert stored.decided_at is not None

    def test_sequences_increase_per_approver(self, store, version):
        key = (version.manual_id, version.version_seq)
        seqs = [
            store.append(*key, "alice", DecisionKind.APPROVED).decision_seq,
            store.append(*key, "alice", DecisionKind.REJECTED).decision_seq,
            store.append(*key, "bob", DecisionKind.APPROVED).decision_seq,
            store.append(*key, "alice", DecisionKind.APPROVED).decision_seq,
        ]
        assert seqs == [1, 2, 1, 3]

    def test_sequences_are_scoped_to_version(self, db_session, store):
        manual = create_manual(db_session)
        first = create_manual_version(db_session, manual=manual)
        second = create_manual_version(db_session, manual=manual)
        store.append(first.manual_id, first.version_seq, "alice", DecisionKind.APPROVED)
        stored = store.append(second.manual_id, second.version_seq, "alice", DecisionKind.APPROVED)
        assert stored.decision_seq == 1

    def test_continues_after_gap(self, db_session, store, version):
        create_decision_row(db_session, version=version, approver="alice", decision_seq=5)
        stored = store.append(version.manual_id, version.version_seq, "alice", DecisionKind.REJECTED)
        assert stored.decision_seq == 6

    def test_comment_is_kept(self, store, version):
        stored = store.append(
            version.manual_id, version.version_seq, "alice", DecisionKind.REJECTED,
            comment="Section 4 is outdated",
        )
        assert stored.comment == "Section 4 is outdated"
        assert store.list_for_version(version.manual_id, version.version_seq)[0].comment == (
            "Section 4 is outdated"
        )

    def test_accepts_plain_strings(self, store, version):
        stored = store.append(version.manual_id, version.version_seq, "alice", "rejected")
        assert stored.decision is DecisionKind.REJECTED

    def test_append_commits(self, session_factory, store, version):
        store.append(version.manual_id, version.version_seq, "alice", DecisionKind.APPROVED)
        other = session_factory()
        try:
            assert other.query(ManualApproval).count() == 1
        finally:
            other.close()


class TestListing:
    """Test read ordering."""

    def test_list_for_version_ordering(self, db_session, store, version):
        create_decision_row(db_session, version=version, approver="bob", decision_seq=1)
        create_decision_row(db_session, version=version, approver="alice", decision_seq=2)
        create_decision_row(db_session, version=version, approver="alice", decision_seq=1)

        listed = store.list_for_version(version.manual_id, version.version_seq)
        assert [(d.approver, d.decision_seq) for d in listed] == [
            ("alice", 1), ("alice", 2), ("bob", 1),
        ]

    def test_list_all_spans_versions(self, db_session, store):
        first = create_manual_version(db_session)
        second = create_manual_version(db_session)
        create_decision_row(db_session, version=second, approver="bob", decision_seq=1)
        create_decision_row(db_session, version=first, approver="alice", decision_seq=1)

        listed = store.list_all()
        assert {(d.manual_id, d.version_seq) for d in listed} == {
            (first.manual_id, 1), (second.manual_id, 1),
        }

    def test_unknown_version_lists_nothing(self, store):
        assert store.list_for_version("missing", 1) == []


class TestRemove:
    """Test administrative removal."""

    def test_remove_single_decision(self, db_session, store, version):
        key = (version.manual_id, version.version_seq)
        store.append(*key, "alice", DecisionKind.APPROVED)
        store.append(*key, "alice", DecisionKind.REJECTED)

        assert store.remove(*key, "alice", decision_seq=2) == 1
        remaining = store.list_for_version(*key)
        assert [d.decision_seq for d in remaining] == [1]

    def test_remove_all_of_an_approver(self, store, version):
        key = (version.manual_id, version.version_seq)
        store.append(*key, "alice", DecisionKind.APPROVED)
        store.append(*key, "alice", DecisionKind.REJECTED)
        store.append(*key, "bob", DecisionKind.APPROVED)

        assert store.remove(*key, "alice") == 2
        assert [d.approver for d in store.list_for_version(*key)] == ["bob"]

    def test_remaining_sequences_not_renumbered(self, store, version):
        key = (version.manual_id, version.version_seq)
        for kind in (DecisionKind.APPROVED, DecisionKind.REJECTED, DecisionKind.APPROVED):
            store.append(*key, "alice", kind)

        store.remove(*key, "alice", decision_seq=2)
        assert [d.decision_seq for d in store.list_for_version(*key)] == [1, 3]
        assert store.append(*key, "alice", DecisionKind.APPROVED).decision_seq == 4

    def test_removed_latest_sequence_not_reissued(self, store, version):
        key = (version.manual_id, version.version_seq)
        store.append(*key, "alice", DecisionKind.APPROVED)
        store.append(*key, "alice", DecisionKind.REJECTED)

        store.remove(*key, "alice", decision_seq=2)
        assert store.append(*key, "alice", DecisionKind.APPROVED).decision_seq == 3

    def test_sequence_survives_removing_every_decision(self, store, version):
        key = (version.manual_id, version.version_seq)
        first = store.append(*key, "alice", DecisionKind.APPROVED)

        store.remove(*key, "alice")
        assert store.list_for_version(*key) == []
        assert store.append(*key, "alice", DecisionKind.REJECTED).decision_seq > first.decision_seq

    def test_removed_injected_row_not_reissued(self, db_session, store, version):
        """Rows written without going through append still raise the mark when removed."""
        create_decision_row(db_session, version=version, approver="alice", decision_seq=7)
        key = (version.manual_id, version.version_seq)

        store.remove(*key, "alice", decision_seq=7)
        assert store.append(*key, "alice", DecisionKind.APPROVED).decision_seq == 8

    def test_high_water_mark_tracks_appends(self, db_session, store, version):
        key = (version.manual_id, version.version_seq)
        store.append(*key, "alice", DecisionKind.APPROVED)
        store.append(*key, "alice", DecisionKind.APPROVED)

        mark = db_session.query(ManualApprovalSequence).filter_by(
            manual_id=version.manual_id, version_seq=version.version_seq, approver_username="alice"
        ).one()
        assert mark.last_decision_seq == 2

    def test_remove_nothing_is_not_an_error(self, store, version):
        assert store.remove(version.manual_id, version.version_seq, "nobody") == 0
        assert store.remove(version.manual_id, version.version_seq, "nobody", decision_seq=9) == 0


class TestRuleStore:
    """Test approval rule persistence."""

    def test_missing_rule(self, db_session):
        assert ApprovalRuleStore(db_session).get("missing") is None

    def test_upsert_creates_then_replaces(self, db_session):
        manual = create_manual(db_session)
        rules = ApprovalRuleStore(db_session)

        assert rules.upsert(manual.id, 2).required_approvals == 2
        assert rules.upsert(manual.id, 3).required_approvals == 3
        assert rules.get(manual.id).required_approvals == 3

    def test_upsert_rejects_negative(self, db_session):
        manual = create_manual(db_session)
        with pytest.raises(ValueError):
            ApprovalRuleStore(db_session).upsert(manual.id, -1)

    def test_get_many(self, db_session):
        first = create_manual(db_session)
        second = create_manual(db_session)
        rules = ApprovalRuleStore(db_session)
        rules.upsert(first.id, 1)
        rules.upsert(second.id, 4)

        assert rules.get_many([first.id, "missing"]) == {first.id: 1}
        assert rules.get_many() == {first.id: 1, second.id: 4}
        assert rules.get_many([]) == {}


class TestConflictExhaustion:
    """Collisions beyond the retry budget surface as ConflictError."""

    def test_conflict_after_retries(self, db_session, version, monkeypatch):
        create_decision_row(db_session, version=version, approver="alice", decision_seq=1)
        db_session.commit()

        store = DecisionLogStore(db_session, conflict_retries=1)
        # Always hand out a sequence that is already taken
        monkeypatch.setattr(store, "next_decision_seq", lambda *args: 1)

        with pytest.raises(ConflictError) as exc_info:
            store.append(version.manual_id, version.version_seq, "alice", DecisionKind.APPROVED)
        assert exc_info.value.attempts == 2
        assert len(store.list_for_version(version.manual_id, version.version_seq)) == 1
