"""Approval workflow database models.

Stores the append-only decision log, the per-approver sequence high-water
marks and the per-manual approval rules.
There is no status column: approval status is derived from the log and
the rules on every read.
"""

from sqlalchemy import (
    Column, String, DateTime, ForeignKey, ForeignKeyConstraint, Integer, Text,
    UniqueConstraint, CheckConstraint,
)

from manualflow.db.base import Base, utcnow


class ManualApproval(Base):
    """
    One approver decision on one manual version.

    Rows are only ever inserted or deleted (administrative correction).
    A re-decision by the same approver appends a row with the next
    ``decision_seq``.
    """
    __tablename__ = "manual_approvals"
    __table_args__ = (
        UniqueConstraint(
            "manual_id", "version_seq", "approver_username", "decision_seq",
            name="uq_manual_approvals_decision",
        ),
        ForeignKeyConstraint(
            ["manual_id", "version_seq"],
            ["manual_versions.manual_id", "manual_versions.version_seq"],
            name="fk_manual_approvals_version",
            ondelete="CASCADE",
        ),
        CheckConstraint("decision IN ('approved', 'rejected')", name="ck_manual_approvals_decision"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    manual_id = Column(String(64), nullable=False, index=True)
    version_seq = Column(Integer, nullable=False)
    approver_username = Column(String(255), nullable=False)
    decision_seq = Column(Integer, nullable=False)

    decision = Column(String(20), nullable=False)
    comment = Column(Text, nullable=True)

    # Server-assigned at write time
    decided_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<ManualApproval {self.manual_id} v{self.version_seq} "
            f"{self.approver_username}#{self.decision_seq} [{self.decision}]>"
        )


class ManualApprovalSequence(Base):
    """
    Highest ``decision_seq`` ever issued to an approver on a version.

    Deleting decisions never lowers it, so a removed sequence number is
    not handed out again.
    """
    __tablename__ = "manual_approval_sequences"
    __table_args__ = (
        ForeignKeyConstraint(
            ["manual_id", "version_seq"],
            ["manual_versions.manual_id", "manual_versions.version_seq"],
            name="fk_manual_approval_sequences_version",
            ondelete="CASCADE",
        ),
    )

    manual_id = Column(String(64), primary_key=True)
    version_seq = Column(Integer, primary_key=True)
    approver_username = Column(String(255), primary_key=True)
    last_decision_seq = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<ManualApprovalSequence {self.manual_id} v{self.version_seq} "
            f"{self.approver_username} at {self.last_decision_seq}>"
        )


class ManualApprovalRule(Base):
    """How many distinct approvals a manual's versions need."""
    __tablename__ = "manual_approval_rules"
    __table_args__ = (
        CheckConstraint("required_approvals >= 0", name="ck_manual_approval_rules_non_negative"),
    )

    manual_id = Column(String(64), ForeignKey("manuals.id", ondelete="CASCADE"), primary_key=True)
    required_approvals = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ManualApprovalRule {self.manual_id} requires {self.required_approvals}>"
