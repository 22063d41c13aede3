"""Persistence for the decision log and approval rules.

Both stores work on an explicitly supplied SQLAlchemy session and commit
their own writes, so every append or upsert is all-or-nothing.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from manualflow.db.base import utcnow
from manualflow.db.models.approval import ManualApproval, ManualApprovalRule, ManualApprovalSequence

from .exceptions import ConflictError, StorageError
from .records import ApprovalRule, Decision
from .states import DecisionKind

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(db: Session, action: str) -> Iterator[None]:
    """Roll back and re-raise database failures as ``StorageError``."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Failed to {action}: {e}") from e


class DecisionLogStore:
    """
    Append-only log of approver decisions.

    ``decision_seq`` is assigned per (manual, version, approver) as one
    more than the highest sequence ever issued to that approver, which is
    kept in ``manual_approval_sequences`` and survives removals. The
    uniqueness constraints on both tables catch concurrent writers that
    read the same value; the loser re-reads and tries again.
    """

    def __init__(self, db: Session, *, conflict_retries: int = 1):
        """
        Initialize the store.

        Args:
            db: Database session
            conflict_retries: How many times to redo the read-increment-write
                cycle after a sequence collision before giving up
        """
        self.db = db
        self.conflict_retries = conflict_retries

    def _approver_filter(self, model, manual_id: str, version_seq: int, approver: str):
        return and_(
            model.manual_id == manual_id,
            model.version_seq == version_seq,
            model.approver_username == approver,
        )

    def next_decision_seq(self, manual_id: str, version_seq: int, approver: str) -> int:
        """Next decision sequence for an approver on a version.

        Never at or below a sequence issued before, including ones whose
        decisions have since been removed.
        """
        issued = self.db.query(ManualApprovalSequence.last_decision_seq).filter(
            self._approver_filter(ManualApprovalSequence, manual_id, version_seq, approver)
        ).scalar()
        stored = self.db.query(func.max(ManualApproval.decision_seq)).filter(
            self._approver_filter(ManualApproval, manual_id, version_seq, approver)
        ).scalar()
        return max(issued or 0, stored or 0) + 1

    def _raise_high_water_mark(
        self, manual_id: str, version_seq: int, approver: str, decision_seq: int
    ) -> None:
        mark = self.db.query(ManualApprovalSequence).filter(
            self._approver_filter(ManualApprovalSequence, manual_id, version_seq, approver)
        ).with_for_update().first()
        if mark is None:
            self.db.add(ManualApprovalSequence(
                manual_id=manual_id,
                version_seq=version_seq,
                approver_username=approver,
                last_decision_seq=decision_seq,
            ))
        elif mark.last_decision_seq < decision_seq:
            mark.last_decision_seq = decision_seq

    def append(
        self,
        manual_id: str,
        version_seq: int,
        approver: str,
        decision: DecisionKind,
        comment: Optional[str] = None,
    ) -> Decision:
        """
        Record a decision with the next sequence number.

        Returns:
            The stored decision

        Raises:
            ConflictError: If every attempt collided with a concurrent writer
            StorageError: On any other database failure
        """
        decision = DecisionKind(decision)
        attempts = self.conflict_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                decision_seq = self.next_decision_seq(manual_id, version_seq, approver)
                row = ManualApproval(
                    manual_id=manual_id,
                    version_seq=version_seq,
                    approver_username=approver,
                    decision_seq=decision_seq,
                    decision=decision.value,
                    comment=comment,
                    decided_at=utcnow(),
                )
                self._raise_high_water_mark(manual_id, version_seq, approver, decision_seq)
                self.db.add(row)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    f"decision_seq collision for {approver} on {manual_id} v{version_seq} "
                    f"(attempt {attempt}/{attempts})"
                )
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError(f"Failed to record decision: {e}") from e

            logger.info(
                f"Recorded {decision.value} by {approver} on {manual_id} v{version_seq} "
                f"(seq {decision_seq})"
            )
            return Decision.from_row(row)

        raise ConflictError(
            f"Could not assign a decision sequence for {approver} on "
            f"{manual_id} v{version_seq} after {attempts} attempts",
            attempts=attempts,
        )

    def list_for_version(self, manual_id: str, version_seq: int) -> List[Decision]:
        """Decisions on a version, ordered by approver then decision_seq."""
        with storage_errors(self.db, "list decisions"):
            rows = self.db.query(ManualApproval).filter(
                and_(
                    ManualApproval.manual_id == manual_id,
                    ManualApproval.version_seq == version_seq,
                )
            ).order_by(
                ManualApproval.approver_username.asc(),
                ManualApproval.decision_seq.asc(),
            ).all()
        return [Decision.from_row(r) for r in rows]

    def list_all(self) -> List[Decision]:
        """Every decision, ordered by manual, version, approver and decision_seq."""
        with storage_errors(self.db, "list decisions"):
            rows = self.db.query(ManualApproval).order_by(
                ManualApproval.manual_id.asc(),
                ManualApproval.version_seq.asc(),
                ManualApproval.approver_username.asc(),
                ManualApproval.decision_seq.asc(),
            ).all()
        return [Decision.from_row(r) for r in rows]

    def remove(
        self,
        manual_id: str,
        version_seq: int,
        approver: str,
        decision_seq: Optional[int] = None,
    ) -> int:
        """
        Delete one decision, or all of an approver's decisions on a version.

        Remaining sequences are left untouched and the approver's
        high-water mark keeps the highest removed sequence, so it is not
        issued again. Deleting nothing is not an error.

        Returns:
            Number of rows removed
        """
        with storage_errors(self.db, "remove decisions"):
            query = self.db.query(ManualApproval).filter(
                self._approver_filter(ManualApproval, manual_id, version_seq, approver)
            )
            if decision_seq is not None:
                query = query.filter(ManualApproval.decision_seq == decision_seq)

            highest = query.with_entities(func.max(ManualApproval.decision_seq)).scalar()
            if highest is not None:
                self._raise_high_water_mark(manual_id, version_seq, approver, highest)

            removed = query.delete(synchronize_session=False)
            self.db.commit()

        if removed:
            logger.info(
                f"Removed {removed} decision(s) by {approver} on {manual_id} v{version_seq}"
                + (f" (seq {decision_seq})" if decision_seq is not None else "")
            )
        return removed


class ApprovalRuleStore:
    """Per-manual approval thresholds (last write wins)."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, manual_id: str) -> Optional[ApprovalRule]:
        """Stored rule for a manual, or None."""
        with storage_errors(self.db, "load approval rule"):
            row = self.db.query(ManualApprovalRule).filter(
                ManualApprovalRule.manual_id == manual_id
            ).first()
        if not row:
            return None
        return ApprovalRule(manual_id=row.manual_id, required_approvals=row.required_approvals)

    def get_many(self, manual_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        """Thresholds keyed by manual id (all rules when ids is None)."""
        with storage_errors(self.db, "load approval rules"):
            query = self.db.query(ManualApprovalRule)
            if manual_ids is not None:
                ids = list(set(manual_ids))
                if not ids:
                    return {}
                query = query.filter(ManualApprovalRule.manual_id.in_(ids))
            return {r.manual_id: r.required_approvals for r in query.all()}

    def upsert(self, manual_id: str, required_approvals: int) -> ApprovalRule:
        """
        Create or replace the rule of a manual.

        Raises:
            ValueError: If required_approvals is negative
            ConflictError: If concurrent first inserts keep colliding
            StorageError: On any other database failure
        """
        if required_approvals < 0:
            raise ValueError(f"required_approvals must be >= 0, got {required_approvals}")

        for attempt in (1, 2):
            try:
                row = self.db.query(ManualApprovalRule).filter(
                    ManualApprovalRule.manual_id == manual_id
                ).with_for_update().first()
                if row:
                    row.required_approvals = required_approvals
                    row.updated_at = utcnow()
                else:
                    self.db.add(ManualApprovalRule(
                        manual_id=manual_id,
                        required_approvals=required_approvals,
                    ))
                self.db.commit()
            except IntegrityError:
                # Another writer inserted first; retry as an update
                self.db.rollback()
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError(f"Failed to save approval rule: {e}") from e

            logger.info(f"Approval rule for {manual_id} set to {required_approvals}")
            return ApprovalRule(manual_id=manual_id, required_approvals=required_approvals)

        raise ConflictError(f"Could not save approval rule for {manual_id}", attempts=2)
