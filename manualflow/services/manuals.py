"""Manual and version registry.

Confirms that manual versions exist, supplies manual metadata (title,
owner) to the workflow and notification code, and assigns version
sequence numbers when new versions are submitted.
"""

import hashlib
import logging
from typing import List, Optional

from slugify import slugify
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from manualflow.core.approval.exceptions import ConflictError, StorageError
from manualflow.core.approval.store import storage_errors
from manualflow.db.base import utcnow
from manualflow.db.models import Manual, ManualVersion

logger = logging.getLogger(__name__)


def content_digest(content: bytes) -> tuple[str, int]:
    h = hashlib.sha256()
    h.update(content)
    return (h.hexdigest(), len(content))


class ManualRegistry:
    """SQL-backed registry of manuals and their versions."""

    def __init__(self, db: Session):
        self.db = db

    def get_manual(self, manual_id: str) -> Optional[Manual]:
        with storage_errors(self.db, "load manual"):
            return self.db.query(Manual).filter(Manual.id == manual_id).first()

    def list_manuals(self) -> List[Manual]:
        """All manuals, most recently updated first."""
        with storage_errors(self.db, "list manuals"):
            return self.db.query(Manual).order_by(Manual.updated_at.desc(), Manual.id.asc()).all()

    def get_version(self, manual_id: str, version_seq: int) -> Optional[ManualVersion]:
        with storage_errors(self.db, "load manual version"):
            return self.db.query(ManualVersion).filter(
                and_(
                    ManualVersion.manual_id == manual_id,
                    ManualVersion.version_seq == version_seq,
                )
            ).first()

    def version_exists(self, manual_id: str, version_seq: int) -> bool:
        return self.get_version(manual_id, version_seq) is not None

    def list_versions(self, manual_id: str) -> List[ManualVersion]:
        with storage_errors(self.db, "list manual versions"):
            return self.db.query(ManualVersion).filter(
                ManualVersion.manual_id == manual_id
            ).order_by(ManualVersion.version_seq.asc()).all()

    def submit_version(
        self,
        manual_id: str,
        *,
        content: bytes,
        created_by: str,
        title: Optional[str] = None,
        owner_username: Optional[str] = None,
        format: str = "docx",
        changelog: Optional[str] = None,
        object_key: Optional[str] = None,
    ) -> ManualVersion:
        """
        Register a new immutable version of a manual.

        The manual is created on its first submission (title and owner
        default to the manual id and the submitter). Each call assigns
        ``latest_version_seq + 1``.

        Args:
            manual_id: Manual identifier
            content: Version content; only its checksum and size are kept
            created_by: Username of the author of this version
            title: Manual title, used when the manual is created
            owner_username: Manual owner, used when the manual is created
            format: File format of the content
            changelog: Free-text change description
            object_key: Pointer into external content storage

        Returns:
            The created version

        Raises:
            ConflictError: If concurrent submissions keep colliding
            StorageError: On any other database failure
        """
        checksum, size = content_digest(content)

        for attempt in (1, 2):
            try:
                manual = self.db.query(Manual).filter(
                    Manual.id == manual_id
                ).with_for_update().first()
                if manual is None:
                    manual = Manual(
                        id=manual_id,
                        title=title or manual_id,
                        slug=slugify(title or manual_id) or manual_id,
                        owner_username=owner_username or created_by,
                        latest_version_seq=0,
                    )
                    self.db.add(manual)

                version_seq = (manual.latest_version_seq or 0) + 1
                version = ManualVersion(
                    manual_id=manual_id,
                    version_seq=version_seq,
                    format=format,
                    object_key=object_key,
                    checksum_sha256=checksum,
                    size_bytes=size,
                    changelog=changelog,
                    created_by=created_by,
                    created_at=utcnow(),
                )
                manual.latest_version_seq = version_seq
                manual.updated_at = utcnow()
                self.db.add(version)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(f"Version sequence collision on {manual_id} (attempt {attempt}/2)")
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError(f"Failed to submit manual version: {e}") from e

            logger.info(f"Submitted {manual_id} v{version_seq} by {created_by} ({size} bytes)")
            return version

        raise ConflictError(f"Could not assign a version sequence for {manual_id}", attempts=2)
