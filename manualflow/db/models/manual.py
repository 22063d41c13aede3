"""Manual (document) and version models.

Versions are immutable snapshots; the manual row only tracks which
sequence number was assigned last.
"""

from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Integer, BigInteger, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from manualflow.db.base import Base, utcnow


class Manual(Base):
    """
    A controlled document with sequentially numbered versions.

    Created on first version submission; ``latest_version_seq`` only
    changes when a new version is created.
    """
    __tablename__ = "manuals"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, index=True)
    owner_username = Column(String(255), nullable=False, index=True)

    # Lifecycle state (draft, published, archived)
    state = Column(String(50), nullable=False, default="draft")

    latest_version_seq = Column(Integer, nullable=False, default=0)
    published_version_seq = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)

    versions = relationship(
        "ManualVersion",
        back_populates="manual",
        order_by="ManualVersion.version_seq",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Manual {self.id} v{self.latest_version_seq}>"


class ManualVersion(Base):
    """
    Immutable snapshot of a manual's content.

    Only metadata is kept here; the content itself lives in external
    storage referenced by ``object_key``.
    """
    __tablename__ = "manual_versions"
    __table_args__ = (
        UniqueConstraint("manual_id", "version_seq", name="uq_manual_versions_seq"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    manual_id = Column(String(64), ForeignKey("manuals.id", ondelete="CASCADE"), nullable=False, index=True)
    version_seq = Column(Integer, nullable=False)

    format = Column(String(20), nullable=False, default="docx")
    object_key = Column(Text, nullable=True)
    checksum_sha256 = Column(String(64), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    changelog = Column(Text, nullable=True)

    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    manual = relationship("Manual", back_populates="versions")

    def __repr__(self) -> str:
        return f"<ManualVersion {self.manual_id} v{self.version_seq}>"
