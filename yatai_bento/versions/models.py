"""Bento and BentoVersion ORM models.

A Bento is a named packaged model owned by an organization; a
BentoVersion is one immutable, uploadable and buildable snapshot of it.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from yatai_bento.db import Base
from yatai_bento.types import BuildStatus, UploadStatus

if TYPE_CHECKING:
    from yatai_bento.organizations.models import Organization


class Bento(Base):
    """ORM model for Bentos.

    Attributes:
        id: Primary key.
        organization_id: Foreign key to Organization.
        name: Bento name, unique within the organization.
        description: Optional description.
        created_at: Timestamp of creation.
    """

    __tablename__ = "bentos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="bentos"
    )
    versions: Mapped[list["BentoVersion"]] = relationship(
        "BentoVersion", back_populates="bento", lazy="dynamic"
    )

    __table_args__ = (
        Index("ix_bentos_organization_name", "organization_id", "name", unique=True),
    )

    def __repr__(self) -> str:
        """Return string representation of Bento."""
        return (
            f"<Bento(id={self.id}, organization_id={self.organization_id}, "
            f"name='{self.name}')>"
        )


class BentoVersion(Base):
    """ORM model for Bento versions.

    Build and upload status are two independent state machines stored on
    the same row; see versions/state.py for the legal transitions.

    Attributes:
        id: Primary key.
        bento_id: Foreign key to Bento.
        creator_id: ID of the user who registered the version.
        version: Version string, unique within the Bento.
        description: Optional description.
        build_status: pending, building, success or failed.
        upload_status: pending, uploading, success or failed.
        build_at: Timestamp when the Bento was built by its author.
        upload_started_at: Timestamp when the upload started.
        upload_finished_at: Timestamp when the upload reached a terminal state.
        upload_finished_reason: Free-text reason for the terminal upload state.
        manifest: Opaque JSON describing runtime requirements.
        created_at: Timestamp of registration.
    """

    __tablename__ = "bento_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    bento_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bentos.id"), nullable=False, index=True
    )
    creator_id: Mapped[int] = mapped_column(Integer, nullable=False)

    version: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status
    build_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.PENDING.value, index=True
    )
    upload_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UploadStatus.PENDING.value, index=True
    )

    # Timing
    build_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    upload_started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    upload_finished_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    upload_finished_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    manifest: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    bento: Mapped["Bento"] = relationship("Bento", back_populates="versions")

    __table_args__ = (
        Index("ix_bento_versions_bento_version", "bento_id", "version", unique=True),
    )

    def __repr__(self) -> str:
        """Return string representation of BentoVersion."""
        return (
            f"<BentoVersion(id={self.id}, bento_id={self.bento_id}, "
            f"version='{self.version}', build_status='{self.build_status}', "
            f"upload_status='{self.upload_status}')>"
        )

    def is_uploaded(self) -> bool:
        """Check if the archive upload succeeded."""
        return self.upload_status == UploadStatus.SUCCESS.value


__all__ = ["Bento", "BentoVersion"]
