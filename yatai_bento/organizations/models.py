"""Organization and Cluster ORM models.

Organizations own Bentos and carry the object store and registry
configuration; clusters carry the credentials used to reach Kubernetes.
Both are read-only to this package.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from yatai_bento.db import Base

if TYPE_CHECKING:
    from yatai_bento.versions.models import Bento


class Organization(Base):
    """ORM model for organizations.

    Attributes:
        id: Primary key.
        name: Unique organization name, used in object keys and image tags.
        config: JSON object validated by OrganizationConfigSchema.
        created_at: Timestamp of creation.
    """

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    clusters: Mapped[list["Cluster"]] = relationship(
        "Cluster", back_populates="organization", order_by="Cluster.id"
    )
    bentos: Mapped[list["Bento"]] = relationship(
        "Bento", back_populates="organization", lazy="dynamic"
    )

    def __repr__(self) -> str:
        """Return string representation of Organization."""
        return f"<Organization(id={self.id}, name='{self.name}')>"


class Cluster(Base):
    """ORM model for Kubernetes clusters of an organization.

    Attributes:
        id: Primary key.
        organization_id: Foreign key to Organization.
        name: Cluster name, unique within the organization.
        description: Optional description.
        kube_config: Serialized kubeconfig; empty means use ambient identity.
        created_at: Timestamp of creation.
    """

    __tablename__ = "clusters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(63), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    kube_config: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="clusters"
    )

    __table_args__ = (
        Index("ix_clusters_organization_name", "organization_id", "name", unique=True),
    )

    def __repr__(self) -> str:
        """Return string representation of Cluster."""
        return (
            f"<Cluster(id={self.id}, organization_id={self.organization_id}, "
            f"name='{self.name}')>"
        )

    def uses_ambient_identity(self) -> bool:
        """Check whether no explicit kubeconfig is stored."""
        return not (self.kube_config or "").strip()


__all__ = ["Cluster", "Organization"]
