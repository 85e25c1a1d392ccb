"""Explicit loaders for Bentos and Bento versions.

Related records are always fetched through these functions and passed
along by the caller; nothing is cached on the ORM instances.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from yatai_bento.versions.models import Bento, BentoVersion


class BentoNotFoundError(Exception):
    """Raised when a Bento is not found."""

    def __init__(self, bento_id: int, code: str = "bento_not_found") -> None:
        super().__init__(f"Bento not found: {bento_id}")
        self.bento_id = bento_id
        self.code = code


class BentoVersionNotFoundError(Exception):
    """Raised when a Bento version is not found."""

    def __init__(
        self, identifier: int | str, code: str = "bento_version_not_found"
    ) -> None:
        super().__init__(f"Bento version not found: {identifier}")
        self.identifier = identifier
        self.code = code


def get_bento(session: Session, bento_id: int) -> Bento:
    """Get a Bento by ID.

    Raises:
        BentoNotFoundError: If the Bento does not exist.
    """
    bento = session.get(Bento, bento_id)
    if bento is None:
        raise BentoNotFoundError(bento_id)
    return bento


def get_version(session: Session, version_id: int) -> BentoVersion:
    """Get a Bento version by ID.

    Raises:
        BentoVersionNotFoundError: If the version does not exist.
    """
    version = session.get(BentoVersion, version_id)
    if version is None:
        raise BentoVersionNotFoundError(version_id)
    return version


def get_version_by_version(
    session: Session, bento_id: int, version: str
) -> BentoVersion:
    """Get a Bento version by its version string.

    Args:
        session: Database session.
        bento_id: Owning Bento ID.
        version: Version string.

    Returns:
        BentoVersion instance.

    Raises:
        BentoVersionNotFoundError: If the version does not exist.
    """
    stmt = select(BentoVersion).where(
        BentoVersion.bento_id == bento_id,
        BentoVersion.version == version,
    )
    result = session.execute(stmt).scalar_one_or_none()
    if result is None:
        raise BentoVersionNotFoundError(version)
    return result


def list_latest_by_bento_ids(
    session: Session, bento_ids: Sequence[int]
) -> list[BentoVersion]:
    """Return the newest version (highest ID) of each given Bento.

    Bentos without versions are absent from the result.

    Args:
        session: Database session.
        bento_ids: Bento IDs to look up.

    Returns:
        One BentoVersion per Bento that has versions, ordered by Bento ID.
    """
    if not bento_ids:
        return []

    latest_ids = (
        select(func.max(BentoVersion.id))
        .where(BentoVersion.bento_id.in_(list(bento_ids)))
        .group_by(BentoVersion.bento_id)
    )
    stmt = (
        select(BentoVersion)
        .where(BentoVersion.id.in_(latest_ids))
        .order_by(BentoVersion.bento_id.asc())
    )
    return list(session.execute(stmt).scalars().all())


__all__ = [
    "BentoNotFoundError",
    "BentoVersionNotFoundError",
    "get_bento",
    "get_version",
    "get_version_by_version",
    "list_latest_by_bento_ids",
]
