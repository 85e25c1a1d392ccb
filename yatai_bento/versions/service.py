"""Bento version service.

This module provides the high-level Bento version API:
- create_version(): Register a version and return a presigned upload URL
- issue_upload_url(): Re-issue the URL of a version still awaiting upload
- update_version(): Apply status changes; an upload reaching success
  triggers the build provisioner
- Name helpers for object keys, image references and builder pods

Registration is two-phase. The version row and the bucket check commit
together; the URL is signed afterwards. If signing fails the row stays
pending and issue_upload_url() can repair it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from yatai_bento import naming
from yatai_bento.builds.provisioner import BuildProvisioner, ProvisioningReport
from yatai_bento.config import get_settings
from yatai_bento.db import transaction
from yatai_bento.organizations.models import Organization
from yatai_bento.organizations.service import (
    get_organization,
    require_registry_uri,
    require_storage_config,
)
from yatai_bento.storage.gateway import ObjectStoreError, ObjectStoreGateway
from yatai_bento.types import BuildStatus, StorageConfig, UploadStatus
from yatai_bento.versions.loaders import (
    BentoNotFoundError,
    BentoVersionNotFoundError,
    get_bento,
    get_version,
    get_version_by_version,
    list_latest_by_bento_ids,
)
from yatai_bento.versions.models import Bento, BentoVersion
from yatai_bento.versions.state import (
    InvalidStatusTransitionError,
    check_build_transition,
    check_upload_transition,
)

if TYPE_CHECKING:
    from yatai_bento.config import Settings

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


class BentoVersionExistsError(Exception):
    """Raised when registering a version string that already exists."""

    def __init__(
        self, bento_id: int, version: str, code: str = "bento_version_exists"
    ) -> None:
        super().__init__(f"Bento {bento_id} already has version {version}")
        self.bento_id = bento_id
        self.version = version
        self.code = code


class UploadUrlError(Exception):
    """Raised when a registered version could not get an upload URL.

    The version row is committed and still pending; call
    issue_upload_url() to retry.
    """

    def __init__(
        self, version_id: int, message: str, code: str = "upload_url_failed"
    ) -> None:
        super().__init__(f"Bento version {version_id} registered without URL: {message}")
        self.version_id = version_id
        self.code = code


class UploadNotPendingError(Exception):
    """Raised when an upload URL is requested for a version past pending."""

    def __init__(
        self, version_id: int, upload_status: str, code: str = "upload_not_pending"
    ) -> None:
        super().__init__(
            f"Bento version {version_id} upload is {upload_status}, not pending"
        )
        self.version_id = version_id
        self.upload_status = upload_status
        self.code = code


class CreateBentoVersionOption(BaseModel):
    """Input for registering a Bento version."""

    model_config = ConfigDict(extra="forbid")

    creator_id: int = Field(ge=0, description="ID of the registering user")
    bento_id: int = Field(ge=1, description="Owning Bento ID")
    version: str = Field(min_length=1, max_length=255, description="Version string")
    description: str | None = Field(default=None)
    build_at: datetime | None = Field(
        default=None, description="When the Bento was built (defaults to now)"
    )
    manifest: dict[str, Any] | None = Field(default=None)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version contains only key- and tag-safe characters."""
        if not VERSION_PATTERN.match(v):
            raise ValueError(
                "version must start with a letter or digit and contain only "
                "letters, digits, '_', '.' and '-'"
            )
        return v


class UpdateBentoVersionOption(BaseModel):
    """Sparse status update for a Bento version.

    Only fields the caller sets are applied. Timestamps and the reason may
    be explicitly set to None to clear them; a None status is ignored.
    """

    model_config = ConfigDict(extra="forbid")

    build_status: BuildStatus | None = None
    upload_status: UploadStatus | None = None
    upload_started_at: datetime | None = None
    upload_finished_at: datetime | None = None
    upload_finished_reason: str | None = None

    def changes(self) -> dict[str, Any]:
        """Return the column values this option sets."""
        data = self.model_dump(exclude_unset=True)
        for key in ("build_status", "upload_status"):
            if key in data:
                if data[key] is None:
                    del data[key]
                else:
                    data[key] = data[key].value
        return data


def version_to_dict(version: BentoVersion) -> dict[str, Any]:
    """Convert a Bento version to a dictionary for JSON output."""

    def _iso(value: datetime | None) -> str | None:
        return value.isoformat() if value else None

    return {
        "id": version.id,
        "bento_id": version.bento_id,
        "creator_id": version.creator_id,
        "version": version.version,
        "description": version.description,
        "build_status": version.build_status,
        "upload_status": version.upload_status,
        "build_at": _iso(version.build_at),
        "upload_started_at": _iso(version.upload_started_at),
        "upload_finished_at": _iso(version.upload_finished_at),
        "upload_finished_reason": version.upload_finished_reason,
        "manifest": version.manifest,
        "created_at": _iso(version.created_at),
    }


def _load_owner(session: Session, version: BentoVersion) -> tuple[Bento, Organization]:
    bento = get_bento(session, version.bento_id)
    org = get_organization(session, bento.organization_id)
    return bento, org


def _upload_target(
    org: Organization, bento: Bento, version: BentoVersion, settings: Settings
) -> tuple[StorageConfig, str]:
    storage = require_storage_config(org, settings.s3_endpoint_url)
    object_name = naming.s3_object_name(
        org.name, bento.name, version.version, settings.object_collection
    )
    return storage, object_name


def get_s3_object_name(
    session: Session, version: BentoVersion, settings: Settings | None = None
) -> str:
    """Return the object key a version's archive is uploaded to."""
    settings = settings or get_settings()
    bento, org = _load_owner(session, version)
    return naming.s3_object_name(
        org.name, bento.name, version.version, settings.object_collection
    )


def get_image_name(
    session: Session, version: BentoVersion, settings: Settings | None = None
) -> str:
    """Return the image reference a version is built into.

    Raises:
        OrganizationConfigError: If the organization has no registry.
    """
    settings = settings or get_settings()
    bento, org = _load_owner(session, version)
    return naming.image_name(
        require_registry_uri(org),
        org.name,
        bento.name,
        version.version,
        settings.image_tag_prefix,
    )


def get_image_builder_kube_name(
    session: Session, version: BentoVersion, settings: Settings | None = None
) -> str:
    """Return the name of the builder pod for a version."""
    settings = settings or get_settings()
    bento, org = _load_owner(session, version)
    return naming.image_builder_kube_name(
        org.name, bento.name, version.version, settings.kube_name_max_length
    )


def create_version(
    session: Session,
    opt: CreateBentoVersionOption,
    gateway: ObjectStoreGateway | None = None,
    settings: Settings | None = None,
) -> tuple[BentoVersion, str]:
    """Register a Bento version and return its upload URL.

    Phase one commits the pending version once the organization's storage
    config is valid and its bucket exists; any failure there rolls back and
    leaves no row. Phase two signs the upload URL.

    Args:
        session: Database session.
        opt: Registration input.
        gateway: Object store gateway.
        settings: Application settings.

    Returns:
        Tuple of (BentoVersion, presigned upload URL).

    Raises:
        BentoNotFoundError: If the Bento does not exist.
        BentoVersionExistsError: If the version string is taken.
        OrganizationConfigError: If storage config is missing.
        ObjectStoreError: If the bucket cannot be ensured.
        UploadUrlError: If the committed version could not get a URL.
    """
    settings = settings or get_settings()
    gateway = gateway or ObjectStoreGateway()

    with transaction(session):
        bento = get_bento(session, opt.bento_id)
        version = BentoVersion(
            creator_id=opt.creator_id,
            bento_id=opt.bento_id,
            version=opt.version,
            description=opt.description,
            build_status=BuildStatus.PENDING.value,
            upload_status=UploadStatus.PENDING.value,
            build_at=opt.build_at or datetime.now(),
            manifest=opt.manifest,
        )
        session.add(version)
        try:
            session.flush()
        except IntegrityError as e:
            raise BentoVersionExistsError(opt.bento_id, opt.version) from e

        org = get_organization(session, bento.organization_id)
        storage, object_name = _upload_target(org, bento, version, settings)
        gateway.ensure_bucket(storage)

    logger.info(
        "Registered %s/%s:%s as version %d",
        org.name,
        bento.name,
        version.version,
        version.id,
    )

    try:
        url = gateway.presign_upload(storage, object_name)
    except ObjectStoreError as e:
        logger.error("Upload URL for version %d failed: %s", version.id, e)
        raise UploadUrlError(version.id, str(e)) from e

    return version, url


def issue_upload_url(
    session: Session,
    version: BentoVersion,
    gateway: ObjectStoreGateway | None = None,
    settings: Settings | None = None,
) -> str:
    """Issue a fresh upload URL for a version that has not been uploaded.

    Args:
        session: Database session.
        version: BentoVersion with upload status pending.
        gateway: Object store gateway.
        settings: Application settings.

    Returns:
        Presigned upload URL.

    Raises:
        UploadNotPendingError: If the upload already started or finished.
        OrganizationConfigError: If storage config is missing.
        ObjectStoreError: If the object store rejects the request.
    """
    if version.upload_status != UploadStatus.PENDING.value:
        raise UploadNotPendingError(version.id, version.upload_status)

    settings = settings or get_settings()
    gateway = gateway or ObjectStoreGateway()

    bento, org = _load_owner(session, version)
    storage, object_name = _upload_target(org, bento, version, settings)
    gateway.ensure_bucket(storage)
    url = gateway.presign_upload(storage, object_name)
    logger.info("Re-issued upload URL for version %d", version.id)
    return url


def update_version(
    session: Session,
    version: BentoVersion,
    opt: UpdateBentoVersionOption,
    provisioner: BuildProvisioner | None = None,
    settings: Settings | None = None,
) -> tuple[BentoVersion, ProvisioningReport | None]:
    """Apply a sparse status update and provision builds on upload success.

    All changes are written in one transaction; the in-memory version only
    reflects them once the commit succeeded. When upload_status is set to
    success the build is provisioned after the commit, so a provisioning
    failure leaves the upload recorded as successful.

    Args:
        session: Database session.
        version: BentoVersion to update.
        opt: Fields to change.
        provisioner: Build provisioner (created from settings if needed).
        settings: Application settings.

    Returns:
        Tuple of (BentoVersion, ProvisioningReport or None).

    Raises:
        InvalidStatusTransitionError: If a status change is not allowed.
        BentoVersionNotFoundError: If the row no longer exists.
        OrganizationConfigError, ClusterNotFoundError, ClusterAccessError,
        ProvisioningError: From provisioning.
    """
    changes = opt.changes()
    if not changes:
        return version, None

    if "build_status" in changes:
        check_build_transition(version.build_status, changes["build_status"])
    if "upload_status" in changes:
        check_upload_transition(version.upload_status, changes["upload_status"])

    with transaction(session):
        stmt = (
            update(BentoVersion)
            .where(BentoVersion.id == version.id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        if result.rowcount == 0:
            raise BentoVersionNotFoundError(version.id)

    for key, value in changes.items():
        set_committed_value(version, key, value)
    logger.info("Updated version %d: %s", version.id, ", ".join(sorted(changes)))

    if "upload_status" not in changes or not version.is_uploaded():
        return version, None

    if provisioner is None:
        provisioner = BuildProvisioner.from_settings(settings)
    report = provisioner.provision(session, version)
    return version, report


__all__ = [
    "BentoNotFoundError",
    "BentoVersionExistsError",
    "BentoVersionNotFoundError",
    "CreateBentoVersionOption",
    "InvalidStatusTransitionError",
    "UpdateBentoVersionOption",
    "UploadNotPendingError",
    "UploadUrlError",
    "create_version",
    "get_image_builder_kube_name",
    "get_image_name",
    "get_s3_object_name",
    "get_version",
    "get_version_by_version",
    "issue_upload_url",
    "list_latest_by_bento_ids",
    "update_version",
    "version_to_dict",
]
