"""Bento version endpoints.

- POST /bentos/{bento_id}/versions - Register a version, get an upload URL
- GET /bentos/{bento_id}/versions/{version} - Get a version by its string
- GET /versions/latest - Newest version of each given Bento
- GET /versions/{id} - Get a version by ID
- PATCH /versions/{id} - Update statuses (provisions the build on upload success)
- POST /versions/{id}/upload-url - Re-issue the upload URL of a pending version
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from yatai_bento.builds.provisioner import BuildProvisioner, ProvisioningError
from yatai_bento.clusters.resolver import ClusterAccessError
from yatai_bento.organizations.service import (
    ClusterNotFoundError,
    OrganizationConfigError,
    OrganizationNotFoundError,
)
from yatai_bento.storage.gateway import ObjectStoreError, ObjectStoreGateway
from yatai_bento.versions.service import (
    BentoNotFoundError,
    BentoVersionExistsError,
    BentoVersionNotFoundError,
    CreateBentoVersionOption,
    InvalidStatusTransitionError,
    UpdateBentoVersionOption,
    UploadNotPendingError,
    UploadUrlError,
    create_version,
    get_version,
    get_version_by_version,
    issue_upload_url,
    list_latest_by_bento_ids,
    update_version,
    version_to_dict,
)
from web.deps import get_db, get_gateway, get_provisioner

router = APIRouter()

_STATUS_BY_ERROR: list[tuple[tuple[type[Exception], ...], int]] = [
    (
        (BentoNotFoundError, BentoVersionNotFoundError, OrganizationNotFoundError),
        http_status.HTTP_404_NOT_FOUND,
    ),
    (
        (BentoVersionExistsError, InvalidStatusTransitionError, UploadNotPendingError),
        http_status.HTTP_409_CONFLICT,
    ),
    (
        (OrganizationConfigError, ClusterNotFoundError),
        http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    ),
    (
        (ObjectStoreError, ClusterAccessError, ProvisioningError, UploadUrlError),
        http_status.HTTP_502_BAD_GATEWAY,
    ),
]


class CreateVersionRequest(BaseModel):
    """Request body for registering a version."""

    creator_id: int
    version: str
    description: str | None = None
    build_at: datetime | None = None
    manifest: dict[str, Any] | None = None


def _to_http(exc: Exception) -> HTTPException:
    """Map a service error to an HTTPException with a code/message detail."""
    detail: dict[str, Any] = {
        "code": getattr(exc, "code", "internal_error"),
        "message": str(exc),
    }
    if isinstance(exc, UploadUrlError):
        detail["version_id"] = exc.version_id
    if isinstance(exc, ProvisioningError):
        detail["provisioning"] = exc.report.to_dict()

    for error_types, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_types):
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(
        status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail
    )


_SERVICE_ERRORS = tuple(t for types, _ in _STATUS_BY_ERROR for t in types)


@router.post("/bentos/{bento_id}/versions", status_code=http_status.HTTP_201_CREATED)
def create_version_endpoint(
    bento_id: int,
    request: CreateVersionRequest,
    db: Session = Depends(get_db),
    gateway: ObjectStoreGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Register a Bento version.

    Returns:
        The pending version and a presigned upload URL.
    """
    try:
        opt = CreateBentoVersionOption(bento_id=bento_id, **request.model_dump())
    except ValidationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "validation_error", "message": str(e)},
        ) from None

    try:
        version, url = create_version(db, opt, gateway=gateway)
    except _SERVICE_ERRORS as e:
        raise _to_http(e) from None

    return {"version": version_to_dict(version), "upload_url": url}


@router.get("/bentos/{bento_id}/versions/{version}")
def get_version_by_version_endpoint(
    bento_id: int,
    version: str,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a Bento version by its version string."""
    try:
        record = get_version_by_version(db, bento_id, version)
    except BentoVersionNotFoundError as e:
        raise _to_http(e) from None
    return version_to_dict(record)


@router.get("/versions/latest")
def list_latest_endpoint(
    bento_id: list[int] = Query(default=[], description="Bento IDs"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List the newest version of each given Bento.

    Bentos without versions are omitted.
    """
    return [version_to_dict(v) for v in list_latest_by_bento_ids(db, bento_id)]


@router.get("/versions/{version_id}")
def get_version_endpoint(
    version_id: int,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a Bento version by ID."""
    try:
        version = get_version(db, version_id)
    except BentoVersionNotFoundError as e:
        raise _to_http(e) from None
    return version_to_dict(version)


@router.patch("/versions/{version_id}")
def update_version_endpoint(
    version_id: int,
    request: UpdateBentoVersionOption,
    db: Session = Depends(get_db),
    provisioner: BuildProvisioner = Depends(get_provisioner),
) -> dict[str, Any]:
    """Apply a sparse status update.

    Setting upload_status to success provisions the image build. If that
    fails the status change is kept and the error carries the report.

    Returns:
        The updated version and the provisioning report, if any.
    """
    try:
        version = get_version(db, version_id)
        version, report = update_version(db, version, request, provisioner=provisioner)
    except _SERVICE_ERRORS as e:
        raise _to_http(e) from None

    return {
        "version": version_to_dict(version),
        "provisioning": report.to_dict() if report else None,
    }


@router.post("/versions/{version_id}/upload-url")
def issue_upload_url_endpoint(
    version_id: int,
    db: Session = Depends(get_db),
    gateway: ObjectStoreGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Re-issue the upload URL of a version whose upload is still pending."""
    try:
        version = get_version(db, version_id)
        url = issue_upload_url(db, version, gateway=gateway)
    except _SERVICE_ERRORS as e:
        raise _to_http(e) from None
    return {"version_id": version.id, "upload_url": url}
