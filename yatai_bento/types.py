"""Shared type definitions for yatai_bento.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class BuildStatus(str, Enum):
    """Status of the image build for a Bento version."""

    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"


class UploadStatus(str, Enum):
    """Status of the archive upload for a Bento version."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"


class ProvisionOutcome(str, Enum):
    """Outcome of a single idempotent provisioning step."""

    CREATED = "created"
    ALREADY_PRESENT = "already_present"
    FAILED = "failed"


@dataclass(frozen=True)
class StorageConfig:
    """Resolved object store settings for one organization.

    Attributes:
        bucket_name: Bucket receiving Bento archives.
        region: Bucket region, also handed to the build pod.
        access_key_id: Access key used for presigning and by the builder.
        secret_access_key: Secret key paired with access_key_id.
        endpoint_url: Custom S3-compatible endpoint (None = AWS default).
    """

    bucket_name: str
    region: str
    access_key_id: str
    secret_access_key: str
    endpoint_url: str | None = None


__all__ = [
    "BuildStatus",
    "ProvisionOutcome",
    "StorageConfig",
    "UploadStatus",
]
