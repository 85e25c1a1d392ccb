"""Organization loaders and configuration resolution.

This module provides explicit loader functions for organizations and
their clusters, and turns an organization's stored configuration into
the settings the object store gateway and build provisioner need.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from yatai_bento.organizations.models import Cluster, Organization
from yatai_bento.organizations.schema import AWSConfigSchema, OrganizationConfigSchema
from yatai_bento.types import StorageConfig

logger = logging.getLogger(__name__)


class OrganizationNotFoundError(Exception):
    """Raised when an organization is not found."""

    def __init__(self, organization_id: int, code: str = "organization_not_found") -> None:
        super().__init__(f"Organization not found: {organization_id}")
        self.organization_id = organization_id
        self.code = code


class ClusterNotFoundError(Exception):
    """Raised when an organization has no usable cluster."""

    def __init__(self, organization_name: str, code: str = "cluster_not_found") -> None:
        super().__init__(f"Organization {organization_name} has no cluster")
        self.organization_name = organization_name
        self.code = code


class OrganizationConfigError(Exception):
    """Raised when an organization lacks required storage or registry config.

    This is a precondition failure; retrying without changing the
    organization's configuration cannot succeed.
    """

    def __init__(
        self,
        organization_name: str,
        message: str,
        code: str = "organization_config_missing",
    ) -> None:
        super().__init__(f"Organization {organization_name}: {message}")
        self.organization_name = organization_name
        self.code = code


def get_organization(session: Session, organization_id: int) -> Organization:
    """Get an organization by ID.

    Raises:
        OrganizationNotFoundError: If the organization does not exist.
    """
    org = session.get(Organization, organization_id)
    if org is None:
        raise OrganizationNotFoundError(organization_id)
    return org


def get_major_cluster(session: Session, org: Organization) -> Cluster:
    """Get the cluster that hosts build workloads for an organization.

    The major cluster is the organization's oldest cluster.

    Args:
        session: Database session.
        org: Organization ORM instance.

    Returns:
        Cluster instance.

    Raises:
        ClusterNotFoundError: If the organization has no cluster.
    """
    stmt = (
        select(Cluster)
        .where(Cluster.organization_id == org.id)
        .order_by(Cluster.id.asc())
        .limit(1)
    )
    cluster = session.execute(stmt).scalar_one_or_none()
    if cluster is None:
        raise ClusterNotFoundError(org.name)
    return cluster


def get_organization_config(org: Organization) -> OrganizationConfigSchema:
    """Validate and return an organization's configuration.

    Raises:
        OrganizationConfigError: If no configuration is stored or it is invalid.
    """
    if not org.config:
        raise OrganizationConfigError(org.name, "no configuration")
    try:
        return OrganizationConfigSchema.model_validate(org.config)
    except ValidationError as e:
        logger.warning("Organization %s has invalid configuration", org.name)
        raise OrganizationConfigError(org.name, f"invalid configuration: {e}") from e


def _require_aws(org: Organization) -> AWSConfigSchema:
    config = get_organization_config(org)
    if config.aws is None:
        raise OrganizationConfigError(org.name, "no aws configuration")
    return config.aws


def require_storage_config(
    org: Organization,
    default_endpoint_url: str | None = None,
) -> StorageConfig:
    """Resolve the object store settings of an organization.

    Args:
        org: Organization ORM instance.
        default_endpoint_url: Endpoint used when the organization sets none.

    Returns:
        StorageConfig for the gateway and the builder pod.

    Raises:
        OrganizationConfigError: If S3 settings or credentials are missing.
    """
    aws = _require_aws(org)
    if aws.s3 is None:
        raise OrganizationConfigError(org.name, "no aws s3 storage set up")
    if not aws.access_key_id or not aws.secret_access_key:
        raise OrganizationConfigError(org.name, "no aws credentials set up")

    return StorageConfig(
        bucket_name=aws.s3.bucket_name,
        region=aws.s3.region,
        access_key_id=aws.access_key_id,
        secret_access_key=aws.secret_access_key,
        endpoint_url=aws.s3.endpoint_url or default_endpoint_url,
    )


def require_registry_uri(org: Organization) -> str:
    """Return the container registry URI of an organization.

    Raises:
        OrganizationConfigError: If no ECR repository is configured.
    """
    aws = _require_aws(org)
    if aws.ecr is None:
        raise OrganizationConfigError(org.name, "no ecr registry set up")
    return aws.ecr.repository_uri


__all__ = [
    "ClusterNotFoundError",
    "OrganizationConfigError",
    "OrganizationNotFoundError",
    "get_major_cluster",
    "get_organization",
    "get_organization_config",
    "require_registry_uri",
    "require_storage_config",
]
