"""Pydantic models for organization configuration.

The organization `config` column is stored as JSON; these models validate
it before the object store or registry settings are used.
"""

from pydantic import BaseModel, ConfigDict, Field


class S3ConfigSchema(BaseModel):
    """Object store bucket settings.

    Attributes:
        bucket_name: Bucket receiving Bento archives.
        region: Bucket region.
        endpoint_url: Optional S3-compatible endpoint.
    """

    model_config = ConfigDict(extra="ignore")

    bucket_name: str = Field(min_length=3, description="Bucket name")
    region: str = Field(min_length=1, description="Bucket region")
    endpoint_url: str | None = Field(default=None, description="Custom endpoint")


class ECRConfigSchema(BaseModel):
    """Container registry settings."""

    model_config = ConfigDict(extra="ignore")

    repository_uri: str = Field(min_length=1, description="Registry repository URI")


class AWSConfigSchema(BaseModel):
    """AWS credentials plus the S3 and ECR sections."""

    model_config = ConfigDict(extra="ignore")

    access_key_id: str = Field(default="", description="Access key ID")
    secret_access_key: str = Field(default="", description="Secret access key")
    s3: S3ConfigSchema | None = None
    ecr: ECRConfigSchema | None = None


class OrganizationConfigSchema(BaseModel):
    """Top-level organization configuration."""

    model_config = ConfigDict(extra="ignore")

    aws: AWSConfigSchema | None = None


__all__ = [
    "AWSConfigSchema",
    "ECRConfigSchema",
    "OrganizationConfigSchema",
    "S3ConfigSchema",
]
