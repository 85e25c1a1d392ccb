"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter

from yatai_bento.config import get_settings

router = APIRouter()


@router.get("")
def get_config() -> dict[str, Any]:
    """Get effective configuration.

    Returns:
        Current configuration as JSON.
    """
    settings = get_settings()
    return {
        "db_url": settings.db_url,
        "log_level": settings.log_level,
        "s3_endpoint_url": settings.s3_endpoint_url,
        "object_collection": settings.object_collection,
        "image_tag_prefix": settings.image_tag_prefix,
        "builder_namespace": settings.builder_namespace,
        "builder_image": settings.builder_image,
        "kube_name_max_length": settings.kube_name_max_length,
        "kube_qps": settings.kube_qps,
        "kube_burst": settings.kube_burst,
    }
