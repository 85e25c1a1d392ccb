"""Deterministic names derived from organization, Bento and version.

This module handles:
- Object store keys for uploaded Bento archives
- Container image references for built images
- Kubernetes resource names for image builder pods

Everything here is pure; the same inputs always yield the same names.
"""

from __future__ import annotations

import hashlib
import re

DEFAULT_COLLECTION = "bentos"
DEFAULT_IMAGE_TAG_PREFIX = "yatai"
IMAGE_BUILDER_PREFIX = "yatai-image-builder"

# DNS-1123 label limit
DEFAULT_KUBE_NAME_MAX_LENGTH = 63

# Length of the hash suffix appended to truncated names
_HASH_SUFFIX_LENGTH = 8

_WORD_BOUNDARY = re.compile(
    r"(?<=[a-z0-9])(?=[A-Z])"
    r"|(?<=[A-Z])(?=[A-Z][a-z])"
    r"|(?<=[A-Za-z])(?=[0-9])"
    r"|(?<=[0-9])(?=[A-Za-z])"
)
_DELIMITERS = re.compile(r"[\s_.]+")
_INVALID_KUBE_CHARS = re.compile(r"[^a-z0-9-]")


def to_kebab(value: str) -> str:
    """Convert a string to kebab-case.

    Case boundaries ('ResNet' -> 'res-net'), letter/digit boundaries
    ('resnet50' -> 'resnet-50'), whitespace, underscores and dots become
    hyphens; the result is lowercase.

    Args:
        value: String to convert.

    Returns:
        Kebab-cased string.
    """
    value = _WORD_BOUNDARY.sub("-", value.strip())
    value = _DELIMITERS.sub("-", value)
    return value.lower()


def s3_object_name(
    org_name: str,
    bento_name: str,
    version: str,
    collection: str = DEFAULT_COLLECTION,
) -> str:
    """Return the object store key of a Bento version archive.

    Args:
        org_name: Organization name.
        bento_name: Bento name.
        version: Version string.
        collection: Top-level key prefix.

    Returns:
        Key of the form '{collection}/{org}/{bento}/{version}.tar.gz'.
    """
    return f"{collection}/{org_name}/{bento_name}/{version}.tar.gz"


def s3_context_uri(bucket_name: str, object_name: str) -> str:
    """Return the s3:// URI of an object, as consumed by the builder."""
    return f"s3://{bucket_name}/{object_name}"


def image_name(
    registry_uri: str,
    org_name: str,
    bento_name: str,
    version: str,
    prefix: str = DEFAULT_IMAGE_TAG_PREFIX,
) -> str:
    """Return the container image reference a Bento version is pushed to.

    Args:
        registry_uri: Registry repository URI (without tag).
        org_name: Organization name.
        bento_name: Bento name.
        version: Version string.
        prefix: Leading tag component.

    Returns:
        Reference of the form '{registry}:{prefix}.{org}.{bento}.{version}'.
    """
    return f"{registry_uri}:{prefix}.{org_name}.{bento_name}.{version}"


def image_builder_kube_name(
    org_name: str,
    bento_name: str,
    version: str,
    max_length: int = DEFAULT_KUBE_NAME_MAX_LENGTH,
) -> str:
    """Return the Kubernetes name of the builder pod for a Bento version.

    Names longer than max_length are cut and suffixed with a short hash of
    the full name, so distinct long identifiers still map to distinct names.

    Args:
        org_name: Organization name.
        bento_name: Bento name.
        version: Version string.
        max_length: Maximum name length accepted by the cluster.

    Returns:
        Lowercase name made of [a-z0-9-].
    """
    raw = f"{IMAGE_BUILDER_PREFIX}-{org_name}-{bento_name}-{version}"
    name = to_kebab(raw).replace(".", "-")
    name = _INVALID_KUBE_CHARS.sub("-", name).strip("-")

    if len(name) <= max_length:
        return name

    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:_HASH_SUFFIX_LENGTH]
    head = name[: max_length - _HASH_SUFFIX_LENGTH - 1].rstrip("-")
    return f"{head}-{digest}"


__all__ = [
    "DEFAULT_COLLECTION",
    "DEFAULT_IMAGE_TAG_PREFIX",
    "DEFAULT_KUBE_NAME_MAX_LENGTH",
    "IMAGE_BUILDER_PREFIX",
    "image_builder_kube_name",
    "image_name",
    "s3_context_uri",
    "s3_object_name",
    "to_kebab",
]
