"""Object store access for Bento archives."""

from yatai_bento.storage.gateway import (
    UPLOAD_URL_TTL,
    ObjectStoreError,
    ObjectStoreGateway,
)

__all__ = ["ObjectStoreError", "ObjectStoreGateway", "UPLOAD_URL_TTL"]
