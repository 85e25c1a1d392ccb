"""Health check endpoints."""

from fastapi import APIRouter

from yatai_bento import __version__

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Health status with version.
    """
    return {"status": "ok", "version": __version__}


@router.get("/")
def root() -> dict[str, str]:
    """Return API name and version."""
    return {"name": "Yatai Bento API", "version": __version__}
