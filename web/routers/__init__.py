"""Router modules for FastAPI web API."""

from web.routers import config, health, versions

__all__ = ["config", "health", "versions"]
