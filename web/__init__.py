"""FastAPI web application for yatai_bento.

This module provides the HTTP API that mirrors the Bento version service.
All business logic is delegated to core modules in yatai_bento/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
