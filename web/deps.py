"""Request dependencies for FastAPI.

Provides the database session and the remote-system clients held on
app state to route handlers via FastAPI dependency injection.

Transaction boundaries:
- Session is created at request start
- Services commit their own writes; anything left pending is committed
  when the handler returns without error
- On exception: session is rolled back
- Session is closed after request completes
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from yatai_bento.builds.provisioner import BuildProvisioner
from yatai_bento.db import session_scope
from yatai_bento.storage.gateway import ObjectStoreGateway


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state."""
    factory: Any = request.app.state.session_factory
    return factory  # type: ignore[no-any-return]


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Provide a database session for a request.

    Yields:
        Database session.
    """
    with session_scope(session_factory) as session:
        yield session


def get_gateway(request: Request) -> ObjectStoreGateway:
    """Get the object store gateway from app state."""
    gateway: Any = request.app.state.gateway
    return gateway  # type: ignore[no-any-return]


def get_provisioner(request: Request) -> BuildProvisioner:
    """Get the build provisioner from app state."""
    provisioner: Any = request.app.state.provisioner
    return provisioner  # type: ignore[no-any-return]


__all__ = ["get_db", "get_gateway", "get_provisioner", "get_session_factory"]
