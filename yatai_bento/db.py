"""Persistence plumbing for yatai_bento.

Holds the declarative base shared by the organization and version models,
engine construction, and the two transaction scopes services rely on:
session_scope() owns a session for a whole unit of work, transaction()
commits a step inside a session the caller keeps using.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from yatai_bento.config import get_settings

# Deterministic constraint names keep uniqueness violations recognizable
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def get_engine(db_url: str | None = None) -> Engine:
    """Build an engine for db_url, or for the configured database."""
    url = db_url or get_settings().db_url
    # Sessions are handed across threads by the web server
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def create_all_tables(engine: Engine) -> None:
    """Create the organization, cluster, bento and version tables."""
    from yatai_bento.organizations import models as organization_models  # noqa: F401
    from yatai_bento.versions import models as version_models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory whose objects stay readable after commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def open_session_factory(db_url: str | None = None) -> sessionmaker[Session]:
    """Connect to the database, make sure its tables exist, and return a factory.

    Args:
        db_url: Database URL. If not provided, uses settings default.

    Returns:
        Session factory bound to the new engine.
    """
    engine = get_engine(db_url)
    create_all_tables(engine)
    return get_session_factory(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Open a session, commit what is left pending on success, always close it."""
    session = factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """Commit the work done inside the block, or roll it back on error.

    The session stays open afterwards so services can run further steps
    once their writes are durable.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session_factory",
    "open_session_factory",
    "session_scope",
    "transaction",
]
