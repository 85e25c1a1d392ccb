"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured. Routes are thin proxies to the
yatai_bento services.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from yatai_bento import __version__
from yatai_bento.builds.provisioner import BuildProvisioner
from yatai_bento.config import get_settings
from yatai_bento.db import create_all_tables, get_engine, get_session_factory
from yatai_bento.log import configure_logging
from yatai_bento.storage.gateway import ObjectStoreGateway
from web.routers import config, health, versions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Configures logging, initializes database tables and builds the
    object store and cluster clients on startup.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    app.state.session_factory = get_session_factory(engine)
    app.state.gateway = ObjectStoreGateway()
    app.state.provisioner = BuildProvisioner.from_settings(settings)
    logger.info("yatai-bento API %s started", __version__)
    yield
    engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Yatai Bento API",
        description="HTTP API for registering Bento versions, issuing upload "
        "URLs and provisioning image builds",
        version=__version__,
        lifespan=lifespan,
    )

    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(versions.router, tags=["versions"])

    return application


app = create_app()
