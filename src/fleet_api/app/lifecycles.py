"""FastAPI lifespan helpers for the fleet API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import Lifespan
from sqlalchemy.engine import make_url

from fleet_api.db import DatabaseConfig, db, session_scope
from fleet_api.features.roles import RolesService
from fleet_api.settings import Settings

logger = logging.getLogger(__name__)


async def bootstrap_database(settings: Settings) -> None:
    """Initialise the engine, create tables when enabled and seed system roles."""

    cfg = DatabaseConfig.from_settings(settings)
    safe_url = make_url(cfg.url).render_as_string(hide_password=True)
    logger.info("db.init.start", extra={"database_url": safe_url})
    db.init(cfg)

    if settings.database_create_tables:
        await db.create_all()
        logger.info("db.schema.created", extra={"database_url": safe_url})

    async with session_scope() as session:
        service = RolesService(session=session)
        try:
            await service.sync_system_roles()
            await session.commit()
        except Exception:
            await session.rollback()
            logger.warning("roles.system.sync.failed", exc_info=True)

    logger.info("db.init.complete", extra={"database_url": safe_url})


def create_application_lifespan(
    *,
    settings: Settings,
) -> Lifespan[FastAPI]:
    """Return the FastAPI lifespan handler used by the app factory."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.settings = settings
        await bootstrap_database(settings)
        try:
            yield
        finally:
            await db.dispose()
            logger.info("db.dispose.complete")

    return lifespan


__all__ = ["bootstrap_database", "create_application_lifespan"]
