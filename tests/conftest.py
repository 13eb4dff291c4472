"""Shared pytest fixtures for fleet API tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.db import Database, DatabaseConfig
from fleet_api.features.permissions.service import DynamicPermissionService
from fleet_api.settings import Settings

from .utils import ModelFactory

MEMORY_DSN = "sqlite+aiosqlite:///:memory:"
PRAGUE = ZoneInfo("Europe/Prague")

# Wednesday mid-morning, inside business hours.
FIXED_NOW = datetime(2025, 3, 12, 10, 30, tzinfo=PRAGUE)


def build_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"database_dsn": MEMORY_DSN, "timezone": "Europe/Prague"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def settings() -> Settings:
    return build_settings()


@pytest_asyncio.fixture()
async def database(settings: Settings) -> AsyncIterator[Database]:
    """Fresh in-memory database with all tables created."""

    database = Database()
    database.init(DatabaseConfig.from_settings(settings))
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture()
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.sessionmaker() as session:
        yield session


@pytest.fixture()
def factory(session: AsyncSession) -> ModelFactory:
    return ModelFactory(session)


@pytest.fixture()
def make_service(
    session: AsyncSession,
    settings: Settings,
) -> Callable[..., DynamicPermissionService]:
    """Build a permission service with a frozen clock."""

    def _build(
        *,
        principal_id: UUID | None = None,
        now: datetime = FIXED_NOW,
        **setting_overrides: Any,
    ) -> DynamicPermissionService:
        resolved = settings.model_copy(update=setting_overrides) if setting_overrides else settings
        return DynamicPermissionService(
            session=session,
            settings=resolved,
            principal_id=principal_id,
            clock=lambda: now,
        )

    return _build
