"""Record and query audit entries for administrative permission changes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.common.logging import log_context
from fleet_api.models import AuditAction, AuditEntityType, AuditLogEntry

logger = logging.getLogger(__name__)


class AuditError(ValueError):
    """Raised when an audit record cannot be serialised."""


@dataclass(slots=True)
class AuditRecord:
    """Input payload accepted by :meth:`AuditService.record`."""

    action: AuditAction
    entity_type: AuditEntityType
    entity_id: str
    actor_id: UUID | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    occurred_at: datetime | None = None


def _normalise_datetime(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _normalise_snapshot(snapshot: dict[str, Any] | None) -> dict[str, Any] | None:
    if snapshot is None:
        return None
    # Sorted keys so repeated writes store identical JSON structures.
    try:
        serialised = json.dumps(snapshot, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError) as exc:
        raise AuditError(f"Audit snapshot is not serialisable: {exc}") from exc
    return json.loads(serialised)


class AuditService:
    """Append-only audit sink used by the role administration service."""

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session

    async def record(self, record: AuditRecord) -> AuditLogEntry:
        """Persist ``record`` in the current transaction and return the row."""

        entry = AuditLogEntry(
            action=record.action,
            entity_type=record.entity_type,
            entity_id=str(record.entity_id),
            actor_id=record.actor_id,
            old_value=_normalise_snapshot(record.old_value),
            new_value=_normalise_snapshot(record.new_value),
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            occurred_at=_normalise_datetime(record.occurred_at),
        )
        self._session.add(entry)

        try:
            await self._session.flush([entry])
        except SQLAlchemyError:
            logger.exception(
                "audit.record.failed",
                extra=log_context(
                    user_id=record.actor_id,
                    action=record.action.value,
                    entity_type=record.entity_type.value,
                    entity_id=record.entity_id,
                ),
            )
            raise

        logger.debug(
            "audit.record.success",
            extra=log_context(
                user_id=record.actor_id,
                action=record.action.value,
                entity_type=record.entity_type.value,
                entity_id=record.entity_id,
            ),
        )
        return entry

    async def list_entries(
        self,
        *,
        entity_type: AuditEntityType | None = None,
        entity_id: str | None = None,
        limit: int = 50,
    ) -> list[AuditLogEntry]:
        """Return entries ordered by recency with optional entity filters."""

        if limit <= 0:
            raise ValueError("limit must be positive")

        stmt = select(AuditLogEntry)
        if entity_type is not None:
            stmt = stmt.where(AuditLogEntry.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(AuditLogEntry.entity_id == str(entity_id))
        stmt = stmt.order_by(AuditLogEntry.occurred_at.desc(), AuditLogEntry.id).limit(limit)

        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["AuditError", "AuditRecord", "AuditService"]
