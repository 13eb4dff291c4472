"""Audit sink behaviour."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from fleet_api.features.audit import AuditError, AuditRecord, AuditService
from fleet_api.models import AuditAction, AuditEntityType

pytestmark = pytest.mark.asyncio


async def test_record_normalises_naive_timestamps(session) -> None:
    service = AuditService(session=session)

    entry = await service.record(
        AuditRecord(
            action=AuditAction.CREATE,
            entity_type=AuditEntityType.ROLE,
            entity_id="1",
            new_value={"b": 2, "a": 1},
            occurred_at=datetime(2025, 1, 1, 12, 0),
        )
    )

    assert entry.id is not None
    assert entry.occurred_at == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
    assert list(entry.new_value) == ["a", "b"]


async def test_record_rejects_unserialisable_snapshot(session) -> None:
    service = AuditService(session=session)

    with pytest.raises(AuditError):
        await service.record(
            AuditRecord(
                action=AuditAction.UPDATE,
                entity_type=AuditEntityType.ROLE,
                entity_id="1",
                new_value={("tuple", "key"): 1},
            )
        )


async def test_list_entries_filters_and_orders(session) -> None:
    service = AuditService(session=session)
    for index, entity_id in enumerate(["1", "2", "1"]):
        await service.record(
            AuditRecord(
                action=AuditAction.UPDATE,
                entity_type=AuditEntityType.ROLE,
                entity_id=entity_id,
                new_value={"step": index},
                occurred_at=datetime(2025, 1, 1, 12, index, tzinfo=UTC),
            )
        )

    entries = await service.list_entries(entity_type=AuditEntityType.ROLE, entity_id="1")

    assert [entry.new_value["step"] for entry in entries] == [2, 0]
    assert len(await service.list_entries(limit=1)) == 1
    with pytest.raises(ValueError):
        await service.list_entries(limit=0)
