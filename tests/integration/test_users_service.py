"""User administration service behaviour."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.core.rbac.types import DynamicPermissionContext, PermissionResult
from fleet_api.features.audit import AuditService
from fleet_api.features.roles.service import ActorContext
from fleet_api.features.users import (
    UserConflictError,
    UserNotFoundError,
    UsersService,
    UserValidationError,
)
from fleet_api.models import AuditAction, AuditEntityType, UserStatus

from ..utils import ModelFactory

pytestmark = pytest.mark.asyncio


@pytest.fixture()
def service(session: AsyncSession) -> UsersService:
    return UsersService(session=session)


@pytest.fixture()
def audit(session: AsyncSession) -> AuditService:
    return AuditService(session=session)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def test_create_user_defaults_and_audit(
    service: UsersService, audit: AuditService, factory: ModelFactory
) -> None:
    admin = await factory.user()
    role = await factory.role(permissions=["view_vehicles"])
    actor = ActorContext(actor_id=admin.id, ip_address="10.0.0.7", user_agent="pytest")

    user = await service.create_user(
        email="  Jana.Novak@Fleet.Test ",
        display_name=" Jana Novak ",
        role_ids=[role.id, role.id],
        actor=actor,
    )

    assert user.email == "jana.novak@fleet.test"
    assert user.display_name == "Jana Novak"
    assert user.trust_score == 100
    assert user.status is UserStatus.ACTIVE

    entries = await audit.list_entries(entity_type=AuditEntityType.USER, entity_id=str(user.id))
    assert len(entries) == 1
    entry = entries[0]
    assert entry.action is AuditAction.CREATE
    assert entry.actor_id == admin.id
    assert entry.ip_address == "10.0.0.7"
    assert entry.old_value is None
    assert entry.new_value["status"] == "active"
    assert entry.new_value["role_ids"] == [role.id]


async def test_create_user_rejects_duplicate_email(
    service: UsersService, factory: ModelFactory
) -> None:
    await factory.user(email="taken@fleet.test")

    with pytest.raises(UserConflictError):
        await service.create_user(email="TAKEN@fleet.test")


async def test_create_user_rejects_unknown_and_inactive_roles(
    service: UsersService, factory: ModelFactory
) -> None:
    inactive = await factory.role(is_active=False)

    with pytest.raises(UserValidationError, match="does not exist"):
        await service.create_user(email="a@fleet.test", role_ids=[9999])
    with pytest.raises(UserValidationError, match="is not active"):
        await service.create_user(email="b@fleet.test", role_ids=[inactive.id])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"email": "   "},
        {"email": "not-an-address"},
        {"email": "c@fleet.test", "trust_score": 101},
        {"email": "c@fleet.test", "trust_score": -1},
    ],
)
async def test_create_user_validation(service: UsersService, kwargs: dict) -> None:
    with pytest.raises(UserValidationError):
        await service.create_user(**kwargs)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


async def test_update_user_records_old_and_new_values(
    service: UsersService, audit: AuditService, factory: ModelFactory
) -> None:
    user = await factory.user(trust_score=80)

    updated = await service.update_user(
        user_id=user.id,
        status=UserStatus.SUSPENDED,
        trust_score=55,
    )

    assert updated.status is UserStatus.SUSPENDED
    assert updated.trust_score == 55
    assert updated.display_name == "Test User"

    entries = await audit.list_entries(entity_type=AuditEntityType.USER, entity_id=str(user.id))
    assert [entry.action for entry in entries] == [AuditAction.UPDATE]
    assert entries[0].old_value["status"] == "active"
    assert entries[0].old_value["trust_score"] == 80
    assert entries[0].new_value["status"] == "suspended"
    assert entries[0].new_value["trust_score"] == 55


async def test_update_without_changes_is_not_audited(
    service: UsersService, audit: AuditService, factory: ModelFactory
) -> None:
    user = await factory.user()

    await service.update_user(user_id=user.id, status=UserStatus.ACTIVE)

    assert await audit.list_entries(entity_type=AuditEntityType.USER, entity_id=str(user.id)) == []


async def test_set_status_round_trip(service: UsersService, factory: ModelFactory) -> None:
    user = await factory.user()

    await service.set_status(user_id=user.id, status=UserStatus.DISABLED)
    disabled = await service.get_user(user.id)
    assert disabled is not None
    assert disabled.status is UserStatus.DISABLED

    await service.set_status(user_id=user.id, status=UserStatus.ACTIVE)
    restored = await service.get_user(user.id)
    assert restored is not None
    assert restored.status is UserStatus.ACTIVE


async def test_update_user_replaces_role_set(
    service: UsersService, factory: ModelFactory, make_service
) -> None:
    viewer = await factory.role(permissions=["view_vehicles"])
    editor = await factory.role(permissions=["edit_vehicles"])
    user = await factory.user_with_roles(viewer)
    permissions = make_service()
    context = DynamicPermissionContext(user_id=user.id)

    updated = await service.update_user(user_id=user.id, role_ids=[editor.id])

    assert sorted(a.role_id for a in updated.role_assignments) == [editor.id]
    assert await permissions.check_permission("edit_vehicles", context) == PermissionResult.allow()
    assert await permissions.check_permission("view_vehicles", context) == PermissionResult.deny(
        "Permission not granted"
    )


async def test_update_user_email_conflict(service: UsersService, factory: ModelFactory) -> None:
    await factory.user(email="first@fleet.test")
    second = await factory.user(email="second@fleet.test")

    with pytest.raises(UserConflictError):
        await service.update_user(user_id=second.id, email="First@fleet.test")


async def test_update_missing_user(service: UsersService) -> None:
    with pytest.raises(UserNotFoundError):
        await service.update_user(user_id=uuid4(), status=UserStatus.DISABLED)


async def test_list_users_is_ordered_by_email(
    service: UsersService, factory: ModelFactory
) -> None:
    await factory.user(email="zed@fleet.test")
    await factory.user(email="amy@fleet.test")

    users = await service.list_users()

    assert [user.email for user in users] == ["amy@fleet.test", "zed@fleet.test"]
