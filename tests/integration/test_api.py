"""HTTP surface: verdict endpoints, role administration and error handling."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC
from uuid import UUID, uuid4

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.app.dependencies import get_clock, get_optional_principal
from fleet_api.core.principal import AuthenticatedPrincipal
from fleet_api.db import get_db_session, utc_now
from fleet_api.features.audit import AuditService
from fleet_api.features.permissions.service import DynamicPermissionService
from fleet_api.features.roles import RolesService
from fleet_api.main import create_app
from fleet_api.models import AuditAction, AuditEntityType, User

from ..conftest import FIXED_NOW, build_settings
from ..utils import ModelFactory

pytestmark = pytest.mark.asyncio


@dataclass
class PrincipalHolder:
    user_id: UUID | None = None

    def login(self, user: User | UUID) -> None:
        self.user_id = user if isinstance(user, UUID) else user.id

    def logout(self) -> None:
        self.user_id = None


@pytest.fixture()
def principal() -> PrincipalHolder:
    return PrincipalHolder()


@pytest.fixture()
def app(session: AsyncSession, principal: PrincipalHolder) -> FastAPI:
    application = create_app(build_settings())

    async def _session_override() -> AsyncIterator[AsyncSession]:
        yield session

    async def _principal_override() -> AuthenticatedPrincipal | None:
        if principal.user_id is None:
            return None
        return AuthenticatedPrincipal(user_id=principal.user_id)

    application.dependency_overrides[get_db_session] = _session_override
    application.dependency_overrides[get_optional_principal] = _principal_override
    application.dependency_overrides[get_clock] = lambda: (lambda: FIXED_NOW)
    return application


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture()
async def admin(factory: ModelFactory, principal: PrincipalHolder) -> User:
    role = await factory.role(permissions=["manage_roles", "assign_roles"])
    user = await factory.user_with_roles(role)
    principal.login(user)
    return user


# ---------------------------------------------------------------------------
# Verdict endpoints
# ---------------------------------------------------------------------------


async def test_check_without_principal_returns_denial(client: httpx.AsyncClient) -> None:
    response = await client.post("/api/permissions/check", json={"permission": "view_vehicles"})

    assert response.status_code == 200
    assert response.json() == {
        "allowed": False,
        "reason": "User not authenticated",
        "requires_approval": False,
        "approval_level": "none",
    }


async def test_check_applies_context(
    client: httpx.AsyncClient, factory: ModelFactory, principal: PrincipalHolder
) -> None:
    role = await factory.role(
        permissions=["approve_expenses"],
        rules={"budgetLimit": 1000, "timeRestriction": True},
    )
    principal.login(await factory.user_with_roles(role))

    pending = await client.post(
        "/api/permissions/check",
        json={"permission": "approve_expenses", "context": {"amount": 1500}},
    )
    after_hours = await client.post(
        "/api/permissions/check",
        json={
            "permission": "approve_expenses",
            "context": {"amount": 100, "time": "2025-03-12T20:00:00"},
        },
    )

    assert pending.json() == {
        "allowed": True,
        "reason": "Amount exceeds approval limit of 1000 Kč",
        "requires_approval": True,
        "approval_level": "manager",
    }
    assert after_hours.json()["allowed"] is False
    assert after_hours.json()["reason"].startswith("Access restricted to business hours")


async def test_check_rejects_blank_permission(client: httpx.AsyncClient) -> None:
    response = await client.post("/api/permissions/check", json={"permission": ""})
    assert response.status_code == 422


async def test_my_permissions(
    client: httpx.AsyncClient, factory: ModelFactory, principal: PrincipalHolder
) -> None:
    unauthenticated = await client.get("/api/me/permissions")
    assert unauthenticated.status_code == 401
    assert unauthenticated.json() == {"detail": "Authentication required"}

    principal.login(uuid4())
    missing = await client.get("/api/me/permissions")
    assert missing.status_code == 404

    role = await factory.role(permissions=["view_vehicles", "edit_vehicles"])
    user = await factory.user_with_roles(role)
    principal.login(user)
    response = await client.get("/api/me/permissions")

    assert response.status_code == 200
    assert response.json() == {
        "user_id": str(user.id),
        "permissions": ["edit_vehicles", "view_vehicles"],
        "role_count": 1,
    }


async def test_my_effective_permissions(
    client: httpx.AsyncClient, factory: ModelFactory, principal: PrincipalHolder
) -> None:
    role = await factory.role(
        permissions=["edit_vehicles"],
        rules={"departmentRestriction": True},
        departments={"North": True},
    )
    principal.login(await factory.user_with_roles(role))

    north = await client.get("/api/me/permissions/effective", params={"department": "North"})
    south = await client.get("/api/me/permissions/effective", params={"department": "South"})

    assert north.json()["permissions"]["edit_vehicles"]["allowed"] is True
    assert south.json()["permissions"]["edit_vehicles"] == {
        "allowed": False,
        "reason": "Access restricted to assigned department",
        "requires_approval": False,
        "approval_level": "none",
    }


async def test_approval_requirements(
    client: httpx.AsyncClient, factory: ModelFactory, principal: PrincipalHolder
) -> None:
    params = {"action": "approve", "resource": "expenses", "amount": 9000}

    anonymous = await client.get("/api/permissions/approval-requirements", params=params)
    assert anonymous.json() == {
        "requires_approval": True,
        "approval_level": "admin",
        "reason": "Not authenticated",
    }

    role = await factory.role(permissions=["approve_expenses"], rules={"budgetLimit": 1000})
    principal.login(await factory.user_with_roles(role))
    authenticated = await client.get("/api/permissions/approval-requirements", params=params)

    assert authenticated.status_code == 200
    assert authenticated.json()["approval_level"] == "admin"
    assert authenticated.json()["requires_approval"] is True


async def test_resource_checks(
    client: httpx.AsyncClient, factory: ModelFactory, principal: PrincipalHolder
) -> None:
    role = await factory.role(
        permissions=["edit_vehicles", "approve_expenses", "approve_maintenance", "view_reports"],
        rules={"budgetLimit": 1000},
    )
    principal.login(await factory.user_with_roles(role))
    vehicle = await factory.vehicle()
    transaction = await factory.transaction(amount=1200)
    maintenance = await factory.maintenance(cost=300)

    vehicle_result = await client.get(f"/api/vehicles/{vehicle.id}/permissions/edit")
    missing_vehicle = await client.get("/api/vehicles/999/permissions/edit")
    transaction_result = await client.get(
        f"/api/transactions/{transaction.id}/permissions/approve"
    )
    maintenance_result = await client.get(
        f"/api/maintenance/{maintenance.id}/permissions/approve"
    )
    reports = await client.get("/api/reports/permissions", params={"report_type": "financial"})

    assert vehicle_result.json()["allowed"] is True
    assert missing_vehicle.status_code == 200
    assert missing_vehicle.json()["reason"] == "Vehicle not found"
    assert transaction_result.json()["requires_approval"] is True
    assert maintenance_result.json() == {
        "allowed": True,
        "reason": None,
        "requires_approval": False,
        "approval_level": "none",
    }
    assert reports.json()["allowed"] is True


# ---------------------------------------------------------------------------
# Role administration
# ---------------------------------------------------------------------------


async def test_roles_require_authentication(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/roles")
    assert response.status_code == 401


async def test_roles_require_manage_roles(
    client: httpx.AsyncClient, factory: ModelFactory, principal: PrincipalHolder
) -> None:
    role = await factory.role(permissions=["view_vehicles"])
    principal.login(await factory.user_with_roles(role))

    response = await client.get("/api/roles")

    assert response.status_code == 403
    assert response.json() == {"detail": "Permission not granted"}


async def test_role_crud(client: httpx.AsyncClient, admin: User) -> None:
    created = await client.post(
        "/api/roles",
        json={
            "name": "regional lead",
            "permissions": ["view_vehicles", "edit_vehicles"],
            "departments": [{"department": "North", "can_manage": True}],
            "dynamic_rules": {"departmentRestriction": True},
        },
    )
    assert created.status_code == 201
    body = created.json()
    role_id = body["id"]
    assert body["name"] == "REGIONAL_LEAD"
    assert body["departments"] == [{"department": "North", "can_manage": True}]
    assert body["is_protected"] is False

    listing = await client.get("/api/roles")
    assert role_id in [item["id"] for item in listing.json()["items"]]

    fetched = await client.get(f"/api/roles/{role_id}")
    assert fetched.json()["permissions"] == ["edit_vehicles", "view_vehicles"]

    updated = await client.put(
        f"/api/roles/{role_id}",
        json={"display_name": "Regional Lead", "dynamic_rules": {}},
    )
    assert updated.status_code == 200
    assert updated.json()["display_name"] == "Regional Lead"
    assert updated.json()["dynamic_rules"] is None

    deleted = await client.delete(f"/api/roles/{role_id}")
    assert deleted.status_code == 204
    assert (await client.get(f"/api/roles/{role_id}")).status_code == 404


async def test_role_errors(
    client: httpx.AsyncClient, admin: User, session: AsyncSession, factory: ModelFactory
) -> None:
    await RolesService(session=session).sync_system_roles()
    admin_role = await RolesService(session=session).get_role_by_name("ADMIN")
    assert admin_role is not None

    duplicate_system = await client.post("/api/roles", json={"name": "driver"})
    unknown_permission = await client.post(
        "/api/roles", json={"name": "ops", "permissions": ["launch_rockets"]}
    )
    bad_rules = await client.post(
        "/api/roles", json={"name": "ops", "dynamic_rules": {"budgetLimit": "lots"}}
    )
    protected = await client.put(f"/api/roles/{admin_role.id}", json={"priority": 1})
    missing = await client.put("/api/roles/9999", json={"priority": 1})

    assert duplicate_system.status_code == 409
    assert unknown_permission.status_code == 422
    assert unknown_permission.json() == {"detail": "Permission 'launch_rockets' is not registered"}
    assert bad_rules.status_code == 422
    assert protected.status_code == 400
    assert missing.status_code == 404

    crew = await client.post("/api/roles", json={"name": "crew"})
    await factory.user_with_roles(await RolesService(session=session).get_role(crew.json()["id"]))
    in_use = await client.delete(f"/api/roles/{crew.json()['id']}")
    assert in_use.status_code == 409
    assert in_use.json() == {"detail": "Role is assigned to 1 user(s)"}


async def test_user_role_assignment(
    client: httpx.AsyncClient, admin: User, factory: ModelFactory, session: AsyncSession
) -> None:
    driver = await factory.user()
    role = await client.post("/api/roles", json={"name": "crew", "permissions": ["view_vehicles"]})
    role_id = role.json()["id"]

    assigned = await client.put(
        f"/api/users/{driver.id}/roles/{role_id}",
        headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "fleet-tests"},
    )
    again = await client.put(f"/api/users/{driver.id}/roles/{role_id}")
    missing_user = await client.put(f"/api/users/{uuid4()}/roles/{role_id}")

    assert assigned.status_code == 200
    assert [item["name"] for item in assigned.json()["roles"]] == ["CREW"]
    assert again.status_code == 200
    assert missing_user.status_code == 404

    entries = await AuditService(session=session).list_entries(
        entity_type=AuditEntityType.USER, entity_id=str(driver.id)
    )
    assert [entry.action for entry in entries] == [AuditAction.ASSIGN]
    assert entries[0].actor_id == admin.id
    assert entries[0].ip_address == "203.0.113.9"
    assert entries[0].user_agent == "fleet-tests"

    removed = await client.delete(f"/api/users/{driver.id}/roles/{role_id}")
    removed_again = await client.delete(f"/api/users/{driver.id}/roles/{role_id}")

    assert removed.status_code == 204
    assert removed_again.status_code == 404


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def test_users_require_permission(
    client: httpx.AsyncClient, admin: User
) -> None:
    response = await client.post("/api/users", json={"email": "new@fleet.test"})

    assert response.status_code == 403
    assert response.json() == {"detail": "Permission not granted"}


async def test_user_create_and_update(
    client: httpx.AsyncClient,
    factory: ModelFactory,
    principal: PrincipalHolder,
    session: AsyncSession,
) -> None:
    manager_role = await factory.role(permissions=["view_users", "create_users", "edit_users"])
    crew = await factory.role(permissions=["view_vehicles"])
    manager = await factory.user_with_roles(manager_role)
    principal.login(manager)

    created = await client.post(
        "/api/users",
        json={"email": "Driver@Fleet.Test", "display_name": "Driver", "role_ids": [crew.id]},
        headers={"User-Agent": "pytest-client"},
    )
    assert created.status_code == 201
    body = created.json()
    assert body["email"] == "driver@fleet.test"
    assert body["status"] == "active"
    assert body["role_ids"] == [crew.id]

    updated = await client.patch(
        f"/api/users/{body['id']}", json={"status": "disabled", "trust_score": 40}
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "disabled"
    assert updated.json()["trust_score"] == 40

    fetched = await client.get(f"/api/users/{body['id']}")
    assert fetched.json()["status"] == "disabled"

    entries = await AuditService(session=session).list_entries(
        entity_type=AuditEntityType.USER, entity_id=body["id"]
    )
    assert {entry.action for entry in entries} == {AuditAction.CREATE, AuditAction.UPDATE}
    assert all(entry.actor_id == manager.id for entry in entries)
    create_entry = next(entry for entry in entries if entry.action is AuditAction.CREATE)
    assert create_entry.user_agent == "pytest-client"


async def test_user_errors(
    client: httpx.AsyncClient, factory: ModelFactory, principal: PrincipalHolder
) -> None:
    manager_role = await factory.role(permissions=["view_users", "create_users", "edit_users"])
    principal.login(await factory.user_with_roles(manager_role))
    await factory.user(email="taken@fleet.test")

    duplicate = await client.post("/api/users", json={"email": "taken@fleet.test"})
    unknown_role = await client.post(
        "/api/users", json={"email": "x@fleet.test", "role_ids": [999]}
    )
    bad_status = await client.post("/api/users", json={"email": "y@fleet.test", "status": "gone"})
    missing = await client.patch(f"/api/users/{uuid4()}", json={"status": "suspended"})

    assert duplicate.status_code == 409
    assert unknown_role.status_code == 422
    assert bad_status.status_code == 422
    assert missing.status_code == 404


# ---------------------------------------------------------------------------
# Middleware and error handling
# ---------------------------------------------------------------------------


async def test_request_id_is_echoed(client: httpx.AsyncClient) -> None:
    response = await client.post(
        "/api/permissions/check",
        json={"permission": "view_vehicles"},
        headers={"X-Request-ID": "req-123"},
    )

    assert response.headers["X-Request-ID"] == "req-123"


async def test_unhandled_errors_return_json_500(app: FastAPI) -> None:
    @app.get("/api/boom")
    async def boom() -> None:
        raise RuntimeError("kaboom")

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/api/boom")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


async def test_default_clock_is_shared(session: AsyncSession) -> None:
    service = DynamicPermissionService(session=session, settings=build_settings())

    assert get_clock() is utc_now
    assert service._clock is utc_now
    assert utc_now().tzinfo is UTC
