"""Model factories used across the test suite."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.models import (
    ApprovalStatus,
    DepartmentAssignment,
    Maintenance,
    Role,
    RolePermission,
    Transaction,
    User,
    UserRoleAssignment,
    UserStatus,
    Vehicle,
)


class ModelFactory:
    """Persist minimal records for permission scenarios."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _save(self, instance: Any) -> Any:
        self._session.add(instance)
        await self._session.flush()
        return instance

    async def user(
        self,
        *,
        trust_score: int = 100,
        email: str | None = None,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        return await self._save(
            User(
                email=email or f"user-{uuid4().hex[:10]}@fleet.test",
                display_name="Test User",
                trust_score=trust_score,
                status=status,
            )
        )

    async def role(
        self,
        *,
        permissions: Iterable[str] = (),
        rules: Mapping[str, Any] | None = None,
        departments: Mapping[str, bool] | None = None,
        name: str | None = None,
        is_active: bool = True,
    ) -> Role:
        role_name = name or f"ROLE_{uuid4().hex[:8].upper()}"
        return await self._save(
            Role(
                name=role_name,
                display_name=role_name.title(),
                is_active=is_active,
                dynamic_rules=dict(rules) if rules is not None else None,
                permissions=[RolePermission(permission=key) for key in permissions],
                department_assignments=[
                    DepartmentAssignment(department=department, can_manage=can_manage)
                    for department, can_manage in (departments or {}).items()
                ],
            )
        )

    async def assign(self, user: User, *roles: Role) -> None:
        for role in roles:
            self._session.add(UserRoleAssignment(user_id=user.id, role_id=role.id))
        await self._session.flush()

    async def user_with_roles(
        self,
        *roles: Role,
        trust_score: int = 100,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        user = await self.user(trust_score=trust_score, status=status)
        await self.assign(user, *roles)
        return user

    async def vehicle(self, *, department: str | None = "North") -> Vehicle:
        return await self._save(
            Vehicle(
                registration=f"1A{uuid4().hex[:6].upper()}",
                make="Skoda",
                model="Octavia",
                department=department,
            )
        )

    async def transaction(
        self,
        *,
        amount: float = 1500.0,
        status: ApprovalStatus = ApprovalStatus.PENDING,
    ) -> Transaction:
        return await self._save(Transaction(amount=amount, status=status, description="Fuel"))

    async def maintenance(
        self,
        *,
        cost: float = 800.0,
        status: ApprovalStatus = ApprovalStatus.PENDING,
    ) -> Maintenance:
        return await self._save(Maintenance(cost=cost, status=status, description="Brakes"))
