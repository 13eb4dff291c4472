"""Read-only data access for permission checks."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fleet_api.models import Maintenance, Role, Transaction, User, UserRoleAssignment, Vehicle


class PermissionsRepository:
    """Loads subjects with their roles, and the resources checks refer to."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_user_with_roles(self, user_id: UUID) -> User | None:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .options(
                selectinload(User.role_assignments)
                .selectinload(UserRoleAssignment.role)
                .selectinload(Role.permissions),
                selectinload(User.role_assignments)
                .selectinload(UserRoleAssignment.role)
                .selectinload(Role.department_assignments),
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_vehicle(self, vehicle_id: int) -> Vehicle | None:
        return await self._session.get(Vehicle, vehicle_id)

    async def get_transaction(self, transaction_id: int) -> Transaction | None:
        return await self._session.get(Transaction, transaction_id)

    async def get_maintenance(self, maintenance_id: int) -> Maintenance | None:
        return await self._session.get(Maintenance, maintenance_id)


def roles_in_evaluation_order(user: User) -> list[Role]:
    """Return every role assigned to the user, sorted by ascending role id."""

    roles = {
        assignment.role.id: assignment.role
        for assignment in user.role_assignments
        if assignment.role is not None
    }
    return [roles[role_id] for role_id in sorted(roles)]


__all__ = ["PermissionsRepository", "roles_in_evaluation_order"]
