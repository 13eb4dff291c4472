"""User administration: profile fields, account status and role sets."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fleet_api.common.logging import log_context
from fleet_api.features.audit import AuditRecord, AuditService
from fleet_api.features.roles.service import ActorContext
from fleet_api.models import (
    DEFAULT_TRUST_SCORE,
    AuditAction,
    AuditEntityType,
    Role,
    User,
    UserRoleAssignment,
    UserStatus,
)

logger = logging.getLogger(__name__)

MIN_TRUST_SCORE = 0
MAX_TRUST_SCORE = 100

_SYSTEM_ACTOR = ActorContext()


class UserError(ValueError):
    """Base class for user management errors."""


class UserValidationError(UserError):
    """Raised when a user payload is invalid."""


class UserNotFoundError(UserError):
    """Raised when a user cannot be located."""


class UserConflictError(UserError):
    """Raised when an email address is already taken."""


def _normalize_email(value: str) -> str:
    candidate = value.strip().lower()
    if not candidate or "@" not in candidate:
        raise UserValidationError("A valid email address is required")
    return candidate


def _normalize_display_name(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _check_trust_score(value: int) -> int:
    if not MIN_TRUST_SCORE <= value <= MAX_TRUST_SCORE:
        raise UserValidationError(
            f"Trust score must be between {MIN_TRUST_SCORE} and {MAX_TRUST_SCORE}"
        )
    return value


def user_snapshot(user: User) -> dict[str, Any]:
    """Serializable view of a user for audit entries."""

    return {
        "id": str(user.id),
        "email": user.email,
        "display_name": user.display_name,
        "trust_score": user.trust_score,
        "status": user.status.value,
        "role_ids": sorted(assignment.role_id for assignment in user.role_assignments),
    }


class UsersService:
    """Create and edit user accounts; every write is audited."""

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._audit = AuditService(session=session)

    def _user_query(self):
        return select(User).options(selectinload(User.role_assignments))

    async def list_users(self) -> list[User]:
        stmt = self._user_query().order_by(User.email)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_user(self, user_id: UUID) -> User | None:
        stmt = (
            self._user_query()
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = self._user_query().where(User.email == _normalize_email(email))
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def _require_user(self, user_id: UUID) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise UserNotFoundError("User not found")
        return user

    async def _resolve_roles(self, role_ids: Iterable[int]) -> list[int]:
        """Return ``role_ids`` de-duplicated, rejecting unknown or inactive roles."""

        wanted = list(dict.fromkeys(role_ids))
        if not wanted:
            return []
        result = await self._session.execute(select(Role).where(Role.id.in_(wanted)))
        found = {role.id: role for role in result.scalars().all()}
        for role_id in wanted:
            role = found.get(role_id)
            if role is None:
                raise UserValidationError(f"Role {role_id} does not exist")
            if not role.is_active:
                raise UserValidationError(f"Role {role.name} is not active")
        return wanted

    # ------------- writes ------------------------

    async def create_user(
        self,
        *,
        email: str,
        display_name: str | None = None,
        trust_score: int = DEFAULT_TRUST_SCORE,
        status: UserStatus = UserStatus.ACTIVE,
        role_ids: Sequence[int] = (),
        actor: ActorContext = _SYSTEM_ACTOR,
    ) -> User:
        normalized_email = _normalize_email(email)
        if await self.get_user_by_email(normalized_email) is not None:
            raise UserConflictError("Email address is already in use")

        user = User(
            email=normalized_email,
            display_name=_normalize_display_name(display_name),
            trust_score=_check_trust_score(trust_score),
            status=status,
            role_assignments=[
                UserRoleAssignment(role_id=role_id)
                for role_id in await self._resolve_roles(role_ids)
            ],
        )
        self._session.add(user)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise UserConflictError("Email address is already in use") from exc

        await self._audit_user(AuditAction.CREATE, user, actor=actor, new_value=user_snapshot(user))
        logger.info(
            "users.create.success",
            extra=log_context(user_id=actor.actor_id, subject_id=user.id, status=user.status.value),
        )
        return user

    async def update_user(
        self,
        *,
        user_id: UUID,
        email: str | None = None,
        display_name: str | None = None,
        trust_score: int | None = None,
        status: UserStatus | None = None,
        role_ids: Sequence[int] | None = None,
        actor: ActorContext = _SYSTEM_ACTOR,
    ) -> User:
        """Apply a partial update; ``None`` leaves a field unchanged.

        ``role_ids`` replaces the whole role set when given.
        """

        user = await self._require_user(user_id)
        before = user_snapshot(user)

        if email is not None:
            normalized_email = _normalize_email(email)
            if normalized_email != user.email:
                if await self.get_user_by_email(normalized_email) is not None:
                    raise UserConflictError("Email address is already in use")
                user.email = normalized_email
        if display_name is not None:
            user.display_name = _normalize_display_name(display_name)
        if trust_score is not None:
            user.trust_score = _check_trust_score(trust_score)
        if status is not None:
            user.status = status
        if role_ids is not None:
            self._replace_roles(user, await self._resolve_roles(role_ids))

        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise UserConflictError("Email address is already in use") from exc

        after = user_snapshot(user)
        if after != before:
            await self._audit_user(
                AuditAction.UPDATE, user, actor=actor, old_value=before, new_value=after
            )
        logger.info(
            "users.update.success",
            extra=log_context(user_id=actor.actor_id, subject_id=user.id, changed=after != before),
        )
        return user

    async def set_status(
        self,
        *,
        user_id: UUID,
        status: UserStatus,
        actor: ActorContext = _SYSTEM_ACTOR,
    ) -> User:
        return await self.update_user(user_id=user_id, status=status, actor=actor)

    def _replace_roles(self, user: User, role_ids: Sequence[int]) -> None:
        desired = set(role_ids)
        current = {assignment.role_id: assignment for assignment in user.role_assignments}
        for role_id, assignment in current.items():
            if role_id not in desired:
                user.role_assignments.remove(assignment)
        for role_id in role_ids:
            if role_id not in current:
                user.role_assignments.append(UserRoleAssignment(role_id=role_id))

    async def _audit_user(
        self,
        action: AuditAction,
        user: User,
        *,
        actor: ActorContext,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
    ) -> None:
        await self._audit.record(
            AuditRecord(
                action=action,
                entity_type=AuditEntityType.USER,
                entity_id=str(user.id),
                actor_id=actor.actor_id,
                old_value=old_value,
                new_value=new_value,
                ip_address=actor.ip_address,
                user_agent=actor.user_agent,
            )
        )


__all__ = [
    "MAX_TRUST_SCORE",
    "MIN_TRUST_SCORE",
    "UserConflictError",
    "UserError",
    "UserNotFoundError",
    "UserValidationError",
    "UsersService",
    "user_snapshot",
]
