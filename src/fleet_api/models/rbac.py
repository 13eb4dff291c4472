"""Role, permission-grant and department-scope models."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_api.db import Base, TimestampMixin, UUIDPrimaryKeyMixin, UUIDType

from .user import User


class Role(TimestampMixin, Base):
    """Named bundle of permission tokens plus optional dynamic rules."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_protected: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dynamic_rules: Mapped[dict[str, Any] | None] = mapped_column(JSON(), nullable=True)
    created_by_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    permissions: Mapped[list[RolePermission]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        order_by="RolePermission.permission",
    )
    department_assignments: Mapped[list[DepartmentAssignment]] = relationship(
        "DepartmentAssignment",
        back_populates="role",
        cascade="all, delete-orphan",
        order_by="DepartmentAssignment.department",
    )
    assignments: Mapped[list[UserRoleAssignment]] = relationship(
        "UserRoleAssignment",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def permission_keys(self) -> tuple[str, ...]:
        return tuple(rp.permission for rp in self.permissions)

    @property
    def managed_departments(self) -> frozenset[str]:
        return frozenset(da.department for da in self.department_assignments if da.can_manage)


class RolePermission(Base):
    """Permission token granted by a role."""

    __tablename__ = "role_permissions"

    role_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True
    )
    permission: Mapped[str] = mapped_column(String(120), primary_key=True)

    role: Mapped[Role] = relationship("Role", back_populates="permissions")


class DepartmentAssignment(UUIDPrimaryKeyMixin, Base):
    """Department a role is scoped to, and whether it may manage it."""

    __tablename__ = "role_department_assignments"

    role_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    department: Mapped[str] = mapped_column(String(120), nullable=False)
    can_manage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    role: Mapped[Role] = relationship("Role", back_populates="department_assignments")

    __table_args__ = (
        UniqueConstraint("role_id", "department", name="uq_role_department"),
    )


class UserRoleAssignment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Assignment of a role to a user."""

    __tablename__ = "user_role_assignments"

    user_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roles.id", ondelete="NO ACTION"), nullable=False
    )

    user: Mapped[User] = relationship("User", back_populates="role_assignments")
    role: Mapped[Role] = relationship("Role", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_role"),
        Index("ix_user_role_assignments_role_id", "role_id"),
    )


__all__ = [
    "DepartmentAssignment",
    "Role",
    "RolePermission",
    "UserRoleAssignment",
]
