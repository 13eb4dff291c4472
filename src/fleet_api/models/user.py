"""Canonical user model consulted by permission checks."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from fleet_api.db import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values

if TYPE_CHECKING:
    from .rbac import UserRoleAssignment

DEFAULT_TRUST_SCORE = 100


class UserStatus(str, enum.Enum):
    """Account state. Enforced at sign-in, not by permission checks."""

    ACTIVE = "active"
    DISABLED = "disabled"
    SUSPENDED = "suspended"


user_status_enum = SAEnum(
    UserStatus,
    name="user_status",
    native_enum=False,
    length=20,
    values_callable=enum_values,
)


def _normalise_email(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        msg = "Email must not be empty"
        raise ValueError(msg)
    return cleaned.lower()


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A person who signs in to the fleet dashboard."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    trust_score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_TRUST_SCORE,
    )
    status: Mapped[UserStatus] = mapped_column(
        user_status_enum,
        nullable=False,
        default=UserStatus.ACTIVE,
    )

    role_assignments: Mapped[list[UserRoleAssignment]] = relationship(
        "UserRoleAssignment",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @validates("email")
    def _store_normalised_email(self, _key: str, value: str) -> str:
        return _normalise_email(value)


__all__ = ["DEFAULT_TRUST_SCORE", "User", "UserStatus"]
