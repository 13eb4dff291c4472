"""Fleet resources whose attributes feed permission checks."""

from __future__ import annotations

import enum
from uuid import UUID

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_api.db import Base, TimestampMixin, UUIDType, enum_values


class ApprovalStatus(str, enum.Enum):
    """Approval lifecycle shared by transactions and maintenance records."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


approval_status_enum = SAEnum(
    ApprovalStatus,
    name="approval_status",
    native_enum=False,
    length=20,
    values_callable=enum_values,
)


class Vehicle(TimestampMixin, Base):
    """A vehicle in the fleet."""

    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    department: Mapped[str | None] = mapped_column(String(120), nullable=True)
    assigned_driver_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    transactions: Mapped[list[Transaction]] = relationship(
        "Transaction",
        back_populates="vehicle",
    )
    maintenance_records: Mapped[list[Maintenance]] = relationship(
        "Maintenance",
        back_populates="vehicle",
    )


class Transaction(TimestampMixin, Base):
    """An expense or income entry awaiting or past approval."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    status: Mapped[ApprovalStatus] = mapped_column(
        approval_status_enum,
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True
    )

    vehicle: Mapped[Vehicle | None] = relationship("Vehicle", back_populates="transactions")


class Maintenance(TimestampMixin, Base):
    """A service visit or repair with a cost that may need approval."""

    __tablename__ = "maintenance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cost: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    status: Mapped[ApprovalStatus] = mapped_column(
        approval_status_enum,
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True
    )

    vehicle: Mapped[Vehicle | None] = relationship(
        "Vehicle", back_populates="maintenance_records"
    )


__all__ = ["ApprovalStatus", "Maintenance", "Transaction", "Vehicle"]
