"""Core HR ORM models: Employee.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
Only the columns the leave engine and the identity resolver read are
modelled here; department assignment lives outside this service.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ems.common.constants import UserRole
from ems.config import settings
from ems.database import Base

if TYPE_CHECKING:
    from ems.leave.models import LeaveBalance, LeaveRequest


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee record; ``leave_balance`` is the fast "days remaining" counter."""

    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    # Subject claim of the identity provider's token
    user_id: Mapped[Optional[str]] = mapped_column(sa.String(255), unique=True)
    full_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    leave_balance: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=lambda: settings.DEFAULT_LEAVE_ALLOTMENT,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    # ── Relationships ───────────────────────────────────────────────
    manager: Mapped[Optional[Employee]] = relationship(
        remote_side=[id], foreign_keys=[manager_id], back_populates="subordinates",
    )
    subordinates: Mapped[list[Employee]] = relationship(
        back_populates="manager", foreign_keys=[manager_id],
    )
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="employee",
    )
    leave_ledger: Mapped[Optional[LeaveBalance]] = relationship(
        back_populates="employee", uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Employee {self.full_name!r} ({self.role.value})>"
