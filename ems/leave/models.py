"""Leave ORM models: LeaveBalance (ledger), LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ems.common.constants import LeaveStatus
from ems.config import settings
from ems.database import Base

if TYPE_CHECKING:
    from ems.core_hr.models import Employee


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveBalance(Base):
    """Per-employee ledger of allotted and consumed leave days."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", name="uq_leave_balance_employee"),
        sa.CheckConstraint("leaves_taken >= 0", name="ck_leaves_taken_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    total_leaves: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=lambda: settings.DEFAULT_LEAVE_ALLOTMENT,
    )
    leaves_taken: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_ledger"
    )

    @property
    def remaining_leaves(self) -> int:
        return self.total_leaves - self.leaves_taken

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance employee={self.employee_id} "
            f"taken={self.leaves_taken}/{self.total_leaves}>"
        )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_employee_id", "employee_id"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.String(250))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    request_date: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_requests"
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.start_date}..{self.end_date} "
            f"{self.status.value} employee={self.employee_id}>"
        )
