"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ems.common.constants import MAX_LEAVE_SPAN_DAYS, LeaveStatus, UserRole
from ems.common.pagination import PaginatedResponse


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str
    role: UserRole
    manager_id: Optional[uuid.UUID] = None
    leave_balance: int


# ═════════════════════════════════════════════════════════════════════
# Leave Balance (ledger)
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Ledger totals plus the employee's running counter."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    total_leaves: int
    leaves_taken: int
    remaining_leaves: int
    # Employee.leave_balance at read time
    leave_balance: int = 0


class LeaveGrantRequest(BaseModel):
    """Admin payload for granting additional leave days."""

    employee_id: uuid.UUID
    days: int = Field(..., gt=0, le=365, description="Days to add to the allotment")


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=250)
    # Only "approved" (any letter case) survives normalisation; anything else
    # becomes pending.
    status: Optional[str] = Field(None, max_length=20)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("end_date must be on or after start_date.")
        if (self.end_date - self.start_date).days + 1 > MAX_LEAVE_SPAN_DAYS:
            raise ValueError(
                f"A leave request may span at most {MAX_LEAVE_SPAN_DAYS} days."
            )
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: LeaveStatus
    request_date: datetime

    # Filled by service
    business_days: int = 0
    employee: Optional[EmployeeBrief] = None


class LeaveRequestPage(PaginatedResponse[LeaveRequestOut]):
    """Paginated list of leave requests."""


# ═════════════════════════════════════════════════════════════════════
# Decision
# ═════════════════════════════════════════════════════════════════════


class LeaveDecisionRequest(BaseModel):
    """Payload for approving or rejecting a leave request."""

    decision: LeaveStatus

    @field_validator("decision")
    @classmethod
    def decision_is_terminal(cls, v: LeaveStatus) -> LeaveStatus:
        if v == LeaveStatus.pending:
            raise ValueError("decision must be approved or rejected.")
        return v


# ═════════════════════════════════════════════════════════════════════
# Operation outcomes
# ═════════════════════════════════════════════════════════════════════


class OutcomeReason(str, enum.Enum):
    ok = "ok"
    invalid_period = "invalid_period"
    employee_not_found = "employee_not_found"
    not_found = "not_found"
    insufficient_balance = "insufficient_balance"
    update_failed = "update_failed"
    invalid_decision = "invalid_decision"


class LeaveOutcome(BaseModel):
    """Result of a submit / decide operation.

    Business-rule failures come back here instead of being raised, so the
    caller can show the specific message.
    """

    success: bool
    reason: OutcomeReason = OutcomeReason.ok
    message: str
    warning: Optional[str] = None
    available: Optional[int] = None
    requested: Optional[int] = None
    request: Optional[LeaveRequestOut] = None
    employee: Optional[EmployeeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Dashboards
# ═════════════════════════════════════════════════════════════════════


class LeaveStatusSummary(BaseModel):
    """Request counts per status (admin dashboard)."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class MonthlyLeaveOut(BaseModel):
    """The caller's leave activity for the current month."""

    month: str
    requests: list[LeaveRequestOut]
    days_on_leave: int = 0
    remaining_balance: int = 0
