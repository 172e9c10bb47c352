"""Leave router — apply, decide, balances, grants, dashboards.

All endpoints require authentication. Approver and admin endpoints enforce
role checks; failed business outcomes are raised as RFC 7807 errors.
"""


import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ems.auth.dependencies import get_current_user, require_role
from ems.common.constants import UserRole
from ems.common.exceptions import (
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    PersistenceException,
    ValidationException,
)
from ems.common.pagination import PaginationParams
from ems.common.rate_limit import limiter
from ems.config import settings
from ems.core_hr.models import Employee
from ems.database import get_db
from ems.leave.ledger import LeaveLedger
from ems.leave.schemas import (
    LeaveBalanceOut,
    LeaveDecisionRequest,
    LeaveGrantRequest,
    LeaveOutcome,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestPage,
    LeaveStatusSummary,
    MonthlyLeaveOut,
    OutcomeReason,
)
from ems.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


def _raise_for_outcome(outcome: LeaveOutcome, entity_id: object = None) -> LeaveOutcome:
    """Translate a failed outcome into the matching AppException."""
    if outcome.success:
        return outcome

    reason = outcome.reason
    if reason in (OutcomeReason.invalid_period, OutcomeReason.invalid_decision):
        field = "decision" if reason == OutcomeReason.invalid_decision else "end_date"
        raise ValidationException({field: [outcome.message]})
    if reason == OutcomeReason.employee_not_found:
        raise NotFoundException("Employee", entity_id, detail=outcome.message)
    if reason == OutcomeReason.not_found:
        raise NotFoundException("LeaveRequest", entity_id, detail=outcome.message)
    if reason == OutcomeReason.insufficient_balance:
        raise InsufficientBalanceException(
            available=outcome.available or 0,
            requested=outcome.requested or 0,
            detail=outcome.message,
        )
    raise PersistenceException(detail=outcome.message)


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveOutcome, status_code=201)
@limiter.limit(settings.LEAVE_APPLY_RATE_LIMIT)
async def apply_leave(
    request: Request,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Pending requests never touch the balance."""
    outcome = await LeaveService.submit(db, employee.id, body)
    return _raise_for_outcome(outcome, employee.id)


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves", response_model=LeaveRequestPage)
async def my_leaves(
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated user's leave requests, newest first."""
    return await LeaveService.list_for_employee(db, employee.id, pagination)


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=LeaveBalanceOut)
async def my_balance(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveLedger.get_balance(db, employee.id)


# ── GET /current-month ──────────────────────────────────────────────

@router.get("/current-month", response_model=MonthlyLeaveOut)
async def current_month(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """This month's requests and approved days on leave."""
    return await LeaveService.month_summary(db, employee.id)


# ── GET /pending ────────────────────────────────────────────────────

@router.get("/pending", response_model=list[LeaveRequestOut])
async def pending_approvals(
    request: Request,
    employee: Employee = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests: every request for admins, direct reports for managers."""
    scope = LeaveService.scope_for_role(request.state.user_role)
    if scope is None:
        raise ForbiddenException()
    return await LeaveService.pending_for(db, employee.id, scope)


# ── PUT /{id}/decision ──────────────────────────────────────────────

@router.put("/{request_id}/decision", response_model=LeaveOutcome)
async def decide_leave(
    request_id: uuid.UUID,
    body: LeaveDecisionRequest,
    employee: Employee = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a leave request. Approval charges the balance once."""
    outcome = await LeaveService.decide(db, request_id, body.decision)
    return _raise_for_outcome(outcome, request_id)


# ── POST /grant ─────────────────────────────────────────────────────

@router.post("/grant", response_model=LeaveBalanceOut)
async def grant_leave(
    body: LeaveGrantRequest,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Add days to an employee's allotment and remaining balance."""
    return await LeaveLedger.grant(db, body.employee_id, body.days)


# ── GET /summary ────────────────────────────────────────────────────

@router.get("/summary", response_model=LeaveStatusSummary)
async def leave_summary(
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.status_summary(db)
