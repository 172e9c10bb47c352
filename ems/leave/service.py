"""Leave service layer: request lifecycle, approval worklists, dashboards.

Business logic:
  - Submission with status normalisation (only "approved", in any case, survives)
  - Approval charges business days once through the ledger; rejection never
    touches balances
  - Role-scoped pending worklists (admins see everything, managers their team)
  - Per-employee history, current-month view and status counts
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ems.common.constants import (
    MONTH_LABEL_FORMAT,
    ApproverScope,
    LeaveStatus,
    UserRole,
)
from ems.common.exceptions import NotFoundException
from ems.common.pagination import PaginationParams, paginate
from ems.core_hr.models import Employee
from ems.leave.calendar import count_business_days
from ems.leave.ledger import DeductionStatus, LeaveLedger
from ems.leave.models import LeaveRequest
from ems.leave.schemas import (
    EmployeeBrief,
    LeaveOutcome,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestPage,
    LeaveStatusSummary,
    MonthlyLeaveOut,
    OutcomeReason,
)

logger = logging.getLogger(__name__)

_DEDUCTION_REASONS = {
    DeductionStatus.invalid_days: OutcomeReason.invalid_period,
    DeductionStatus.employee_not_found: OutcomeReason.employee_not_found,
    DeductionStatus.insufficient_balance: OutcomeReason.insufficient_balance,
    DeductionStatus.persistence_failure: OutcomeReason.update_failed,
}


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submission, decisions, worklists, summaries."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_employee_brief(emp: Employee) -> EmployeeBrief:
        return EmployeeBrief.model_validate(emp)

    @staticmethod
    def _build_request_response(
        req: LeaveRequest,
        *,
        employee: Optional[Employee] = None,
    ) -> LeaveRequestOut:
        """Build LeaveRequestOut from ORM, computing the chargeable days."""
        out = LeaveRequestOut(
            id=req.id,
            employee_id=req.employee_id,
            start_date=req.start_date,
            end_date=req.end_date,
            reason=req.reason,
            status=req.status,
            request_date=req.request_date,
            business_days=count_business_days(req.start_date, req.end_date),
        )
        if employee is not None:
            out.employee = LeaveService._build_employee_brief(employee)
        return out

    @staticmethod
    def _failure(
        reason: OutcomeReason,
        message: str,
        **extra,
    ) -> LeaveOutcome:
        return LeaveOutcome(success=False, reason=reason, message=message, **extra)

    @staticmethod
    async def _claim_approval(db: AsyncSession, request_id: uuid.UUID) -> bool:
        """Move the request to approved unless it already is; False if it was."""
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == request_id,
                LeaveRequest.status != LeaveStatus.approved,
            )
            .values(status=LeaveStatus.approved)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _normalise_status(raw: Optional[str]) -> LeaveStatus:
        # Pre-approved entries pass in any letter case; every other value
        # starts as pending
        if raw is not None and raw.lower() == LeaveStatus.approved.value:
            return LeaveStatus.approved
        return LeaveStatus.pending

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
    ) -> LeaveOutcome:
        """Persist a new leave request for ``employee_id``.

        Pending requests are stored even when the balance would not cover
        them; the approver decides. A pre-approved request is charged
        immediately, and a failed charge is reported as a warning on an
        otherwise successful outcome.
        """
        if data.start_date > data.end_date:
            return LeaveService._failure(
                OutcomeReason.invalid_period,
                "End date must be on or after start date.",
            )

        days = count_business_days(data.start_date, data.end_date)
        if days <= 0:
            return LeaveService._failure(
                OutcomeReason.invalid_period,
                "Invalid leave period selected.",
            )

        employee = await db.get(Employee, employee_id)
        if employee is None:
            return LeaveService._failure(
                OutcomeReason.employee_not_found, "Employee not found."
            )

        status = LeaveService._normalise_status(data.status)
        leave_request = LeaveRequest(
            employee_id=employee_id,
            start_date=data.start_date,
            end_date=data.end_date,
            reason=data.reason,
            status=status,
            request_date=datetime.now(timezone.utc),
        )
        db.add(leave_request)
        await db.flush()

        await LeaveLedger.ensure_exists(db, employee_id)

        warning = None
        if status == LeaveStatus.approved:
            result = await LeaveLedger.apply_deduction(db, employee_id, days)
            if not result.ok:
                warning = result.message
                logger.warning(
                    "Pre-approved leave %s stored without deduction: %s",
                    leave_request.id, result.status.value,
                )

        logger.info(
            "Leave request %s submitted by employee %s (%d day(s), %s)",
            leave_request.id, employee_id, days, status.value,
        )

        return LeaveOutcome(
            success=True,
            message="Leave application submitted successfully!",
            warning=warning,
            requested=days,
            available=employee.leave_balance,
            request=LeaveService._build_request_response(
                leave_request, employee=employee,
            ),
            employee=LeaveService._build_employee_brief(employee),
        )

    # ─────────────────────────────────────────────────────────────────
    # Decide
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def decide(
        db: AsyncSession,
        request_id: uuid.UUID,
        decision: Union[LeaveStatus, str],
    ) -> LeaveOutcome:
        """Approve or reject a leave request.

        Approval charges the request's business days exactly once; approving
        an already approved request is a no-op. On any failed approval the
        request keeps its current status.
        """
        try:
            decision = LeaveStatus(decision)
        except ValueError:
            decision = None
        if decision is None or decision == LeaveStatus.pending:
            return LeaveService._failure(
                OutcomeReason.invalid_decision,
                "Decision must be either approved or rejected.",
            )

        leave_request = await db.get(LeaveRequest, request_id)
        if leave_request is None:
            return LeaveService._failure(
                OutcomeReason.not_found, "Leave request not found."
            )

        if decision == LeaveStatus.rejected:
            leave_request.status = LeaveStatus.rejected
            await db.flush()
            logger.info("Leave request %s rejected", request_id)
            employee = await db.get(Employee, leave_request.employee_id)
            return LeaveOutcome(
                success=True,
                message="Leave request rejected.",
                request=LeaveService._build_request_response(
                    leave_request, employee=employee,
                ),
                employee=(
                    LeaveService._build_employee_brief(employee) if employee else None
                ),
            )

        employee = await db.get(Employee, leave_request.employee_id)

        if leave_request.status == LeaveStatus.approved:
            return LeaveOutcome(
                success=True,
                message="Leave request is already approved.",
                request=LeaveService._build_request_response(
                    leave_request, employee=employee,
                ),
                employee=(
                    LeaveService._build_employee_brief(employee) if employee else None
                ),
            )

        days = count_business_days(leave_request.start_date, leave_request.end_date)

        if employee is None:
            return LeaveService._failure(
                OutcomeReason.employee_not_found, "Employee not found."
            )

        if employee.leave_balance < days:
            return LeaveService._failure(
                OutcomeReason.insufficient_balance,
                "Cannot approve: Employee has insufficient leave balance. "
                f"Available: {employee.leave_balance} days, Requested: {days} days.",
                available=employee.leave_balance,
                requested=days,
            )

        await LeaveLedger.ensure_exists(db, employee.id)

        # The status claim and the deduction commit or roll back together
        savepoint = await db.begin_nested()
        try:
            if not await LeaveService._claim_approval(db, request_id):
                # A concurrent approval won the claim; nothing to charge
                await savepoint.rollback()
                await db.refresh(leave_request)
                logger.info("Leave request %s was approved concurrently", request_id)
                return LeaveOutcome(
                    success=True,
                    message="Leave request is already approved.",
                    request=LeaveService._build_request_response(
                        leave_request, employee=employee,
                    ),
                    employee=LeaveService._build_employee_brief(employee),
                )

            result = await LeaveLedger.apply_deduction(db, employee.id, days)
            if not result.ok:
                await savepoint.rollback()
                if result.status == DeductionStatus.insufficient_balance:
                    message = (
                        "Cannot approve: Employee has insufficient leave balance. "
                        f"Available: {result.available} days, Requested: {days} days."
                    )
                else:
                    message = result.message
                return LeaveService._failure(
                    _DEDUCTION_REASONS[result.status],
                    message,
                    available=result.available,
                    requested=days,
                )
            await savepoint.commit()
        except Exception:
            if savepoint.is_active:
                await savepoint.rollback()
            raise

        await db.refresh(leave_request)
        logger.info(
            "Leave request %s approved; %d day(s) charged to employee %s",
            request_id, days, employee.id,
        )

        return LeaveOutcome(
            success=True,
            message="Leave request approved.",
            available=employee.leave_balance,
            requested=days,
            request=LeaveService._build_request_response(
                leave_request, employee=employee,
            ),
            employee=LeaveService._build_employee_brief(employee),
        )

    # ─────────────────────────────────────────────────────────────────
    # Approval worklists
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def scope_for_role(role: UserRole) -> Optional[ApproverScope]:
        if role == UserRole.admin:
            return ApproverScope.global_
        if role == UserRole.manager:
            return ApproverScope.team
        return None

    @staticmethod
    async def pending_for(
        db: AsyncSession,
        approver_id: uuid.UUID,
        scope: ApproverScope,
    ) -> list[LeaveRequestOut]:
        """Pending requests the approver may act on, oldest first."""
        approver = await db.get(Employee, approver_id)
        if approver is None:
            raise NotFoundException("Employee", approver_id)

        query = (
            select(LeaveRequest)
            .where(LeaveRequest.status == LeaveStatus.pending)
            .options(selectinload(LeaveRequest.employee))
            .order_by(LeaveRequest.request_date.asc())
        )

        if scope == ApproverScope.team:
            reports = await db.execute(
                select(Employee.id).where(Employee.manager_id == approver_id)
            )
            report_ids = [r[0] for r in reports.all()]
            if not report_ids:
                return []
            query = query.where(LeaveRequest.employee_id.in_(report_ids))

        result = await db.execute(query)
        return [
            LeaveService._build_request_response(r, employee=r.employee)
            for r in result.scalars().all()
        ]

    # ─────────────────────────────────────────────────────────────────
    # History & dashboards
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        params: PaginationParams,
    ) -> LeaveRequestPage:
        """The employee's own requests, newest first."""
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.request_date.desc())
        )
        rows, meta = await paginate(db, query, params)
        return LeaveRequestPage(
            data=[LeaveService._build_request_response(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def month_summary(
        db: AsyncSession,
        employee_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> MonthlyLeaveOut:
        """Requests starting in the month of ``today`` and the approved days among them."""
        today = today or datetime.now(timezone.utc).date()
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)

        month_start = today.replace(day=1)
        if month_start.month == 12:
            next_month = month_start.replace(year=month_start.year + 1, month=1)
        else:
            next_month = month_start.replace(month=month_start.month + 1)

        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.start_date >= month_start,
                LeaveRequest.start_date < next_month,
            )
            .order_by(LeaveRequest.start_date)
        )
        requests = [
            LeaveService._build_request_response(r) for r in result.scalars().all()
        ]
        days_on_leave = sum(
            r.business_days for r in requests if r.status == LeaveStatus.approved
        )

        return MonthlyLeaveOut(
            month=today.strftime(MONTH_LABEL_FORMAT),
            requests=requests,
            days_on_leave=days_on_leave,
            remaining_balance=employee.leave_balance,
        )

    @staticmethod
    async def status_summary(db: AsyncSession) -> LeaveStatusSummary:
        result = await db.execute(
            select(LeaveRequest.status, func.count()).group_by(LeaveRequest.status)
        )
        counts = {status: count for status, count in result.all()}
        return LeaveStatusSummary(
            total=sum(counts.values()),
            pending=counts.get(LeaveStatus.pending, 0),
            approved=counts.get(LeaveStatus.approved, 0),
            rejected=counts.get(LeaveStatus.rejected, 0),
        )
