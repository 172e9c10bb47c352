"""Leave balance ledger — lazy ledger rows, deductions and grants.

The employee's ``leave_balance`` counter and the ``LeaveBalance`` ledger row
are only written here, always together and inside one SAVEPOINT, so the two
never drift apart.
"""

from __future__ import annotations

import enum
import logging
import uuid
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ems.common.exceptions import NotFoundException, ValidationException
from ems.core_hr.models import Employee
from ems.leave.models import LeaveBalance
from ems.leave.schemas import LeaveBalanceOut

logger = logging.getLogger(__name__)


class DeductionStatus(str, enum.Enum):
    ok = "ok"
    invalid_days = "invalid_days"
    employee_not_found = "employee_not_found"
    insufficient_balance = "insufficient_balance"
    persistence_failure = "persistence_failure"


class LedgerResult(BaseModel):
    """Typed outcome of a ledger mutation."""

    status: DeductionStatus
    requested: int
    available: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == DeductionStatus.ok

    @property
    def message(self) -> str:
        if self.status == DeductionStatus.ok:
            return f"{self.requested} day(s) deducted from leave balance."
        if self.status == DeductionStatus.invalid_days:
            return "Invalid leave period selected."
        if self.status == DeductionStatus.employee_not_found:
            return "Employee not found."
        if self.status == DeductionStatus.insufficient_balance:
            return (
                f"Insufficient leave balance. Available: {self.available} days, "
                f"Requested: {self.requested} days."
            )
        return "Failed to update leave balance. Please try again."


class LeaveLedger:
    """Async ledger operations over ``Employee.leave_balance`` + ``LeaveBalance``."""

    @staticmethod
    async def ensure_exists(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Optional[LeaveBalance]:
        """Return the employee's ledger row, creating it on first use.

        A new row is seeded with the employee's current ``leave_balance`` as
        ``total_leaves`` and nothing taken. Returns ``None`` when the employee
        does not exist.
        """
        result = await db.execute(
            select(LeaveBalance).where(LeaveBalance.employee_id == employee_id)
        )
        ledger = result.scalars().first()
        if ledger is not None:
            return ledger

        employee = await db.get(Employee, employee_id)
        if employee is None:
            return None

        ledger = LeaveBalance(
            employee_id=employee_id,
            total_leaves=employee.leave_balance,
            leaves_taken=0,
        )
        db.add(ledger)
        await db.flush()
        logger.info(
            "Created leave ledger for employee %s with %d day(s)",
            employee_id, ledger.total_leaves,
        )
        return ledger

    @staticmethod
    async def _decrement_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        days: int,
    ) -> bool:
        """Atomically take ``days`` off the employee counter if enough remain."""
        result = await db.execute(
            update(Employee)
            .where(Employee.id == employee_id, Employee.leave_balance >= days)
            .values(leave_balance=Employee.leave_balance - days)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def apply_deduction(
        db: AsyncSession,
        employee_id: uuid.UUID,
        days: int,
    ) -> LedgerResult:
        """Charge ``days`` to the employee: counter down, ledger ``leaves_taken`` up."""
        if days <= 0:
            return LedgerResult(status=DeductionStatus.invalid_days, requested=days)

        employee = await db.get(Employee, employee_id)
        if employee is None:
            return LedgerResult(status=DeductionStatus.employee_not_found, requested=days)

        ledger = await LeaveLedger.ensure_exists(db, employee_id)
        if employee.leave_balance < days:
            return LedgerResult(
                status=DeductionStatus.insufficient_balance,
                requested=days,
                available=employee.leave_balance,
            )

        try:
            async with db.begin_nested():
                if not await LeaveLedger._decrement_balance(db, employee_id, days):
                    # Someone else spent the balance since we read it
                    await db.refresh(employee)
                    return LedgerResult(
                        status=DeductionStatus.insufficient_balance,
                        requested=days,
                        available=employee.leave_balance,
                    )
                ledger.leaves_taken += days
                await db.flush()
        except SQLAlchemyError:
            logger.exception(
                "Leave deduction of %d day(s) failed for employee %s",
                days, employee_id,
            )
            return LedgerResult(
                status=DeductionStatus.persistence_failure,
                requested=days,
                available=None,
            )

        await db.refresh(employee)
        logger.info(
            "Deducted %d day(s) for employee %s; %d remaining",
            days, employee_id, employee.leave_balance,
        )
        return LedgerResult(
            status=DeductionStatus.ok,
            requested=days,
            available=employee.leave_balance,
        )

    @staticmethod
    async def grant(
        db: AsyncSession,
        employee_id: uuid.UUID,
        days: int,
    ) -> LeaveBalanceOut:
        """Admin grant: raise both the allotment and the running counter."""
        if days <= 0:
            raise ValidationException({"days": ["Granted days must be positive."]})

        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        ledger = await LeaveLedger.ensure_exists(db, employee_id)

        async with db.begin_nested():
            ledger.total_leaves += days
            employee.leave_balance += days
            await db.flush()

        logger.info("Granted %d day(s) to employee %s", days, employee_id)
        return LeaveLedger._build_balance_out(ledger, employee)

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> LeaveBalanceOut:
        """Ledger totals for an employee (creates the ledger if missing)."""
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        ledger = await LeaveLedger.ensure_exists(db, employee_id)

        return LeaveLedger._build_balance_out(ledger, employee)

    @staticmethod
    def _build_balance_out(ledger: LeaveBalance, employee: Employee) -> LeaveBalanceOut:
        return LeaveBalanceOut(
            employee_id=ledger.employee_id,
            total_leaves=ledger.total_leaves,
            leaves_taken=ledger.leaves_taken,
            remaining_leaves=ledger.remaining_leaves,
            leave_balance=employee.leave_balance,
        )
