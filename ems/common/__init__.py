"""Common module — shared utilities for the EMS leave service."""

from ems.common.constants import (
    MONTH_LABEL_FORMAT,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    WEEKEND_DAYS,
    ApproverScope,
    LeaveStatus,
    UserRole,
)
from ems.common.exceptions import (
    AppException,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    PersistenceException,
    ValidationException,
    register_exception_handlers,
)
from ems.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Constants / Enums
    "ApproverScope",
    "LeaveStatus",
    "UserRole",
    "MONTH_LABEL_FORMAT",
    "WEEKEND_DAYS",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "InsufficientBalanceException",
    "NotFoundException",
    "PersistenceException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
