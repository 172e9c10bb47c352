"""Enums and constants for the EMS leave service."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ApproverScope(str, enum.Enum):
    """Which pending requests an approver sees."""

    global_ = "global"    # every pending request (admin)
    team = "team"         # pending requests of direct reports (manager)


# Saturday, Sunday (date.weekday() numbering)
WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})
# Longest inclusive range a single request may cover
MAX_LEAVE_SPAN_DAYS = 366

# ── Misc constants ──────────────────────────────────────────────────

# e.g. "March 2026"
MONTH_LABEL_FORMAT = "%B %Y"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
