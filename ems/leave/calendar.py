"""Business-day arithmetic for leave charging."""

from __future__ import annotations

from datetime import date, datetime

from ems.common.constants import WEEKEND_DAYS

_WORKDAYS_PER_WEEK = 7 - len(WEEKEND_DAYS)


def _as_date(value: date) -> date:
    # datetime is a subclass of date; drop the time-of-day
    if isinstance(value, datetime):
        return value.date()
    return value


def count_business_days(start_date: date, end_date: date) -> int:
    """Count Mon–Fri days in the inclusive range [start_date, end_date].

    A reversed range (start after end) counts as zero days. Whole weeks are
    counted arithmetically, so the cost does not grow with the range length.
    """
    start = _as_date(start_date)
    end = _as_date(end_date)
    if start > end:
        return 0

    full_weeks, leftover = divmod((end - start).days + 1, 7)
    business_days = full_weeks * _WORKDAYS_PER_WEEK

    # Leftover days start on the same weekday as ``start``
    first_weekday = start.weekday()
    for offset in range(leftover):
        if (first_weekday + offset) % 7 not in WEEKEND_DAYS:
            business_days += 1
    return business_days
