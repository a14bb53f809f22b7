"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def grace_period_end(due_date: date, grace_days: int) -> date:
    """Last day an overdue invoice is still inside its grace period"""
    return due_date + timedelta(days=grace_days)


def is_past_grace_period(due_date: date, grace_days: int, as_of: date) -> bool:
    return as_of > grace_period_end(due_date, grace_days)
