from datetime import datetime, timedelta
from typing import Optional

from backoffice.core.clock import utcnow
from backoffice.core.config import settings


def window() -> timedelta:
    return timedelta(days=settings.recovery_window_days)


def is_recoverable(deleted_at: datetime, now: Optional[datetime] = None) -> bool:
    """Recoverable while now - deleted_at <= window."""
    now = now or utcnow()
    return now - deleted_at <= window()


def is_purgeable(deleted_at: datetime, now: Optional[datetime] = None) -> bool:
    return not is_recoverable(deleted_at, now)


def days_left(deleted_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until the window closes, rounded up; 0 once closed."""
    now = now or utcnow()
    remaining = deleted_at + window() - now
    if remaining.total_seconds() <= 0:
        return 0
    return -(-int(remaining.total_seconds()) // 86400)
