"""Business-local calendar helpers."""

from datetime import date, datetime
from zoneinfo import ZoneInfo


def local_today(tz_name: str) -> date:
    """Current calendar date in the business timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def elapsed_days(since: date, today: date) -> int:
    """Whole days between two midnight-truncated dates."""
    return (today - since).days
