"""Timestamp parsing shared by recency scoring and metadata filtering"""

from datetime import date, datetime, timezone
from typing import Optional, Union

SECONDS_PER_DAY = 86400.0


def parse_timestamp(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into a timezone-aware datetime.

    Naive values are treated as UTC. Returns None when the value cannot be parsed.

    Examples:
        >>> parse_timestamp("2024-03-01T10:00:00Z")
        datetime.datetime(2024, 3, 1, 10, 0, tzinfo=datetime.timezone.utc)
        >>> parse_timestamp("not a date") is None
        True
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def age_in_days(occurred_at: datetime, now: Optional[datetime] = None) -> float:
    """Fractional days between occurred_at and now (negative for future dates)"""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - occurred_at).total_seconds() / SECONDS_PER_DAY
