"""Time Utilities for UTC management"""

from datetime import datetime, timezone
from typing import Optional


def get_utc_now() -> datetime:
    """
    Returns a naive UTC datetime.
    Matches the DB schema (TIMESTAMP WITHOUT TIME ZONE).
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso8601(value: Optional[datetime]) -> Optional[str]:
    """Render a naive UTC timestamp as ISO 8601 with an explicit offset."""
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()
