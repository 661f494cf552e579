"""Date manipulation utilities"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)


def not_before(candidate: datetime, previous: Optional[datetime]) -> datetime:
    """Clamp a timestamp so a sequence of them never goes backwards"""
    if previous is not None and candidate < previous:
        return previous
    return candidate
