"""Time helpers.

All engine timestamps are timezone-aware UTC datetimes. Components accept a
``Clock`` so tests can drive time explicitly.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Aware UTC datetime."""
    return datetime.now(timezone.utc)
