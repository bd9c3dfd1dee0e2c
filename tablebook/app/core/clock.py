from datetime import datetime
from zoneinfo import ZoneInfo

from tablebook.app.core.config import settings


def venue_now() -> datetime:
    """Current wall-clock time at the venue."""
    return datetime.now(ZoneInfo(settings.VENUE_TIMEZONE))
