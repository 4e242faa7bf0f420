"""Wall clock used for past-date checks and discount validity windows.

Injected everywhere "now" matters so tests can pin time.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from courtgrid.core.config import settings


class Clock:
    def __init__(self, tz: str | None = None):
        self.tz = ZoneInfo(tz or settings.timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests."""
    return _clock
