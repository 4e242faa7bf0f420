"""Operating hours and hourly slot generation.

Pure calculation module: no database, no async, no FastAPI dependencies.
Slots are whole hours; a booking itself may start or end off the hour,
but the published grid is hour-granular.
"""

from datetime import date, time
from typing import NamedTuple

from courtgrid.models.facility import Facility

SLOT_MINUTES = 60


class TimeSlot(NamedTuple):
    """A bookable hour [start, end) on one court."""

    start: time
    end: time

    @property
    def label(self) -> str:
        return self.start.strftime("%H:00")


class DayHours(NamedTuple):
    open_time: time
    close_time: time

    def as_dict(self) -> dict[str, str]:
        return {"open": self.open_time.strftime("%H:%M"), "close": self.close_time.strftime("%H:%M")}


def hours_for(facility: Facility, query_date: date) -> DayHours | None:
    """The facility's opening hours on query_date, or None if closed all day."""
    row = facility.hours_for_weekday(query_date.weekday())
    if row is None:
        return None
    return DayHours(row.open_time, row.close_time)


def hourly_slots(hours: DayHours | None) -> list[TimeSlot]:
    """One slot per whole hour in [open hour, close hour). Minutes are floored."""
    if hours is None:
        return []
    open_hour = hours.open_time.hour
    close_hour = hours.close_time.hour
    # close_time is at most 23:59, so hour + 1 never reaches 24
    return [TimeSlot(time(hour), time(hour + 1)) for hour in range(open_hour, close_hour)]


def generate_slots(facility: Facility, query_date: date) -> dict[int, list[TimeSlot]]:
    """Ordered hourly slots for every active court on query_date.

    Inactive courts are left out entirely rather than reported as unavailable.
    """
    slots = hourly_slots(hours_for(facility, query_date))
    return {court.id: list(slots) for court in sorted(facility.active_courts, key=lambda c: c.id)}
