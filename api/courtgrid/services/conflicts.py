"""Booking conflict detection.

Two intervals [s1, e1) and [s2, e2) on the same court and date conflict
iff s1 < e2 and s2 < e1. That single test covers a new booking starting
inside, ending inside, or containing an existing one; touching endpoints
(e1 == s2) do not conflict. Only pending, paid and completed bookings
hold a court.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, time
from typing import Protocol

from courtgrid.models.booking import ACTIVE_STATUSES, BookingStatus
from courtgrid.services.slot_grid import TimeSlot


class ReservationLike(Protocol):
    court_id: int
    booking_date: date
    start_time: time
    end_time: time
    status: BookingStatus


@dataclass(frozen=True)
class BookingWindow:
    """A candidate reservation: one court, one date, a half-open time interval."""

    court_id: int
    booking_date: date
    start_time: time
    end_time: time


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a


def holds_court(booking: ReservationLike) -> bool:
    return booking.status in ACTIVE_STATUSES


def find_conflicts(candidate: BookingWindow, existing: Iterable[ReservationLike]) -> list[ReservationLike]:
    """Qualifying bookings on the candidate's court and date that overlap it."""
    return [
        b
        for b in existing
        if holds_court(b)
        and b.court_id == candidate.court_id
        and b.booking_date == candidate.booking_date
        and overlaps(candidate.start_time, candidate.end_time, b.start_time, b.end_time)
    ]


def conflicts(candidate: BookingWindow, existing: Iterable[ReservationLike]) -> bool:
    return bool(find_conflicts(candidate, existing))


def annotate(
    slots: Mapping[int, list[TimeSlot]],
    existing: Iterable[ReservationLike],
) -> dict[int, dict[str, bool]]:
    """Mark each generated slot available (True) or taken (False).

    `existing` must already be restricted to one facility and date. A slot is
    taken when its [hour, hour+1) window overlaps any qualifying booking on
    that court, so a 09:30-10:30 booking blocks both 09:00 and 10:00.
    """
    by_court: dict[int, list[ReservationLike]] = {}
    for booking in existing:
        if holds_court(booking):
            by_court.setdefault(booking.court_id, []).append(booking)

    availability: dict[int, dict[str, bool]] = {}
    for court_id, court_slots in slots.items():
        taken = by_court.get(court_id, [])
        availability[court_id] = {
            slot.label: not any(overlaps(slot.start, slot.end, b.start_time, b.end_time) for b in taken)
            for slot in court_slots
        }
    return availability


def describe(booking) -> dict:
    """Diagnostic view of a competing booking, safe to return to the client."""
    return {
        "booking_id": str(booking.id),
        "court_id": booking.court_id,
        "booking_date": booking.booking_date.isoformat(),
        "start_time": booking.start_time.strftime("%H:%M"),
        "end_time": booking.end_time.strftime("%H:%M"),
        "status": str(booking.status),
    }
