"""Availability read path.

resolve facility -> hourly grid -> qualifying bookings for the date -> annotate.
The date is validated before any storage access; driver failures surface
as StorageUnavailable.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.errors import storage_errors
from courtgrid.models.booking import ACTIVE_STATUSES, Booking
from courtgrid.models.facility import Facility
from courtgrid.services.admission import parse_date
from courtgrid.services.conflicts import annotate
from courtgrid.services.slot_grid import generate_slots, hours_for
from courtgrid.services.tenant import TenantResolver

logger = logging.getLogger(__name__)

BookingsLoader = Callable[[uuid.UUID, date], Awaitable[Sequence[Booking]]]


def bookings_loader(db: AsyncSession) -> BookingsLoader:
    """Loader for the qualifying bookings of one facility on one date."""

    async def load(facility_id: uuid.UUID, query_date: date) -> Sequence[Booking]:
        result = await db.execute(
            select(Booking).where(
                Booking.facility_id == facility_id,
                Booking.booking_date == query_date,
                Booking.status.in_(ACTIVE_STATUSES),
            )
        )
        return result.scalars().all()

    return load


def facility_summary(facility: Facility, query_date: date | None = None) -> dict:
    summary = {
        "id": str(facility.id),
        "slug": facility.slug,
        "name": facility.name,
        "address": facility.address,
        "price_per_hour": str(facility.court_rate),
        "currency": facility.currency,
        "courts": [{"id": c.id, "name": c.name, "sport": c.sport} for c in facility.active_courts],
    }
    if query_date is not None:
        hours = hours_for(facility, query_date)
        summary["operating_hours"] = hours.as_dict() if hours else None
    return summary


async def get_availability(
    resolver: TenantResolver,
    load_bookings: BookingsLoader,
    identifier: str | None,
    date_str: str | None,
) -> dict:
    query_date = parse_date(date_str, "date")
    with storage_errors("loading availability"):
        facility = await resolver.resolve(identifier)
        existing = await load_bookings(facility.id, query_date)

    slots = generate_slots(facility, query_date)
    if not slots:
        logger.warning("Facility %s has no active courts; availability is empty", facility.slug)

    availability = annotate(slots, existing)

    total = sum(len(court_slots) for court_slots in availability.values())
    available = sum(sum(court_slots.values()) for court_slots in availability.values())

    return {
        "facility": facility_summary(facility, query_date),
        "date": query_date.isoformat(),
        "availability": availability,
        "summary": {"total_slots": total, "available_slots": available, "court_count": len(availability)},
    }
