"""Booking status transitions after creation.

    pending --payment--> paid --vendor--> completed
       \\                  |
        +---cancel--------+--> cancelled

completed and cancelled are terminal. Each transition is one conditional
UPDATE guarded on the current status, so two concurrent callers cannot both
move the same booking. Transitions are never retried automatically.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.errors import BookingNotFound, InvalidBookingTransition
from courtgrid.models.booking import Booking, BookingStatus
from courtgrid.models.base import utcnow
from courtgrid.services import discounts

logger = logging.getLogger(__name__)

CANCELLABLE = (BookingStatus.PENDING, BookingStatus.PAID)


async def get_booking(db: AsyncSession, booking_id: uuid.UUID, facility_id: uuid.UUID | None = None) -> Booking:
    """Load a booking, optionally scoped to one facility (vendor access)."""
    stmt = select(Booking).where(Booking.id == booking_id)
    if facility_id is not None:
        stmt = stmt.where(Booking.facility_id == facility_id)
    result = await db.execute(stmt)
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFound("Booking not found", details={"booking_id": str(booking_id)})
    return booking


async def _transition(
    db: AsyncSession,
    booking_id: uuid.UUID,
    allowed_from: tuple[BookingStatus, ...],
    to_status: BookingStatus,
    facility_id: uuid.UUID | None = None,
    **values,
) -> bool:
    """Compare-and-write. Returns False when the booking was not in allowed_from."""
    stmt = update(Booking).where(Booking.id == booking_id, Booking.status.in_(allowed_from))
    if facility_id is not None:
        stmt = stmt.where(Booking.facility_id == facility_id)
    result = await db.execute(
        stmt.values(status=to_status, updated_at=utcnow(), **values).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _reload(db: AsyncSession, booking_id: uuid.UUID, facility_id: uuid.UUID | None = None) -> Booking:
    booking = await get_booking(db, booking_id, facility_id)
    await db.refresh(booking)
    return booking


async def mark_paid(
    db: AsyncSession,
    booking_id: uuid.UUID,
    now: datetime,
    payment_intent_id: str | None = None,
) -> Booking:
    """Payment confirmation callback.

    Idempotent: a repeat callback for a booking that is already paid or
    completed is a no-op. Paying a cancelled booking is rejected.
    The booking's discount code is redeemed by the call that wins the
    pending -> paid transition.
    """
    values = {"paid_at": now}
    if payment_intent_id:
        values["stripe_payment_intent_id"] = payment_intent_id

    moved = await _transition(db, booking_id, (BookingStatus.PENDING,), BookingStatus.PAID, **values)
    booking = await _reload(db, booking_id)

    if not moved:
        if booking.status in (BookingStatus.PAID, BookingStatus.COMPLETED):
            logger.info("Booking %s already %s, ignoring repeat payment confirmation", booking_id, booking.status)
            return booking
        raise InvalidBookingTransition(
            f"Cannot mark a {booking.status} booking as paid",
            details={"booking_id": str(booking_id), "status": str(booking.status)},
        )

    if booking.discount_code:
        await discounts.redeem(db, booking.discount_code, booking.id)

    logger.info("Booking %s marked paid", booking_id)
    return booking


async def cancel(
    db: AsyncSession,
    booking_id: uuid.UUID,
    now: datetime,
    reason: str | None = None,
    facility_id: uuid.UUID | None = None,
) -> Booking:
    """Cancel a pending or paid booking. Freeing a slot needs no overlap re-check."""
    moved = await _transition(
        db,
        booking_id,
        CANCELLABLE,
        BookingStatus.CANCELLED,
        facility_id=facility_id,
        cancelled_at=now,
        cancellation_reason=reason,
    )
    booking = await _reload(db, booking_id, facility_id)
    if not moved:
        raise InvalidBookingTransition(
            f"Cannot cancel a {booking.status} booking",
            details={"booking_id": str(booking_id), "status": str(booking.status)},
        )

    logger.info("Booking %s cancelled%s", booking_id, f" ({reason})" if reason else "")
    return booking


async def complete(db: AsyncSession, booking_id: uuid.UUID, facility_id: uuid.UUID | None = None) -> Booking:
    """Mark a paid booking as played."""
    moved = await _transition(
        db, booking_id, (BookingStatus.PAID,), BookingStatus.COMPLETED, facility_id=facility_id
    )
    booking = await _reload(db, booking_id, facility_id)
    if not moved:
        raise InvalidBookingTransition(
            f"Cannot complete a {booking.status} booking",
            details={"booking_id": str(booking_id), "status": str(booking.status)},
        )

    logger.info("Booking %s completed", booking_id)
    return booking
