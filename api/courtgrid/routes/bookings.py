"""Booking routes: create, view, cancel.

Creation goes through the admission service, which owns its own
transactions; status changes use the request-scoped session.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.clock import Clock, get_clock
from courtgrid.core.database import get_db
from courtgrid.core.dependencies import facility_identifier, get_admission
from courtgrid.models.booking import BookingStatus
from courtgrid.schemas import BookingCreate, BookingOut, CancelRequest
from courtgrid.services import booking_status
from courtgrid.services.admission import BookingAdmission, BookingRequest
from courtgrid.services.stripe_service import cancel_payment_intent

router = APIRouter(prefix="/bookings", tags=["bookings"])


def to_request(body: BookingCreate) -> BookingRequest:
    return BookingRequest(**body.model_dump(exclude={"facility"}))


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    identifier: str | None = Depends(facility_identifier),
    admission: BookingAdmission = Depends(get_admission),
):
    return await admission.create_booking(identifier or body.facility, to_request(body))


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(booking_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await booking_status.get_booking(db, booking_id)


@router.post("/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(
    booking_id: uuid.UUID,
    body: CancelRequest | None = None,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    before = await booking_status.get_booking(db, booking_id)
    was_pending = before.status == BookingStatus.PENDING

    booking = await booking_status.cancel(db, booking_id, clock.now(), reason=body.reason if body else None)

    # Release the customer's card authorisation for an unpaid booking
    if was_pending and booking.stripe_payment_intent_id:
        cancel_payment_intent(booking.stripe_payment_intent_id)

    return booking
