"""Payment routes: start card payment for a pending booking."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.database import get_db
from courtgrid.core.errors import InvalidBookingTransition
from courtgrid.models.booking import BookingStatus
from courtgrid.models.facility import Facility
from courtgrid.schemas import PaymentIntentOut, PaymentIntentRequest
from courtgrid.services import booking_status
from courtgrid.services.pricing import to_minor_units
from courtgrid.services.stripe_service import create_payment_intent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/intent", response_model=PaymentIntentOut)
async def create_intent(body: PaymentIntentRequest, db: AsyncSession = Depends(get_db)):
    booking = await booking_status.get_booking(db, body.booking_id)
    if booking.status != BookingStatus.PENDING:
        raise InvalidBookingTransition(
            f"Cannot take payment for a {booking.status} booking",
            details={"booking_id": str(booking.id), "status": str(booking.status)},
        )

    facility = await db.get(Facility, booking.facility_id)
    intent = await create_payment_intent(booking, facility.slug)

    booking.stripe_payment_intent_id = intent.id
    await db.flush()
    logger.info("PaymentIntent %s created for booking %s", intent.id, booking.id)

    return PaymentIntentOut(
        booking_id=booking.id,
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount=to_minor_units(booking.total_amount, booking.currency),
        currency=booking.currency,
    )
