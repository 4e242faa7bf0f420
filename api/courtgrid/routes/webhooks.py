"""Stripe webhook handler.

payment_intent.succeeded marks the booking paid (idempotent: Stripe may
deliver the same event more than once). payment_intent.canceled cancels a
still-pending booking. payment_intent.payment_failed is only logged; the
customer may retry with another card.
"""

import logging
import uuid

import stripe
from fastapi import APIRouter, Depends, Request
from sqlalchemy import select

from courtgrid.core.clock import Clock, get_clock
from courtgrid.core.database import async_session_factory
from courtgrid.core.errors import BookingNotFound, InvalidBookingTransition, ValidationError
from courtgrid.models.booking import Booking, BookingStatus
from courtgrid.services import booking_status
from courtgrid.services.stripe_service import construct_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, clock: Clock = Depends(get_clock)):
    """Handle Stripe webhook events.

    Uses a dedicated DB session (not the request-scoped one) because webhook
    processing must commit independently of any ongoing request.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = construct_webhook_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError):
        raise ValidationError("Invalid webhook signature", code="invalid_signature") from None

    event_type = event["type"]
    data = event["data"]["object"]

    if event_type == "payment_intent.succeeded":
        return await _handle_payment_succeeded(data, clock)
    if event_type == "payment_intent.canceled":
        return await _handle_payment_canceled(data, clock)
    if event_type == "payment_intent.payment_failed":
        logger.info("Payment failed for PaymentIntent %s", data["id"])
    else:
        logger.debug("Ignoring Stripe event %s", event_type)

    return {"status": "ok"}


async def _find_booking_id(db, payment_intent: dict) -> uuid.UUID | None:
    """Booking id from the PaymentIntent metadata, else by the stored PaymentIntent id."""
    metadata = payment_intent.get("metadata") or {}
    if metadata.get("booking_id"):
        try:
            return uuid.UUID(metadata["booking_id"])
        except ValueError:
            logger.warning("PaymentIntent %s has malformed booking_id metadata", payment_intent["id"])

    result = await db.execute(select(Booking.id).where(Booking.stripe_payment_intent_id == payment_intent["id"]))
    return result.scalar_one_or_none()


async def _handle_payment_succeeded(payment_intent: dict, clock: Clock) -> dict:
    """Mark the booking as paid."""
    pi_id = payment_intent["id"]

    async with async_session_factory() as db:
        booking_id = await _find_booking_id(db, payment_intent)
        if booking_id is None:
            logger.warning("No booking for PaymentIntent %s", pi_id)
            return {"status": "ignored"}

        try:
            await booking_status.mark_paid(db, booking_id, clock.now(), payment_intent_id=pi_id)
        except BookingNotFound:
            logger.warning("PaymentIntent %s names unknown booking %s", pi_id, booking_id)
            return {"status": "ignored"}
        except InvalidBookingTransition as exc:
            # Paid after cancellation: needs a manual refund, Stripe must not keep retrying
            logger.error("Payment %s received for booking %s: %s", pi_id, booking_id, exc.message)
            return {"status": "ignored"}

        await db.commit()

    return {"status": "ok"}


async def _handle_payment_canceled(payment_intent: dict, clock: Clock) -> dict:
    """Cancel the booking if it is still waiting for payment."""
    async with async_session_factory() as db:
        booking_id = await _find_booking_id(db, payment_intent)
        if booking_id is None:
            return {"status": "ignored"}

        try:
            booking = await booking_status.get_booking(db, booking_id)
        except BookingNotFound:
            logger.warning("PaymentIntent %s names unknown booking %s", payment_intent["id"], booking_id)
            return {"status": "ignored"}
        if booking.status != BookingStatus.PENDING:
            return {"status": "ignored"}

        await booking_status.cancel(db, booking_id, clock.now(), reason="Payment cancelled")
        await db.commit()

    return {"status": "ok"}
