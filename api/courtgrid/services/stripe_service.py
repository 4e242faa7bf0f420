"""Stripe integration service for booking payments.

Wraps the Stripe Python SDK. Amounts go to Stripe in the currency's minor
unit; the booking id travels in the PaymentIntent metadata so the webhook
can find the booking again.
"""

import logging

import stripe

from courtgrid.core.config import settings
from courtgrid.core.errors import PaymentError
from courtgrid.models.booking import Booking
from courtgrid.services.pricing import to_minor_units

logger = logging.getLogger(__name__)


def _configure() -> None:
    """Set the Stripe API key from settings."""
    stripe.api_key = settings.stripe_secret_key


async def create_payment_intent(booking: Booking, facility_slug: str) -> stripe.PaymentIntent:
    """Create a Stripe PaymentIntent for a pending booking.

    Returns the PaymentIntent object (caller reads .id and .client_secret).
    """
    _configure()

    try:
        return stripe.PaymentIntent.create(
            amount=to_minor_units(booking.total_amount, booking.currency),
            currency=booking.currency.lower(),
            receipt_email=booking.customer_email,
            metadata={
                "booking_id": str(booking.id),
                "facility_id": str(booking.facility_id),
                "facility_slug": facility_slug,
                "court_id": str(booking.court_id),
                "booking_date": booking.booking_date.isoformat(),
            },
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as exc:
        logger.error("Stripe PaymentIntent creation failed for booking %s: %s", booking.id, exc)
        raise PaymentError("Payment provider unavailable", details={"booking_id": str(booking.id)}) from exc


def cancel_payment_intent(payment_intent_id: str) -> None:
    """Cancel a pending PaymentIntent (e.g. on booking cancellation)."""
    _configure()

    try:
        stripe.PaymentIntent.cancel(payment_intent_id)
    except stripe.StripeError as exc:
        # Already succeeded or cancelled on Stripe's side; the booking is cancelled regardless
        logger.warning("Could not cancel PaymentIntent %s: %s", payment_intent_id, exc)


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event."""
    return stripe.Webhook.construct_event(
        payload,
        sig_header,
        settings.stripe_webhook_secret,
    )
