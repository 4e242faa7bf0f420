"""Pricing service for booking fee calculation.

court rental = facility hourly rate x booked hours
subtotal     = court rental - discount
service fee  = subtotal x facility service fee %
tax          = (subtotal + service fee) x facility tax %
total        = subtotal + service fee + tax

All figures are Decimals rounded half-up to cents.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

from courtgrid.models.facility import Facility

CENTS = Decimal("0.01")

# Currencies whose Stripe amount is not in hundredths
_ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND"}


def money(value: Decimal | int | float | str) -> Decimal:
    """Round to two decimal places, half away from zero."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def duration_minutes(start_time: time, end_time: time) -> int:
    delta = datetime.combine(date.min, end_time) - datetime.combine(date.min, start_time)
    return int(delta.total_seconds() // 60)


@dataclass(frozen=True)
class PriceQuote:
    court_rental: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    service_fee: Decimal
    tax: Decimal
    total: Decimal
    currency: str

    def as_dict(self) -> dict[str, str]:
        return {
            "court_rental": str(self.court_rental),
            "discount_amount": str(self.discount_amount),
            "subtotal": str(self.subtotal),
            "service_fee": str(self.service_fee),
            "tax": str(self.tax),
            "total": str(self.total),
            "currency": self.currency,
        }


def court_rental(facility: Facility, start_time: time, end_time: time) -> Decimal:
    """Hourly rate scaled linearly by the booked minutes."""
    return money(Decimal(facility.court_rate) * duration_minutes(start_time, end_time) / 60)


def quote(
    facility: Facility,
    start_time: time,
    end_time: time,
    discount_amount: Decimal = Decimal("0"),
) -> PriceQuote:
    rental = court_rental(facility, start_time, end_time)
    discount = min(money(discount_amount), rental)
    subtotal = rental - discount
    service_fee = money(subtotal * Decimal(facility.service_fee_percentage) / 100)
    tax = money((subtotal + service_fee) * Decimal(facility.tax_percentage) / 100)
    return PriceQuote(
        court_rental=rental,
        discount_amount=discount,
        subtotal=subtotal,
        service_fee=service_fee,
        tax=tax,
        total=subtotal + service_fee + tax,
        currency=facility.currency,
    )


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Amount as the integer Stripe expects (cents for CAD/USD)."""
    if currency.upper() in _ZERO_DECIMAL_CURRENCIES:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
