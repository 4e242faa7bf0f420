"""Discount code evaluation and redemption.

Evaluation is side-effect free and may be called as often as the customer
edits their cart. Redemption (used_count + 1) happens once per booking, at
payment confirmation, never at preview time.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.clock import Clock
from courtgrid.models.base import utcnow
from courtgrid.models.discount import Discount, DiscountRedemption, DiscountType
from courtgrid.services.pricing import money

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = "not_found"
REASON_INACTIVE = "inactive"
REASON_NOT_YET_VALID = "not_yet_valid"
REASON_EXPIRED = "expired"
REASON_BELOW_MINIMUM = "below_minimum"
REASON_USAGE_EXHAUSTED = "usage_exhausted"

REASON_MESSAGES = {
    REASON_NOT_FOUND: "Invalid or expired discount code",
    REASON_INACTIVE: "Discount code is not currently valid",
    REASON_NOT_YET_VALID: "Discount code is not valid yet",
    REASON_EXPIRED: "Discount code has expired",
    REASON_BELOW_MINIMUM: "Order does not meet the minimum amount for this code",
    REASON_USAGE_EXHAUSTED: "Discount code has reached its usage limit",
}


@dataclass(frozen=True)
class DiscountEvaluation:
    valid: bool
    code: str
    discount_amount: Decimal = Decimal("0.00")
    reason: str | None = None
    description: str | None = None

    @property
    def message(self) -> str | None:
        return REASON_MESSAGES.get(self.reason) if self.reason else None


def normalise_code(code: str) -> str:
    return code.strip().upper()


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def usage_exhausted(discount: Discount) -> bool:
    return discount.usage_limit is not None and discount.used_count >= discount.usage_limit


def calculate_discount(discount: Discount, amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if discount.discount_type == DiscountType.PERCENTAGE:
        value = amount * Decimal(discount.value) / 100
        if discount.max_discount is not None and value > discount.max_discount:
            value = Decimal(discount.max_discount)
    else:
        value = min(Decimal(discount.value), amount)
    return money(max(value, Decimal("0")))


def evaluate(discount: Discount | None, amount: Decimal, now: datetime, code: str = "") -> DiscountEvaluation:
    """Check a discount against an order amount at a point in time."""
    if discount is None:
        return DiscountEvaluation(valid=False, code=normalise_code(code), reason=REASON_NOT_FOUND)

    def invalid(reason: str) -> DiscountEvaluation:
        return DiscountEvaluation(valid=False, code=discount.code, reason=reason, description=discount.description)

    if not discount.is_active:
        return invalid(REASON_INACTIVE)
    if usage_exhausted(discount):
        return invalid(REASON_USAGE_EXHAUSTED)
    if now < _aware(discount.valid_from):
        return invalid(REASON_NOT_YET_VALID)
    if now > _aware(discount.valid_until):
        return invalid(REASON_EXPIRED)
    if Decimal(amount) < discount.min_amount:
        return invalid(REASON_BELOW_MINIMUM)

    return DiscountEvaluation(
        valid=True,
        code=discount.code,
        discount_amount=calculate_discount(discount, amount),
        description=discount.description,
    )


async def get_by_code(db: AsyncSession, code: str) -> Discount | None:
    result = await db.execute(select(Discount).where(Discount.code == normalise_code(code)))
    return result.scalar_one_or_none()


async def evaluate_code(db: AsyncSession, code: str, amount: Decimal, clock: Clock) -> DiscountEvaluation:
    discount = await get_by_code(db, code)
    return evaluate(discount, amount, clock.now(), code=code)


async def list_active(db: AsyncSession, clock: Clock) -> list[Discount]:
    """Codes that are switched on and inside their validity window right now."""
    now = clock.now().astimezone(UTC)
    result = await db.execute(
        select(Discount)
        .where(
            Discount.is_active.is_(True),
            Discount.valid_from <= now,
            Discount.valid_until >= now,
            or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit),
        )
        .order_by(Discount.created_at.desc())
    )
    return list(result.scalars().all())


async def redeem(db: AsyncSession, code: str, booking_id: uuid.UUID) -> bool:
    """Consume one use of `code` for `booking_id`.

    Idempotent per booking: a second call for the same booking is a no-op.
    Returns True only when this call incremented used_count. Runs inside the
    caller's transaction; callers invoke it only after winning the
    pending -> paid transition, so one booking never redeems concurrently.
    """
    discount = await get_by_code(db, code)
    if discount is None:
        logger.warning("Booking %s references unknown discount code %s", booking_id, code)
        return False

    existing = await db.execute(select(DiscountRedemption.id).where(DiscountRedemption.booking_id == booking_id))
    if existing.scalar_one_or_none() is not None:
        return False

    result = await db.execute(
        update(Discount)
        .where(
            Discount.id == discount.id,
            or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit),
        )
        .values(used_count=Discount.used_count + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Limit was reached between booking and payment; the price was already agreed
        logger.warning("Discount %s exhausted before booking %s was paid", discount.code, booking_id)
        return False

    db.add(DiscountRedemption(discount_id=discount.id, booking_id=booking_id))
    await db.flush()

    logger.info("Redeemed discount %s for booking %s", discount.code, booking_id)
    return True
