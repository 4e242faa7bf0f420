"""Discount codes and their per-booking redemptions."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from courtgrid.models.base import Base, TimestampMixin


class DiscountType(enum.StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Discount(TimestampMixin, Base):
    """A discount code. Codes are global across facilities."""

    __tablename__ = "discounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(200))
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType, name="discount_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    max_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))  # percentage type only
    usage_limit: Mapped[int | None] = mapped_column(Integer)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("code = upper(code)", name="ck_discounts_code_upper"),
        CheckConstraint("value >= 0", name="ck_discounts_value_non_negative"),
        CheckConstraint("valid_until > valid_from", name="ck_discounts_window"),
        CheckConstraint("discount_type != 'percentage' OR value <= 100", name="ck_discounts_percentage_cap"),
        CheckConstraint("usage_limit IS NULL OR used_count <= usage_limit", name="ck_discounts_usage"),
    )

    def __repr__(self) -> str:
        return f"<Discount {self.code} {self.discount_type.value} {self.value}>"


class DiscountRedemption(TimestampMixin, Base):
    """Records that a booking consumed a discount. At most one per booking."""

    __tablename__ = "discount_redemptions"

    id: Mapped[int] = mapped_column(primary_key=True)
    discount_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("discounts.id"), nullable=False)
    booking_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("bookings.id"), unique=True, nullable=False)
