"""Booking model.

A booking reserves one court of a facility for a half-open wall-clock
interval [start_time, end_time) on a plain calendar date.
This is the core transactional entity in the system.
"""

import enum
import uuid
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from courtgrid.models.base import Base, TimestampMixin


class BookingStatus(enum.StrEnum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that hold a court. Cancelled bookings free their slot.
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.PAID, BookingStatus.COMPLETED})
TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

_ACTIVE_SQL = "status IN ('pending', 'paid', 'completed')"


class BookingSource(enum.StrEnum):
    WEB = "web"
    MOBILE = "mobile"
    VENDOR = "vendor"  # Created by facility staff from the vendor portal


class Booking(TimestampMixin, Base):
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    facility_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    court_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # When
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [x.value for x in e]),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    source: Mapped[BookingSource] = mapped_column(
        Enum(BookingSource, name="booking_source", values_callable=lambda e: [x.value for x in e]),
        default=BookingSource.WEB,
        nullable=False,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    # Customer
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(254), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(50))

    # Pricing (major currency units, two decimal places)
    court_rental: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    discount_code: Mapped[str | None] = mapped_column(String(20))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="CAD", nullable=False)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(100), index=True)

    notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        ForeignKeyConstraint(["facility_id", "court_id"], ["courts.facility_id", "courts.id"]),
        CheckConstraint("start_time < end_time", name="ck_bookings_start_before_end"),
        # Backstop for the admission lock: no two active bookings may start at the
        # same minute on the same court. Overlaps are prevented by the admission path.
        Index(
            "ix_bookings_no_double",
            "facility_id",
            "court_id",
            "booking_date",
            "start_time",
            unique=True,
            postgresql_where=text(_ACTIVE_SQL),
            sqlite_where=text(_ACTIVE_SQL),
        ),
        # The availability grid and the admission re-check both read one (facility, date)
        Index("ix_bookings_facility_date", "facility_id", "booking_date"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return f"<Booking {self.booking_date} {self.start_time}-{self.end_time} court={self.court_id} {self.status}>"


class CourtDayLock(Base):
    """One row per (facility, court, date). Admission locks it before its re-check."""

    __tablename__ = "court_day_locks"

    facility_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    court_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    booking_date: Mapped[date] = mapped_column(Date, primary_key=True)
