"""Facility, court and operating hours models.

Facility = a tenant venue (e.g. Vision Badminton Centre).
Court = an individual bookable court or lane within a facility.
OperatingHours = open/close wall-clock times for one day of the week.
"""

import uuid
from datetime import time
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text, Time, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courtgrid.models.base import Base, TimestampMixin

WEEKDAYS = range(0, 5)  # Mon..Fri
WEEKEND = range(5, 7)  # Sat, Sun


class Facility(TimestampMixin, Base):
    __tablename__ = "facilities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Contact
    address: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(String(254))
    phone: Mapped[str | None] = mapped_column(String(50))

    # Pricing
    court_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("25.00"), nullable=False)
    service_fee_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("1.00"), nullable=False)
    tax_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("13.00"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="CAD", nullable=False)

    # Relationships
    courts: Mapped[list["Court"]] = relationship(
        back_populates="facility", lazy="selectin", order_by="Court.id", cascade="all, delete-orphan"
    )
    operating_hours: Mapped[list["OperatingHours"]] = relationship(
        back_populates="facility", lazy="selectin", order_by="OperatingHours.day_of_week", cascade="all, delete-orphan"
    )

    __table_args__ = (CheckConstraint("slug = lower(slug)", name="ck_facilities_slug_lower"),)

    @property
    def active_courts(self) -> list["Court"]:
        return [c for c in self.courts if c.is_active]

    def hours_for_weekday(self, day_of_week: int) -> "OperatingHours | None":
        for row in self.operating_hours:
            if row.day_of_week == day_of_week:
                return row
        return None

    def __repr__(self) -> str:
        return f"<Facility {self.slug}>"


class Court(TimestampMixin, Base):
    """A bookable court. Never deleted, only deactivated: bookings reference its id."""

    __tablename__ = "courts"

    facility_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("facilities.id"), primary_key=True)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sport: Mapped[str] = mapped_column(String(50), default="Badminton", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    facility: Mapped["Facility"] = relationship(back_populates="courts")

    def __repr__(self) -> str:
        return f"<Court {self.id} {self.name!r} @ {self.facility_id}>"


class OperatingHours(Base):
    """Opening hours for one day of the week (0=Mon..6=Sun). A day without a row is closed."""

    __tablename__ = "operating_hours"

    facility_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("facilities.id"), primary_key=True)
    day_of_week: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    open_time: Mapped[time] = mapped_column(Time, nullable=False)
    close_time: Mapped[time] = mapped_column(Time, nullable=False)

    facility: Mapped["Facility"] = relationship(back_populates="operating_hours")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_operating_hours_day"),
        CheckConstraint("open_time < close_time", name="ck_operating_hours_open_before_close"),
        Index("ix_operating_hours_facility", "facility_id"),
    )

    @classmethod
    def weekly(
        cls,
        weekday: tuple[time, time],
        weekend: tuple[time, time],
    ) -> list["OperatingHours"]:
        """Seven rows from a weekday/weekend pair."""
        rows = []
        for day in range(7):
            open_time, close_time = weekday if day in WEEKDAYS else weekend
            rows.append(cls(day_of_week=day, open_time=open_time, close_time=close_time))
        return rows

    def __repr__(self) -> str:
        return f"<OperatingHours day={self.day_of_week} {self.open_time}-{self.close_time}>"
