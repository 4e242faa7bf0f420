"""Booking admission: the write path for new bookings.

Validation runs in a fixed order and rejects bad input before any storage
access: required fields, wire formats and past dates, start < end, then
tenant and court. The re-check-then-insert runs in one transaction that
first locks the CourtDayLock row for exactly (facility, court, date), so two
admissions for the same partition serialise and exactly one of two
overlapping requests wins. Different courts or dates never contend.
"""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import and_, delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courtgrid.core.clock import Clock
from courtgrid.core.config import settings
from courtgrid.core.database import dialect_name
from courtgrid.core.errors import (
    BookingConflict,
    CourtNotFound,
    StorageUnavailable,
    ValidationError,
    storage_errors,
)
from courtgrid.models.booking import ACTIVE_STATUSES, Booking, BookingSource, BookingStatus, CourtDayLock
from courtgrid.models.facility import Facility
from courtgrid.services import discounts
from courtgrid.services.conflicts import BookingWindow, describe, find_conflicts
from courtgrid.services.pricing import PriceQuote, duration_minutes, quote
from courtgrid.services.tenant import TenantResolver

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

REQUIRED_FIELDS = ("court_id", "booking_date", "start_time", "end_time", "customer_name", "customer_email")

# Free-text fields stored in bounded columns
LENGTH_LIMITED_FIELDS = ("customer_name", "customer_email", "customer_phone")

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


@dataclass
class BookingRequest:
    """What a caller asks for. Dates and times arrive in wire format."""

    court_id: int | None = None
    booking_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    discount_code: str | None = None
    notes: str | None = None


def parse_date(value: str, field_name: str = "date") -> date:
    """Parse a strict YYYY-MM-DD date."""
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise ValidationError(
            f"{field_name} must be in YYYY-MM-DD format", details={"field": field_name, "received": value}
        )
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(
            f"{field_name} is not a valid calendar date", details={"field": field_name, "received": value}
        ) from None


def parse_time(value: str, field_name: str) -> time:
    """Parse a 24-hour HH:MM wall-clock time."""
    if not isinstance(value, str) or not TIME_RE.match(value):
        raise ValidationError(
            f"{field_name} must be in HH:MM 24-hour format", details={"field": field_name, "received": value}
        )
    hour, minute = map(int, value.split(":"))
    return time(hour, minute)


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _check_customer(request: BookingRequest) -> None:
    too_long = {}
    for name in LENGTH_LIMITED_FIELDS:
        value = getattr(request, name)
        limit = Booking.__table__.c[name].type.length
        if value is not None and len(value.strip()) > limit:
            too_long[name] = limit
    if too_long:
        raise ValidationError("Fields exceed their maximum length", code="too_long", details={"max_length": too_long})

    try:
        validate_email(request.customer_email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(
            "customer_email is not a valid email address",
            code="invalid_email",
            details={"field": "customer_email", "reason": str(exc)},
        ) from None


def _is_transient(exc: DBAPIError) -> bool:
    """Errors worth retrying: the competing writer has either committed or rolled back by now."""
    if isinstance(exc, IntegrityError):
        # Unique-index race on a concurrent insert; the next attempt sees the winner
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(exc).lower()
    return "database is locked" in message or "deadlock detected" in message or "could not serialize" in message


class BookingAdmission:
    """Validates and atomically persists new bookings.

    Uses its own sessions rather than a request-scoped one: each retry needs a
    fresh transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        default_slug: str | None = None,
        max_retries: int | None = None,
        retry_backoff: float | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.default_slug = default_slug
        self.max_retries = settings.admission_max_retries if max_retries is None else max_retries
        self.retry_backoff = settings.admission_retry_backoff_seconds if retry_backoff is None else retry_backoff

    # ------------------------------------------------------------------
    # Validation (no storage access)
    # ------------------------------------------------------------------

    def validate(self, request: BookingRequest) -> BookingWindow:
        missing = [name for name in REQUIRED_FIELDS if _blank(getattr(request, name))]
        if missing:
            raise ValidationError("Missing required fields", code="missing_fields", details={"missing": missing})

        _check_customer(request)
        booking_date = parse_date(request.booking_date, "booking_date")
        start_time = parse_time(request.start_time, "start_time")
        end_time = parse_time(request.end_time, "end_time")

        today = self.clock.today()
        if booking_date < today:
            raise ValidationError(
                "Cannot book a date in the past",
                code="past_date",
                details={"booking_date": booking_date.isoformat(), "today": today.isoformat()},
            )

        if start_time >= end_time:
            raise ValidationError(
                "start_time must be before end_time",
                code="invalid_interval",
                details={"start_time": request.start_time, "end_time": request.end_time},
            )

        return BookingWindow(int(request.court_id), booking_date, start_time, end_time)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def create_booking(
        self,
        identifier: str | None,
        request: BookingRequest,
        source: BookingSource = BookingSource.WEB,
    ) -> Booking:
        window = self.validate(request)

        with storage_errors("loading the facility"):
            async with self.session_factory() as db:
                facility = await TenantResolver(db, self.default_slug).resolve(identifier)
                if window.court_id not in {c.id for c in facility.active_courts}:
                    raise CourtNotFound(
                        "Court not found or not bookable",
                        details={"facility": facility.slug, "court_id": window.court_id},
                    )
                price = await self._price(db, facility, window, request.discount_code)

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                booking = await self._check_and_insert(facility, window, request, price, source)
            except DBAPIError as exc:
                if not _is_transient(exc) or attempt == attempts:
                    logger.error(
                        "Admission failed for %s court %s on %s after %d attempt(s): %s",
                        facility.slug,
                        window.court_id,
                        window.booking_date,
                        attempt,
                        exc.__class__.__name__,
                    )
                    if isinstance(exc, IntegrityError):
                        raise BookingConflict(
                            "Time slot already booked",
                            details={"court_id": window.court_id, "booking_date": window.booking_date.isoformat()},
                        ) from exc
                    raise StorageUnavailable("Booking could not be saved, please try again") from exc
                logger.warning(
                    "Transient storage error admitting %s court %s on %s (attempt %d/%d), retrying",
                    facility.slug,
                    window.court_id,
                    window.booking_date,
                    attempt,
                    attempts,
                )
                await asyncio.sleep(self.retry_backoff * attempt)
                continue

            logger.info(
                "Booking %s admitted: %s court %s %s %s-%s",
                booking.id,
                facility.slug,
                window.court_id,
                window.booking_date,
                window.start_time.strftime("%H:%M"),
                window.end_time.strftime("%H:%M"),
            )
            return booking

        raise AssertionError("unreachable")  # pragma: no cover

    async def _price(
        self, db: AsyncSession, facility: Facility, window: BookingWindow, discount_code: str | None
    ) -> PriceQuote:
        discount_amount = Decimal("0")
        if discount_code:
            rental = quote(facility, window.start_time, window.end_time).court_rental
            evaluation = await discounts.evaluate_code(db, discount_code, rental, self.clock)
            if not evaluation.valid:
                raise ValidationError(
                    evaluation.message or "Invalid discount code",
                    code="invalid_discount",
                    details={"code": evaluation.code, "reason": evaluation.reason},
                )
            discount_amount = evaluation.discount_amount
        return quote(facility, window.start_time, window.end_time, discount_amount)

    async def _check_and_insert(
        self,
        facility: Facility,
        window: BookingWindow,
        request: BookingRequest,
        price: PriceQuote,
        source: BookingSource,
    ) -> Booking:
        async with self.session_factory() as db, db.begin():
            await self._lock_partition(db, facility.id, window)

            result = await db.execute(
                select(Booking).where(
                    Booking.facility_id == facility.id,
                    Booking.court_id == window.court_id,
                    Booking.booking_date == window.booking_date,
                    Booking.status.in_(ACTIVE_STATUSES),
                    and_(Booking.start_time < window.end_time, Booking.end_time > window.start_time),
                )
            )
            competing = find_conflicts(window, result.scalars().all())
            if competing:
                logger.info(
                    "Conflict admitting %s court %s %s %s-%s: %d overlapping booking(s)",
                    facility.slug,
                    window.court_id,
                    window.booking_date,
                    window.start_time.strftime("%H:%M"),
                    window.end_time.strftime("%H:%M"),
                    len(competing),
                )
                raise BookingConflict(
                    "Time slot already booked",
                    details={"conflicting_bookings": [describe(b) for b in competing]},
                )

            booking = Booking(
                id=uuid.uuid4(),
                facility_id=facility.id,
                court_id=window.court_id,
                booking_date=window.booking_date,
                start_time=window.start_time,
                end_time=window.end_time,
                duration_minutes=duration_minutes(window.start_time, window.end_time),
                status=BookingStatus.PENDING,
                source=source,
                customer_name=request.customer_name.strip(),
                customer_email=request.customer_email.strip().lower(),
                customer_phone=(request.customer_phone.strip() or None) if request.customer_phone else None,
                court_rental=price.court_rental,
                discount_code=discounts.normalise_code(request.discount_code) if request.discount_code else None,
                discount_amount=price.discount_amount,
                service_fee=price.service_fee,
                tax=price.tax,
                total_amount=price.total,
                currency=price.currency,
                notes=request.notes,
            )
            db.add(booking)
            await db.flush()
        return booking

    async def _lock_partition(self, db: AsyncSession, facility_id: uuid.UUID, window: BookingWindow) -> None:
        """Create-if-absent then lock the (facility, court, date) row."""
        key = {"facility_id": facility_id, "court_id": window.court_id, "booking_date": window.booking_date}
        dialect = dialect_name(db)
        if dialect == "postgresql":
            stmt = postgresql.insert(CourtDayLock).values(**key).on_conflict_do_nothing()
        elif dialect == "sqlite":
            stmt = sqlite.insert(CourtDayLock).values(**key).on_conflict_do_nothing()
        else:
            raise NotImplementedError(f"Unsupported database dialect: {dialect}")
        await db.execute(stmt)

        # FOR UPDATE is a no-op on SQLite, which already holds the database write lock here
        await db.execute(
            select(CourtDayLock)
            .where(
                CourtDayLock.facility_id == facility_id,
                CourtDayLock.court_id == window.court_id,
                CourtDayLock.booking_date == window.booking_date,
            )
            .with_for_update()
        )



async def prune_day_locks(db: AsyncSession, before: date) -> int:
    """Delete CourtDayLock rows for dates before `before`.

    Admission never locks a past date, so these rows are never contended.
    """
    result = await db.execute(delete(CourtDayLock).where(CourtDayLock.booking_date < before))
    logger.info("Pruned %d court-day lock row(s) before %s", result.rowcount, before)
    return result.rowcount
