"""Core tests: slot grid, conflicts, pricing, discounts, tenant resolution, admission, status transitions."""

import asyncio
import logging
import uuid
from datetime import UTC, date, datetime, time
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import SATURDAY, TODAY, TOMORROW, create_facility
from courtgrid.core.database import async_session_factory, get_session_factory
from courtgrid.core.errors import (
    BookingConflict,
    BookingNotFound,
    ConfigurationError,
    CourtNotFound,
    FacilityNotFound,
    InvalidBookingTransition,
    StorageUnavailable,
    ValidationError,
)
from courtgrid.models import (
    Booking,
    BookingSource,
    BookingStatus,
    Court,
    CourtDayLock,
    Discount,
    DiscountType,
    Facility,
    OperatingHours,
)
from courtgrid.services import booking_status, discounts
from courtgrid.services.admission import BookingAdmission, BookingRequest, parse_date, parse_time, prune_day_locks
from courtgrid.services.availability import bookings_loader, get_availability
from courtgrid.services.conflicts import BookingWindow, annotate, conflicts, find_conflicts, overlaps
from courtgrid.services.pricing import quote, to_minor_units
from courtgrid.services.slot_grid import DayHours, generate_slots, hourly_slots
from courtgrid.services.tenant import TenantResolver


def _facility(courts=((1, True), (2, True)), hours=None):
    facility = Facility(
        slug="test-club",
        name="Test Club",
        court_rate=Decimal("25.00"),
        service_fee_percentage=Decimal("1.00"),
        tax_percentage=Decimal("13.00"),
        currency="CAD",
    )
    facility.courts = [Court(id=court_id, name=f"Court {court_id}", is_active=active) for court_id, active in courts]
    facility.operating_hours = (
        hours if hours is not None else OperatingHours.weekly(weekday=(time(8), time(20)), weekend=(time(6), time(22)))
    )
    return facility


def _booking(court_id=1, day=TOMORROW, start=time(14), end=time(15), status=BookingStatus.PAID):
    return SimpleNamespace(
        id=uuid.uuid4(), court_id=court_id, booking_date=day, start_time=start, end_time=end, status=status
    )


def _request(**overrides) -> BookingRequest:
    fields = {
        "court_id": 1,
        "booking_date": TOMORROW.isoformat(),
        "start_time": "14:00",
        "end_time": "15:00",
        "customer_name": "Priya Shah",
        "customer_email": "Priya@Example.com",
    }
    fields.update(overrides)
    return BookingRequest(**fields)


def _discount(**overrides) -> Discount:
    fields = {
        "code": "WELCOME10",
        "description": "10% off",
        "discount_type": DiscountType.PERCENTAGE,
        "value": Decimal("10.00"),
        "min_amount": Decimal("0.00"),
        "max_discount": None,
        "usage_limit": None,
        "used_count": 0,
        "valid_from": datetime(2030, 1, 1, tzinfo=UTC),
        "valid_until": datetime(2030, 12, 31, tzinfo=UTC),
        "is_active": True,
    }
    fields.update(overrides)
    return Discount(**fields)


NOW = datetime(2030, 6, 3, 13, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Unit tests: slot grid (pure functions, no DB)
# ---------------------------------------------------------------------------


class TestSlotGrid:
    def test_weekday_hours(self):
        slots = generate_slots(_facility(), TOMORROW)
        assert list(slots) == [1, 2]
        labels = [s.label for s in slots[1]]
        assert labels[0] == "08:00"
        assert labels[-1] == "19:00"
        assert len(labels) == 12

    def test_weekend_hours(self):
        slots = generate_slots(_facility(), SATURDAY)
        assert len(slots[1]) == 16
        assert slots[1][0].label == "06:00"
        assert slots[1][-1].end == time(22)

    def test_inactive_court_omitted(self):
        slots = generate_slots(_facility(courts=((2, True), (1, False), (3, True))), TOMORROW)
        assert list(slots) == [2, 3]

    def test_closed_day_gives_empty_lists(self):
        weekdays_only = [OperatingHours(day_of_week=d, open_time=time(8), close_time=time(20)) for d in range(5)]
        slots = generate_slots(_facility(hours=weekdays_only), SATURDAY)
        assert slots == {1: [], 2: []}

    def test_open_and_close_in_same_hour(self):
        assert hourly_slots(DayHours(time(8, 0), time(8, 30))) == []

    def test_minutes_are_floored(self):
        slots = hourly_slots(DayHours(time(8, 30), time(11, 45)))
        assert [s.label for s in slots] == ["08:00", "09:00", "10:00"]

    def test_no_active_courts(self):
        assert generate_slots(_facility(courts=((1, False),)), TOMORROW) == {}


# ---------------------------------------------------------------------------
# Unit tests: conflict detection
# ---------------------------------------------------------------------------


class TestConflicts:
    def test_boundary_touch_is_not_a_conflict(self):
        assert not overlaps(time(14), time(15), time(15), time(16))
        assert not overlaps(time(15), time(16), time(14), time(15))

    def test_overlap_shapes(self):
        existing = (time(10), time(12))
        assert overlaps(time(11), time(13), *existing)  # starts inside
        assert overlaps(time(9), time(11), *existing)  # ends inside
        assert overlaps(time(9), time(13), *existing)  # contains
        assert overlaps(time(10, 30), time(11), *existing)  # contained

    def test_cancelled_bookings_never_conflict(self):
        candidate = BookingWindow(1, TOMORROW, time(14), time(15))
        assert not conflicts(candidate, [_booking(status=BookingStatus.CANCELLED)])
        assert conflicts(candidate, [_booking(status=BookingStatus.PENDING)])
        assert conflicts(candidate, [_booking(status=BookingStatus.COMPLETED)])

    def test_other_court_or_date_ignored(self):
        candidate = BookingWindow(1, TOMORROW, time(14), time(15))
        existing = [_booking(court_id=2), _booking(day=SATURDAY), _booking(start=time(14, 30), end=time(16))]
        found = find_conflicts(candidate, existing)
        assert found == [existing[2]]

    def test_annotate_blocks_every_overlapped_hour(self):
        slots = generate_slots(_facility(), TOMORROW)
        existing = [_booking(start=time(9, 30), end=time(10, 30)), _booking(court_id=2, status=BookingStatus.CANCELLED)]
        grid = annotate(slots, existing)
        assert grid[1]["09:00"] is False
        assert grid[1]["10:00"] is False
        assert grid[1]["08:00"] is True
        assert grid[1]["11:00"] is True
        assert all(grid[2].values())


# ---------------------------------------------------------------------------
# Unit tests: pricing
# ---------------------------------------------------------------------------


class TestPricing:
    def test_one_hour(self):
        q = quote(_facility(), time(14), time(15))
        assert q.court_rental == Decimal("25.00")
        assert q.service_fee == Decimal("0.25")
        assert q.tax == Decimal("3.28")  # 25.25 * 13%
        assert q.total == Decimal("28.53")
        assert q.currency == "CAD"

    def test_ninety_minutes(self):
        q = quote(_facility(), time(10), time(11, 30))
        assert q.court_rental == Decimal("37.50")
        assert q.service_fee == Decimal("0.38")  # 0.375 rounds half up
        assert q.tax == Decimal("4.92")
        assert q.total == Decimal("42.80")

    def test_discount_reduces_subtotal(self):
        q = quote(_facility(), time(14), time(15), Decimal("2.50"))
        assert q.subtotal == Decimal("22.50")
        assert q.service_fee == Decimal("0.23")
        assert q.tax == Decimal("2.95")
        assert q.total == Decimal("25.68")

    def test_discount_capped_at_rental(self):
        q = quote(_facility(), time(14), time(15), Decimal("40.00"))
        assert q.discount_amount == Decimal("25.00")
        assert q.total == Decimal("0.00")

    def test_minor_units(self):
        assert to_minor_units(Decimal("28.53"), "CAD") == 2853
        assert to_minor_units(Decimal("1500"), "JPY") == 1500


# ---------------------------------------------------------------------------
# Unit tests: discount evaluation
# ---------------------------------------------------------------------------


class TestDiscountEvaluation:
    def test_percentage(self):
        result = discounts.evaluate(_discount(), Decimal("25.00"), NOW)
        assert result.valid
        assert result.discount_amount == Decimal("2.50")

    def test_percentage_capped(self):
        result = discounts.evaluate(_discount(max_discount=Decimal("50.00")), Decimal("1000.00"), NOW)
        assert result.discount_amount == Decimal("50.00")

    def test_percentage_rounds_half_up(self):
        result = discounts.evaluate(_discount(value=Decimal("15.00")), Decimal("33.30"), NOW)
        assert result.discount_amount == Decimal("5.00")  # 4.995

    def test_fixed_never_exceeds_amount(self):
        result = discounts.evaluate(
            _discount(code="SAVE5", discount_type=DiscountType.FIXED, value=Decimal("5.00")), Decimal("3.00"), NOW
        )
        assert result.discount_amount == Decimal("3.00")

    def test_unknown_code(self):
        result = discounts.evaluate(None, Decimal("25.00"), NOW, code=" nope ")
        assert not result.valid
        assert result.reason == discounts.REASON_NOT_FOUND
        assert result.code == "NOPE"

    @pytest.mark.parametrize(
        ("overrides", "reason"),
        [
            ({"is_active": False}, discounts.REASON_INACTIVE),
            ({"valid_from": datetime(2030, 7, 1, tzinfo=UTC)}, discounts.REASON_NOT_YET_VALID),
            ({"valid_until": datetime(2030, 6, 1, tzinfo=UTC)}, discounts.REASON_EXPIRED),
            ({"min_amount": Decimal("30.00")}, discounts.REASON_BELOW_MINIMUM),
            ({"usage_limit": 5, "used_count": 5}, discounts.REASON_USAGE_EXHAUSTED),
        ],
    )
    def test_rejections(self, overrides, reason):
        result = discounts.evaluate(_discount(**overrides), Decimal("25.00"), NOW)
        assert not result.valid
        assert result.reason == reason
        assert result.discount_amount == Decimal("0.00")
        assert result.message

    def test_naive_window_treated_as_utc(self):
        result = discounts.evaluate(_discount(valid_until=datetime(2030, 6, 3, 12, 0)), Decimal("25.00"), NOW)
        assert result.reason == discounts.REASON_EXPIRED


# ---------------------------------------------------------------------------
# Unit tests: wire-format parsing
# ---------------------------------------------------------------------------


class TestWireFormats:
    def test_parse_date(self):
        assert parse_date("2030-06-04") == date(2030, 6, 4)

    @pytest.mark.parametrize("value", ["2030/06/04", "04-06-2030", "2030-6-4", "2030-02-30", "", None])
    def test_parse_date_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_date(value)

    def test_parse_time(self):
        assert parse_time("09:30", "start_time") == time(9, 30)

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "12:00:00", "7:05", "9:00"])
    def test_parse_time_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_time(value, "start_time")


# ---------------------------------------------------------------------------
# Tenant resolution
# ---------------------------------------------------------------------------


class TestTenantResolver:
    async def test_slug_is_trimmed_and_case_insensitive(self, facility):
        async with async_session_factory() as db:
            resolved = await TenantResolver(db).resolve("  Vision-Badminton ")
        assert resolved.id == facility.id
        assert [c.id for c in resolved.active_courts] == [1, 2]

    async def test_resolve_by_id(self, facility):
        async with async_session_factory() as db:
            resolved = await TenantResolver(db).resolve(str(facility.id))
        assert resolved.slug == "vision-badminton"

    async def test_unknown(self, facility):
        async with async_session_factory() as db:
            with pytest.raises(FacilityNotFound):
                await TenantResolver(db).resolve("nowhere")
            with pytest.raises(FacilityNotFound):
                await TenantResolver(db).resolve(str(uuid.uuid4()))

    async def test_inactive(self):
        await create_facility("closed-club", "Closed Club", is_active=False)
        async with async_session_factory() as db:
            with pytest.raises(FacilityNotFound):
                await TenantResolver(db).resolve("closed-club")
            resolved = await TenantResolver(db).resolve("closed-club", include_inactive=True)
        assert resolved.slug == "closed-club"

    async def test_default_used_for_missing_identifier(self, facility):
        async with async_session_factory() as db:
            resolved = await TenantResolver(db, default_slug="vision-badminton").resolve("  ")
        assert resolved.id == facility.id

    async def test_no_default_configured(self, facility):
        async with async_session_factory() as db:
            with pytest.raises(ValidationError):
                await TenantResolver(db).resolve(None)

    async def test_missing_default_is_configuration_error(self, facility):
        async with async_session_factory() as db:
            with pytest.raises(ConfigurationError):
                await TenantResolver(db, default_slug="gone-club").resolve(None)

    async def test_inactive_default_is_configuration_error(self):
        await create_facility("closed-club", "Closed Club", is_active=False)
        async with async_session_factory() as db:
            with pytest.raises(ConfigurationError):
                await TenantResolver(db, default_slug="closed-club").resolve(None)

    async def test_bare_hex_slug_resolves_as_slug(self):
        hex_slug = "0123456789abcdef0123456789abcdef"
        created = await create_facility(hex_slug, "Hex Club")
        async with async_session_factory() as db:
            resolved = await TenantResolver(db).resolve(hex_slug.upper())
        assert resolved.id == created.id

    async def test_list_active(self, facility, other_facility):
        await create_facility("closed-club", "Closed Club", is_active=False)
        async with async_session_factory() as db:
            active = await TenantResolver(db).list_active()
        assert [f.slug for f in active] == ["north-york-courts", "vision-badminton"]


# ---------------------------------------------------------------------------
# Booking admission
# ---------------------------------------------------------------------------


@pytest.fixture
def admission(clock):
    return BookingAdmission(get_session_factory(), clock, max_retries=3, retry_backoff=0)


class TestAdmissionValidation:
    async def test_missing_fields_all_listed(self, admission):
        with pytest.raises(ValidationError) as exc:
            await admission.create_booking("vision-badminton", BookingRequest(court_id=1, start_time="14:00"))
        assert exc.value.code == "missing_fields"
        assert exc.value.details["missing"] == ["booking_date", "end_time", "customer_name", "customer_email"]

    async def test_whitespace_only_fields_are_missing(self, clock):
        session_factory = MagicMock()
        admission = BookingAdmission(session_factory, clock)
        with pytest.raises(ValidationError) as exc:
            await admission.create_booking("vision-badminton", _request(customer_name="   ", customer_email="\t "))
        assert exc.value.code == "missing_fields"
        assert exc.value.details["missing"] == ["customer_name", "customer_email"]
        session_factory.assert_not_called()

    @pytest.mark.parametrize("email", ["priya", "priya@", "priya at example.com"])
    async def test_invalid_email_rejected(self, clock, email):
        session_factory = MagicMock()
        admission = BookingAdmission(session_factory, clock)
        with pytest.raises(ValidationError) as exc:
            await admission.create_booking("vision-badminton", _request(customer_email=email))
        assert exc.value.code == "invalid_email"
        session_factory.assert_not_called()

    async def test_overlong_fields_rejected(self, clock):
        session_factory = MagicMock()
        admission = BookingAdmission(session_factory, clock)
        with pytest.raises(ValidationError) as exc:
            await admission.create_booking("vision-badminton", _request(customer_name="x" * 101, customer_phone="5" * 51))
        assert exc.value.code == "too_long"
        assert exc.value.details["max_length"] == {"customer_name": 100, "customer_phone": 50}
        session_factory.assert_not_called()

    async def test_name_at_column_limit_accepted(self, admission, facility):
        booking = await admission.create_booking("vision-badminton", _request(customer_name="x" * 100))
        assert len(booking.customer_name) == 100

    async def test_storage_failure_loading_facility(self, admission, facility):
        lost = OperationalError("SELECT", {}, Exception("connection reset"))
        with patch.object(TenantResolver, "_lookup", side_effect=lost), pytest.raises(StorageUnavailable):
            await admission.create_booking("vision-badminton", _request())

    async def test_past_date_never_reaches_storage(self, clock):
        session_factory = MagicMock()
        admission = BookingAdmission(session_factory, clock)
        with pytest.raises(ValidationError) as exc:
            await admission.create_booking("vision-badminton", _request(booking_date="2030-06-02"))
        assert exc.value.code == "past_date"
        session_factory.assert_not_called()

    async def test_bad_format_never_reaches_storage(self, clock):
        session_factory = MagicMock()
        admission = BookingAdmission(session_factory, clock)
        with pytest.raises(ValidationError):
            await admission.create_booking("vision-badminton", _request(start_time="2pm"))
        session_factory.assert_not_called()

    async def test_today_is_bookable(self, admission, facility):
        booking = await admission.create_booking("vision-badminton", _request(booking_date=TODAY.isoformat()))
        assert booking.booking_date == TODAY

    @pytest.mark.parametrize(("start", "end"), [("15:00", "14:00"), ("14:00", "14:00")])
    async def test_start_must_precede_end(self, admission, start, end):
        with pytest.raises(ValidationError) as exc:
            await admission.create_booking("vision-badminton", _request(start_time=start, end_time=end))
        assert exc.value.code == "invalid_interval"

    async def test_unknown_court(self, admission, facility):
        with pytest.raises(CourtNotFound):
            await admission.create_booking("vision-badminton", _request(court_id=9))

    async def test_inactive_court(self, admission, facility):
        with pytest.raises(CourtNotFound):
            await admission.create_booking("vision-badminton", _request(court_id=3))

    async def test_unknown_facility(self, admission, facility):
        with pytest.raises(FacilityNotFound):
            await admission.create_booking("nowhere", _request())


class TestAdmission:
    async def test_creates_pending_booking(self, admission, facility):
        booking = await admission.create_booking("vision-badminton", _request(customer_phone="+1-416-555-0199"))
        assert booking.status == BookingStatus.PENDING
        assert booking.source == BookingSource.WEB
        assert booking.facility_id == facility.id
        assert booking.customer_email == "priya@example.com"
        assert booking.duration_minutes == 60
        assert booking.total_amount == Decimal("28.53")

    async def test_boundary_touch_both_persist(self, admission, facility):
        await admission.create_booking("vision-badminton", _request(start_time="14:00", end_time="15:00"))
        await admission.create_booking("vision-badminton", _request(start_time="15:00", end_time="16:00"))
        await admission.create_booking("vision-badminton", _request(start_time="13:00", end_time="14:00"))

        async with async_session_factory() as db:
            rows = (await db.execute(select(Booking))).scalars().all()
        assert len(rows) == 3

    async def test_overlap_rejected_with_details(self, admission, facility):
        first = await admission.create_booking("vision-badminton", _request(start_time="10:00", end_time="12:00"))
        with pytest.raises(BookingConflict) as exc:
            await admission.create_booking("vision-badminton", _request(start_time="11:00", end_time="13:00"))

        competing = exc.value.details["conflicting_bookings"]
        assert competing == [
            {
                "booking_id": str(first.id),
                "court_id": 1,
                "booking_date": TOMORROW.isoformat(),
                "start_time": "10:00",
                "end_time": "12:00",
                "status": "pending",
            }
        ]

    async def test_same_slot_other_court_or_facility(self, admission, facility, other_facility):
        await admission.create_booking("vision-badminton", _request(court_id=1))
        await admission.create_booking("vision-badminton", _request(court_id=2))
        await admission.create_booking("north-york-courts", _request(court_id=1))

    async def test_cancelled_booking_frees_slot(self, admission, facility, clock):
        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            await booking_status.cancel(db, booking.id, clock.now())
            await db.commit()

        again = await admission.create_booking("vision-badminton", _request())
        assert again.id != booking.id

    async def test_concurrent_overlapping_requests_one_winner(self, admission, facility):
        results = await asyncio.gather(
            admission.create_booking("vision-badminton", _request(start_time="10:00", end_time="12:00")),
            admission.create_booking("vision-badminton", _request(start_time="11:00", end_time="13:00")),
            return_exceptions=True,
        )
        winners = [r for r in results if isinstance(r, Booking)]
        losers = [r for r in results if isinstance(r, BookingConflict)]
        assert len(winners) == 1
        assert len(losers) == 1

    async def test_concurrent_identical_requests_one_winner(self, admission, facility):
        results = await asyncio.gather(
            *[admission.create_booking("vision-badminton", _request()) for _ in range(5)],
            return_exceptions=True,
        )
        assert sum(isinstance(r, Booking) for r in results) == 1
        assert sum(isinstance(r, BookingConflict) for r in results) == 4

        async with async_session_factory() as db:
            rows = (await db.execute(select(Booking))).scalars().all()
        assert len(rows) == 1

    async def test_concurrent_different_courts_all_admitted(self, admission, facility):
        results = await asyncio.gather(
            admission.create_booking("vision-badminton", _request(court_id=1)),
            admission.create_booking("vision-badminton", _request(court_id=2)),
        )
        assert {b.court_id for b in results} == {1, 2}

    async def test_discount_applied(self, admission, facility, welcome_discount):
        booking = await admission.create_booking("vision-badminton", _request(discount_code=" welcome10 "))
        assert booking.discount_code == "WELCOME10"
        assert booking.discount_amount == Decimal("2.50")
        assert booking.total_amount == Decimal("25.68")

    async def test_invalid_discount_rejected(self, admission, facility):
        with pytest.raises(ValidationError) as exc:
            await admission.create_booking("vision-badminton", _request(discount_code="BOGUS"))
        assert exc.value.code == "invalid_discount"
        assert exc.value.details["reason"] == discounts.REASON_NOT_FOUND

    async def test_transient_error_retried(self, admission, facility):
        real = admission._check_and_insert
        calls = []

        async def flaky(*args):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await real(*args)

        with patch.object(admission, "_check_and_insert", side_effect=flaky):
            booking = await admission.create_booking("vision-badminton", _request())

        assert booking.status == BookingStatus.PENDING
        assert len(calls) == 2

    async def test_persistent_transient_error_is_storage_unavailable(self, admission, facility):
        locked = OperationalError("INSERT", {}, Exception("database is locked"))
        mock = AsyncMock(side_effect=locked)
        with patch.object(admission, "_check_and_insert", mock), pytest.raises(StorageUnavailable):
            await admission.create_booking("vision-badminton", _request())
        assert mock.await_count == 4

    async def test_non_transient_error_not_retried(self, admission, facility):
        broken = OperationalError("INSERT", {}, Exception("disk I/O error"))
        mock = AsyncMock(side_effect=broken)
        with patch.object(admission, "_check_and_insert", mock), pytest.raises(StorageUnavailable):
            await admission.create_booking("vision-badminton", _request())
        assert mock.await_count == 1

    async def test_unique_race_reported_as_conflict(self, admission, facility):
        race = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        mock = AsyncMock(side_effect=race)
        with patch.object(admission, "_check_and_insert", mock), pytest.raises(BookingConflict):
            await admission.create_booking("vision-badminton", _request())


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


class TestAvailability:
    async def test_paid_booking_blocks_its_hour(self, admission, facility, clock):
        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            await booking_status.mark_paid(db, booking.id, clock.now())
            await db.commit()

        async with async_session_factory() as db:
            resolver = TenantResolver(db)
            result = await get_availability(resolver, bookings_loader(db), "vision-badminton", TOMORROW.isoformat())

        court = result["availability"][1]
        assert court["14:00"] is False
        assert [label for label, free in court.items() if not free] == ["14:00"]
        assert list(court) == [f"{h:02d}:00" for h in range(8, 20)]
        assert all(result["availability"][2].values())
        assert 3 not in result["availability"]
        assert result["summary"] == {"total_slots": 24, "available_slots": 23, "court_count": 2}
        assert result["facility"]["operating_hours"] == {"open": "08:00", "close": "20:00"}

    async def test_cancellation_frees_hour(self, admission, facility, clock):
        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            await booking_status.cancel(db, booking.id, clock.now(), reason="changed plans")
            await db.commit()

        async with async_session_factory() as db:
            result = await get_availability(TenantResolver(db), bookings_loader(db), "vision-badminton", "2030-06-04")
        assert result["availability"][1]["14:00"] is True

    async def test_malformed_date_rejected_before_storage(self):
        resolver = MagicMock()
        resolver.resolve = AsyncMock()
        loader = AsyncMock()
        with pytest.raises(ValidationError):
            await get_availability(resolver, loader, "vision-badminton", "06/04/2030")
        resolver.resolve.assert_not_called()
        loader.assert_not_called()

    async def test_storage_failure_is_storage_unavailable(self):
        lost = OperationalError("SELECT", {}, Exception("connection reset"))
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=lost)
        with pytest.raises(StorageUnavailable):
            await get_availability(resolver, AsyncMock(), "vision-badminton", "2030-06-04")

        resolver.resolve = AsyncMock(return_value=_facility())
        loader = AsyncMock(side_effect=lost)
        with pytest.raises(StorageUnavailable):
            await get_availability(resolver, loader, "test-club", "2030-06-04")

    async def test_no_active_courts_warns(self, caplog):
        await create_facility("empty-club", "Empty Club", court_ids=(), inactive_court_ids=(1,))
        async with async_session_factory() as db:
            with caplog.at_level(logging.WARNING, logger="courtgrid.services.availability"):
                result = await get_availability(TenantResolver(db), bookings_loader(db), "empty-club", "2030-06-04")
        assert result["availability"] == {}
        assert "no active courts" in caplog.text


# ---------------------------------------------------------------------------
# Status transitions and redemption
# ---------------------------------------------------------------------------


class TestStatusTransitions:
    async def test_mark_paid_is_idempotent_and_redeems_once(self, admission, facility, welcome_discount, clock):
        booking = await admission.create_booking("vision-badminton", _request(discount_code="WELCOME10"))

        for _ in range(2):
            async with async_session_factory() as db:
                paid = await booking_status.mark_paid(db, booking.id, clock.now(), payment_intent_id="pi_1")
                await db.commit()
            assert paid.status == BookingStatus.PAID

        async with async_session_factory() as db:
            discount = await discounts.get_by_code(db, "welcome10")
        assert discount.used_count == 1

    async def test_cancelled_booking_cannot_be_paid_or_completed(self, admission, facility, clock):
        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            await booking_status.cancel(db, booking.id, clock.now())
            await db.commit()

        async with async_session_factory() as db:
            with pytest.raises(InvalidBookingTransition):
                await booking_status.mark_paid(db, booking.id, clock.now())
            with pytest.raises(InvalidBookingTransition):
                await booking_status.complete(db, booking.id)
            with pytest.raises(InvalidBookingTransition):
                await booking_status.cancel(db, booking.id, clock.now())

    async def test_complete_requires_paid(self, admission, facility, clock):
        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            with pytest.raises(InvalidBookingTransition):
                await booking_status.complete(db, booking.id)

        async with async_session_factory() as db:
            await booking_status.mark_paid(db, booking.id, clock.now())
            completed = await booking_status.complete(db, booking.id, facility_id=facility.id)
            await db.commit()
        assert completed.status == BookingStatus.COMPLETED

    async def test_scoped_to_facility(self, admission, facility, other_facility, clock):
        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            with pytest.raises(BookingNotFound):
                await booking_status.cancel(db, booking.id, clock.now(), facility_id=other_facility.id)
            still = await booking_status.get_booking(db, booking.id)
        assert still.status == BookingStatus.PENDING

    async def test_unknown_booking(self, clock):
        async with async_session_factory() as db:
            with pytest.raises(BookingNotFound):
                await booking_status.cancel(db, uuid.uuid4(), clock.now())


class TestRedemption:
    async def test_redeem_once_per_booking(self, admission, facility, welcome_discount):
        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            assert await discounts.redeem(db, "WELCOME10", booking.id) is True
            assert await discounts.redeem(db, "WELCOME10", booking.id) is False
            await db.commit()

        async with async_session_factory() as db:
            discount = await discounts.get_by_code(db, "WELCOME10")
        assert discount.used_count == 1

    async def test_exhausted_code_stops_validating(self, admission, facility, welcome_discount, clock):
        async with async_session_factory() as db:
            discount = await discounts.get_by_code(db, "WELCOME10")
            discount.usage_limit = 1
            await db.commit()

        booking = await admission.create_booking("vision-badminton", _request())
        async with async_session_factory() as db:
            before = await discounts.evaluate_code(db, "WELCOME10", Decimal("25.00"), clock)
            again = await discounts.evaluate_code(db, "WELCOME10", Decimal("25.00"), clock)
            assert before == again
            assert before.valid

            await discounts.redeem(db, "WELCOME10", booking.id)
            await db.commit()

        async with async_session_factory() as db:
            after = await discounts.evaluate_code(db, "WELCOME10", Decimal("25.00"), clock)
            active = await discounts.list_active(db, clock)
        assert after.reason == discounts.REASON_USAGE_EXHAUSTED
        assert active == []


class TestDayLockPruning:
    async def test_only_past_rows_removed(self, admission, facility):
        await admission.create_booking("vision-badminton", _request(booking_date=TODAY.isoformat()))
        await admission.create_booking("vision-badminton", _request(booking_date=TOMORROW.isoformat()))

        async with async_session_factory() as db:
            removed = await prune_day_locks(db, TOMORROW)
            await db.commit()
        assert removed == 1

        async with async_session_factory() as db:
            remaining = (await db.execute(select(CourtDayLock.booking_date))).scalars().all()
        assert remaining == [TOMORROW]
