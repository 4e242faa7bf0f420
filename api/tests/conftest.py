"""Shared test fixtures.

Tests run against a throwaway SQLite file; the URL must be in the
environment before courtgrid.core.config is first imported.
"""

import os
import tempfile

_TEST_DB = os.path.join(tempfile.mkdtemp(prefix="courtgrid-tests-"), "courtgrid.db")
os.environ["CG_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB}"
os.environ["CG_DEFAULT_FACILITY_SLUG"] = ""
os.environ["CG_SECRET_KEY"] = "test-secret"
os.environ["CG_ADMISSION_RETRY_BACKOFF_SECONDS"] = "0"

from datetime import UTC, date, datetime, time  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from courtgrid.core.auth import hash_password  # noqa: E402
from courtgrid.core.clock import Clock, get_clock  # noqa: E402
from courtgrid.core.database import async_session_factory, engine  # noqa: E402
from courtgrid.main import app  # noqa: E402
from courtgrid.models import Base, Court, Discount, DiscountType, Facility, OperatingHours, Vendor  # noqa: E402

# Monday 3 June 2030, 09:00 in the facility's zone
TODAY = date(2030, 6, 3)
TOMORROW = date(2030, 6, 4)  # a Tuesday: weekday hours 08:00-20:00
SATURDAY = date(2030, 6, 8)  # weekend hours 06:00-22:00


class FixedClock(Clock):
    """A clock pinned to one instant."""

    def __init__(self, now: datetime):
        super().__init__("America/Toronto")
        self._now = now.astimezone(self.tz)

    def now(self) -> datetime:
        return self._now


@pytest.fixture(autouse=True)
async def _reset_database():
    """Fresh schema per test.

    The global engine is created at import time. When pytest-asyncio creates a new
    event loop for tests, any existing pooled connections are bound to the old loop
    and will fail with 'Future attached to a different loop'. Disposing before each
    test forces fresh connections in the current loop.
    """
    await engine.dispose()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest.fixture
def clock():
    return FixedClock(datetime(2030, 6, 3, 9, 0, tzinfo=ZoneInfo("America/Toronto")))


@pytest.fixture
async def client(clock):
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_facility(
    slug: str,
    name: str,
    court_ids=(1, 2),
    inactive_court_ids=(),
    weekday=(time(8, 0), time(20, 0)),
    weekend=(time(6, 0), time(22, 0)),
    is_active: bool = True,
) -> SimpleNamespace:
    async with async_session_factory() as db:
        facility = Facility(
            slug=slug,
            name=name,
            address="123 Sports Drive, Toronto",
            court_rate=Decimal("25.00"),
            service_fee_percentage=Decimal("1.00"),
            tax_percentage=Decimal("13.00"),
            currency="CAD",
            is_active=is_active,
        )
        facility.courts = [Court(id=i, name=f"Court {i}", is_active=True) for i in court_ids] + [
            Court(id=i, name=f"Court {i}", is_active=False) for i in inactive_court_ids
        ]
        facility.operating_hours = OperatingHours.weekly(weekday=weekday, weekend=weekend)
        db.add(facility)
        await db.commit()
        return SimpleNamespace(id=facility.id, slug=facility.slug, name=facility.name)


@pytest.fixture
async def facility():
    """Two bookable courts and one retired court."""
    return await create_facility("vision-badminton", "Vision Badminton Centre", court_ids=(1, 2), inactive_court_ids=(3,))


@pytest.fixture
async def other_facility():
    return await create_facility("north-york-courts", "North York Courts", court_ids=(1,))


@pytest.fixture
async def welcome_discount():
    async with async_session_factory() as db:
        discount = Discount(
            code="WELCOME10",
            description="10% off your first booking",
            discount_type=DiscountType.PERCENTAGE,
            value=Decimal("10.00"),
            min_amount=Decimal("0.00"),
            max_discount=Decimal("50.00"),
            usage_limit=100,
            valid_from=datetime(2030, 1, 1, tzinfo=UTC),
            valid_until=datetime(2030, 12, 31, tzinfo=UTC),
        )
        db.add(discount)
        await db.commit()
        return discount


@pytest.fixture
async def vendor(facility):
    async with async_session_factory() as db:
        v = Vendor(
            email="desk@visionbadminton.ca",
            hashed_password=hash_password("vendor123"),
            full_name="Front Desk",
            facility_id=facility.id,
        )
        db.add(v)
        await db.commit()
        return SimpleNamespace(id=v.id, email=v.email, password="vendor123", facility_id=facility.id)


@pytest.fixture
async def vendor_headers(client, vendor):
    resp = await client.post("/api/v1/vendor/login", json={"email": vendor.email, "password": vendor.password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def booking_body(court_id: int = 1, start: str = "14:00", end: str = "15:00", day: date = TOMORROW, **extra) -> dict:
    body = {
        "court_id": court_id,
        "booking_date": day.isoformat(),
        "start_time": start,
        "end_time": end,
        "customer_name": "Priya Shah",
        "customer_email": "Priya@Example.com",
        "customer_phone": "+1-416-555-0199",
    }
    body.update(extra)
    return body
