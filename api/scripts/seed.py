"""Seed the database with the Vision Badminton Centre demo facility.

Run with: python -m scripts.seed
Creates the facility with 10 courts and weekly hours, three discount codes,
and a vendor login.
"""

import asyncio
from datetime import UTC, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import select

from courtgrid.core.auth import hash_password
from courtgrid.core.database import async_session_factory, engine
from courtgrid.models import Base, Court, Discount, DiscountType, Facility, OperatingHours, Vendor

FACILITY = {
    "slug": "vision-badminton",
    "name": "Vision Badminton Centre",
    "description": "Premier badminton facility with 10 professional courts",
    "address": "123 Sports Drive, Toronto, Ontario M1A 1A1, Canada",
    "email": "info@visionbadminton.ca",
    "phone": "+1-416-555-0123",
    "court_rate": Decimal("25.00"),
    "service_fee_percentage": Decimal("1.00"),
    "tax_percentage": Decimal("13.00"),
    "currency": "CAD",
}

COURT_COUNT = 10

# Weekdays 08:00-20:00, weekends 06:00-22:00
WEEKDAY_HOURS = (time(8, 0), time(20, 0))
WEEKEND_HOURS = (time(6, 0), time(22, 0))

DISCOUNTS = [
    {
        "code": "WELCOME10",
        "description": "10% off your first booking",
        "discount_type": DiscountType.PERCENTAGE,
        "value": Decimal("10.00"),
        "min_amount": Decimal("0.00"),
        "max_discount": Decimal("50.00"),
        "usage_limit": 100,
    },
    {
        "code": "SAVE5",
        "description": "$5 off any booking",
        "discount_type": DiscountType.FIXED,
        "value": Decimal("5.00"),
        "min_amount": Decimal("10.00"),
        "usage_limit": 50,
    },
    {
        "code": "FIRSTTIME",
        "description": "15% off for new customers",
        "discount_type": DiscountType.PERCENTAGE,
        "value": Decimal("15.00"),
        "min_amount": Decimal("20.00"),
        "max_discount": Decimal("25.00"),
        "usage_limit": 200,
    },
]

VENDOR_EMAIL = "vendor@visionbadminton.ca"
VENDOR_PASSWORD = "vendor123"


async def seed():
    # Create tables (in dev; production manages its schema separately)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        # Check if already seeded
        result = await db.execute(select(Facility).where(Facility.slug == FACILITY["slug"]))
        if result.scalar_one_or_none():
            print("Database already seeded - skipping.")
            return

        facility = Facility(**FACILITY)
        facility.courts = [Court(id=i, name=f"Court {i}", sport="Badminton") for i in range(1, COURT_COUNT + 1)]
        facility.operating_hours = OperatingHours.weekly(weekday=WEEKDAY_HOURS, weekend=WEEKEND_HOURS)
        db.add(facility)
        await db.flush()

        now = datetime.now(UTC)
        for discount_data in DISCOUNTS:
            existing = await db.execute(select(Discount).where(Discount.code == discount_data["code"]))
            if existing.scalar_one_or_none() is None:
                db.add(Discount(valid_from=now, valid_until=now + timedelta(days=365), **discount_data))

        db.add(Vendor(
            email=VENDOR_EMAIL,
            hashed_password=hash_password(VENDOR_PASSWORD),
            full_name="Vision Front Desk",
            facility_id=facility.id,
        ))

        await db.commit()

        print(f"Seeded: {facility.name} ({facility.slug})")
        print(f"  {COURT_COUNT} courts")
        print(f"  {len(DISCOUNTS)} discount codes: {', '.join(d['code'] for d in DISCOUNTS)}")
        print("  vendor login:")
        print(f"    {VENDOR_EMAIL} / {VENDOR_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(seed())
