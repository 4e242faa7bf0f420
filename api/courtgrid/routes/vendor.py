"""Vendor portal routes: login and booking management for one facility.

Every booking query is scoped to the authenticated vendor's facility; a
booking of another facility is reported as not found.
"""

import logging
import uuid
from collections import Counter

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.auth import create_access_token, verify_password
from courtgrid.core.clock import Clock, get_clock
from courtgrid.core.database import get_db
from courtgrid.core.dependencies import get_admission, get_current_vendor
from courtgrid.core.errors import AuthenticationError, ValidationError
from courtgrid.models.base import utcnow
from courtgrid.models.booking import ACTIVE_STATUSES, Booking, BookingSource, BookingStatus
from courtgrid.models.vendor import Vendor
from courtgrid.routes.bookings import to_request
from courtgrid.schemas import (
    BookingCreate,
    BookingOut,
    BookingStatsOut,
    CancelRequest,
    TokenResponse,
    VendorBookingList,
    VendorLoginRequest,
    VendorOut,
)
from courtgrid.services import booking_status
from courtgrid.services.admission import BookingAdmission, parse_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendor", tags=["vendor"])


@router.post("/login", response_model=TokenResponse)
async def login(body: VendorLoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Vendor).where(Vendor.email == body.email.lower()))
    vendor = result.scalar_one_or_none()
    if vendor is None or not verify_password(body.password, vendor.hashed_password):
        raise AuthenticationError("Invalid email or password")

    if not vendor.is_active or not vendor.facility.is_active:
        raise AuthenticationError("Account is disabled")

    vendor.last_login_at = utcnow()
    logger.info("Vendor %s logged in for %s", vendor.email, vendor.facility.slug)

    return TokenResponse(
        access_token=create_access_token(vendor.id, vendor.facility_id, vendor.facility.slug),
        facility_slug=vendor.facility.slug,
    )


@router.get("/me", response_model=VendorOut)
async def me(vendor: Vendor = Depends(get_current_vendor)):
    return vendor


@router.get("/bookings", response_model=VendorBookingList)
async def list_bookings(
    date_str: str | None = Query(None, alias="date", description="YYYY-MM-DD"),
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    vendor: Vendor = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
):
    filters = [Booking.facility_id == vendor.facility_id]
    if date_str is not None:
        filters.append(Booking.booking_date == parse_date(date_str, "date"))
    if status_filter is not None:
        try:
            filters.append(Booking.status == BookingStatus(status_filter))
        except ValueError:
            raise ValidationError(
                "Unknown booking status",
                details={"status": status_filter, "allowed": [s.value for s in BookingStatus]},
            ) from None

    total = (await db.execute(select(func.count()).select_from(Booking).where(*filters))).scalar_one()
    result = await db.execute(
        select(Booking)
        .where(*filters)
        .order_by(Booking.booking_date.desc(), Booking.start_time.desc())
        .offset(skip)
        .limit(limit)
    )
    items = [BookingOut.model_validate(b) for b in result.scalars().all()]
    return VendorBookingList(items=items, total=total, skip=skip, limit=limit)


@router.get("/bookings/stats", response_model=BookingStatsOut)
async def booking_stats(vendor: Vendor = Depends(get_current_vendor), db: AsyncSession = Depends(get_db)):
    """Active booking counts per date and per month, plus counts per status."""
    by_date_rows = await db.execute(
        select(Booking.booking_date, func.count())
        .where(Booking.facility_id == vendor.facility_id, Booking.status.in_(ACTIVE_STATUSES))
        .group_by(Booking.booking_date)
        .order_by(Booking.booking_date)
    )
    by_date = {day.isoformat(): count for day, count in by_date_rows.all()}

    by_month: Counter[str] = Counter()
    for day, count in by_date.items():
        by_month[day[:7]] += count

    by_status_rows = await db.execute(
        select(Booking.status, func.count())
        .where(Booking.facility_id == vendor.facility_id)
        .group_by(Booking.status)
    )
    by_status = {str(s): count for s, count in by_status_rows.all()}

    return BookingStatsOut(by_date=by_date, by_month=dict(by_month), by_status=by_status)


@router.get("/bookings/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: uuid.UUID,
    vendor: Vendor = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
):
    return await booking_status.get_booking(db, booking_id, facility_id=vendor.facility_id)


@router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    vendor: Vendor = Depends(get_current_vendor),
    admission: BookingAdmission = Depends(get_admission),
):
    """Walk-in or phone booking entered by staff; always for the vendor's own facility."""
    return await admission.create_booking(str(vendor.facility_id), to_request(body), source=BookingSource.VENDOR)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(
    booking_id: uuid.UUID,
    body: CancelRequest | None = None,
    vendor: Vendor = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    reason = body.reason if body and body.reason else f"Cancelled by {vendor.full_name}"
    return await booking_status.cancel(db, booking_id, clock.now(), reason=reason, facility_id=vendor.facility_id)


@router.post("/bookings/{booking_id}/complete", response_model=BookingOut)
async def complete_booking(
    booking_id: uuid.UUID,
    vendor: Vendor = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
):
    return await booking_status.complete(db, booking_id, facility_id=vendor.facility_id)
