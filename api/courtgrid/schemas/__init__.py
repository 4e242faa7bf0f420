"""Pydantic schemas for API serialisation."""

import uuid
from datetime import date, datetime, time
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# --- Facility ---


class CourtOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sport: str
    is_active: bool


class OperatingHoursOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    open_time: time
    close_time: time


class FacilityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str
    name: str
    description: str | None
    address: str | None
    email: str | None
    phone: str | None
    court_rate: Decimal
    service_fee_percentage: Decimal
    tax_percentage: Decimal
    currency: str
    active_courts: list[CourtOut]
    operating_hours: list[OperatingHoursOut]


# --- Availability ---


class AvailabilityCourt(BaseModel):
    id: int
    name: str
    sport: str


class AvailabilityFacility(BaseModel):
    id: str
    slug: str
    name: str
    address: str | None
    price_per_hour: str
    currency: str
    courts: list[AvailabilityCourt]
    operating_hours: dict[str, str] | None = None


class AvailabilitySummary(BaseModel):
    total_slots: int
    available_slots: int
    court_count: int


class AvailabilityOut(BaseModel):
    facility: AvailabilityFacility
    date: date
    availability: dict[int, dict[str, bool]]  # court id -> {"HH:00": available}
    summary: AvailabilitySummary


# --- Booking ---


class BookingCreate(BaseModel):
    """Wire-format booking request. Validation happens in the admission service."""

    facility: str | None = None
    court_id: int | None = None
    booking_date: str | None = None  # "YYYY-MM-DD"
    start_time: str | None = None  # "HH:MM"
    end_time: str | None = None  # "HH:MM"
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    discount_code: str | None = None
    notes: str | None = None


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    facility_id: uuid.UUID
    court_id: int
    booking_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: str
    source: str
    customer_name: str
    customer_email: str
    customer_phone: str | None
    court_rental: Decimal
    discount_code: str | None
    discount_amount: Decimal
    service_fee: Decimal
    tax: Decimal
    total_amount: Decimal
    currency: str
    paid_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    notes: str | None
    created_at: datetime


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


# --- Discounts ---


class DiscountApplyRequest(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    amount: Decimal = Field(ge=0)


class DiscountApplyOut(BaseModel):
    valid: bool
    code: str
    discount_amount: Decimal
    final_amount: Decimal
    reason: str | None = None
    message: str | None = None
    description: str | None = None


class DiscountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str | None
    discount_type: str
    value: Decimal
    min_amount: Decimal
    max_discount: Decimal | None
    valid_until: datetime


# --- Payments ---


class PaymentIntentRequest(BaseModel):
    booking_id: uuid.UUID


class PaymentIntentOut(BaseModel):
    booking_id: uuid.UUID
    payment_intent_id: str
    client_secret: str
    amount: int  # minor units
    currency: str


# --- Vendor ---


class VendorLoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    facility_slug: str


class VendorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: str
    facility_id: uuid.UUID
    last_login_at: datetime | None


class VendorBookingList(BaseModel):
    items: list[BookingOut]
    total: int
    skip: int
    limit: int


class BookingStatsOut(BaseModel):
    by_date: dict[str, int]  # "YYYY-MM-DD" -> active booking count
    by_month: dict[str, int]  # "YYYY-MM" -> active booking count
    by_status: dict[str, int]
