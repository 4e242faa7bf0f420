"""All models imported here so Base.metadata sees every table."""

from courtgrid.models.base import Base
from courtgrid.models.booking import ACTIVE_STATUSES, Booking, BookingSource, BookingStatus, CourtDayLock
from courtgrid.models.discount import Discount, DiscountRedemption, DiscountType
from courtgrid.models.facility import Court, Facility, OperatingHours
from courtgrid.models.vendor import Vendor

__all__ = [
    "Base",
    "Facility",
    "Court",
    "OperatingHours",
    "Booking",
    "BookingStatus",
    "BookingSource",
    "ACTIVE_STATUSES",
    "CourtDayLock",
    "Discount",
    "DiscountType",
    "DiscountRedemption",
    "Vendor",
]
