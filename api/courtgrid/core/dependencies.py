"""FastAPI dependencies for injection into route handlers."""

import uuid

from fastapi import Depends, Header, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.auth import decode_token
from courtgrid.core.clock import Clock, get_clock
from courtgrid.core.config import settings
from courtgrid.core.database import get_db, get_session_factory
from courtgrid.core.errors import AuthenticationError
from courtgrid.models.vendor import Vendor
from courtgrid.services.admission import BookingAdmission
from courtgrid.services.tenant import TenantResolver

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Tenant
# ---------------------------------------------------------------------------

def facility_identifier(
    facility: str | None = Query(None, description="Facility slug or id"),
    x_facility_slug: str | None = Header(None),
) -> str | None:
    """Identifier from the query string, then the X-Facility-Slug header.

    Routes with a request body fall back to its `facility` field themselves.
    None means "use the default facility".
    """
    for candidate in (facility, x_facility_slug):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


async def get_tenant_resolver(db: AsyncSession = Depends(get_db)) -> TenantResolver:
    return TenantResolver(db, settings.default_facility_slug)


def get_admission(clock: Clock = Depends(get_clock)) -> BookingAdmission:
    return BookingAdmission(get_session_factory(), clock, settings.default_facility_slug)


# ---------------------------------------------------------------------------
# Vendor authentication
# ---------------------------------------------------------------------------

async def get_current_vendor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Vendor:
    """Extract and validate the current vendor from the JWT bearer token."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
        vendor_id = uuid.UUID(payload["sub"])
        facility_id = uuid.UUID(payload["facility_id"])
    except (JWTError, KeyError, ValueError):
        raise AuthenticationError("Invalid token") from None

    result = await db.execute(
        select(Vendor).where(
            Vendor.id == vendor_id,
            Vendor.facility_id == facility_id,
            Vendor.is_active.is_(True),
        )
    )
    vendor = result.scalar_one_or_none()
    if vendor is None:
        raise AuthenticationError("Vendor not found")

    return vendor
