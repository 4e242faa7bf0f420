"""Tenant resolution: map a facility identifier to its Facility aggregate.

One lookup path for every caller. A canonical UUID string is a facility id
and is matched exactly; anything else is a slug, trimmed and matched
case-insensitively. Courts and operating hours load with the facility.
"""

import logging
import re
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.errors import ConfigurationError, FacilityNotFound, ValidationError
from courtgrid.models.facility import Facility

logger = logging.getLogger(__name__)

# Canonical 8-4-4-4-12 form only; bare hex or urn:uuid: strings stay slugs
UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def _as_facility_id(identifier: str) -> uuid.UUID | None:
    if not UUID_RE.match(identifier):
        return None
    return uuid.UUID(identifier)


class TenantResolver:
    """Resolves facilities for one session.

    default_slug is the legacy fallback used when a caller supplies no
    identifier at all; None disables the fallback.
    """

    def __init__(self, db: AsyncSession, default_slug: str | None = None):
        self.db = db
        self.default_slug = default_slug.strip().lower() if default_slug and default_slug.strip() else None

    async def resolve(self, identifier: str | None, include_inactive: bool = False) -> Facility:
        if identifier is None or not identifier.strip():
            return await self.resolve_default()

        facility = await self._lookup(identifier.strip())
        if facility is None or (not facility.is_active and not include_inactive):
            raise FacilityNotFound("Facility not found", details={"facility": identifier.strip()})
        return facility

    async def resolve_default(self) -> Facility:
        if self.default_slug is None:
            raise ValidationError(
                "Facility identifier required",
                details={"hint": "Pass ?facility=<slug>, the X-Facility-Slug header, or a facility body field"},
            )

        facility = await self._lookup(self.default_slug)
        if facility is None or not facility.is_active:
            logger.error("Default facility %r is missing or inactive", self.default_slug)
            raise ConfigurationError(
                "Default facility is not available",
                details={"default_facility_slug": self.default_slug},
            )
        logger.debug("Using default facility %s", facility.slug)
        return facility

    async def list_active(self) -> list[Facility]:
        result = await self.db.execute(select(Facility).where(Facility.is_active.is_(True)).order_by(Facility.name))
        return list(result.scalars().all())

    async def _lookup(self, identifier: str) -> Facility | None:
        facility_id = _as_facility_id(identifier)
        if facility_id is not None:
            stmt = select(Facility).where(Facility.id == facility_id)
        else:
            stmt = select(Facility).where(func.lower(Facility.slug) == identifier.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
