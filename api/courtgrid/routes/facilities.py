"""Facility and availability routes (public)."""

from fastapi import APIRouter, Depends, Query, Response

from courtgrid.core.dependencies import facility_identifier, get_tenant_resolver
from courtgrid.schemas import AvailabilityOut, FacilityOut
from courtgrid.services.availability import bookings_loader, get_availability
from courtgrid.services.tenant import TenantResolver

router = APIRouter(tags=["facilities"])


def _no_cache(response: Response) -> None:
    # Availability changes with every booking; clients must always refetch
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"


@router.get("/facilities", response_model=list[FacilityOut])
async def list_facilities(resolver: TenantResolver = Depends(get_tenant_resolver)):
    return await resolver.list_active()


@router.get("/facilities/{identifier}", response_model=FacilityOut)
async def get_facility(identifier: str, resolver: TenantResolver = Depends(get_tenant_resolver)):
    return await resolver.resolve(identifier)


@router.get("/facilities/{identifier}/availability", response_model=AvailabilityOut)
async def facility_availability(
    identifier: str,
    response: Response,
    date_str: str | None = Query(None, alias="date", description="YYYY-MM-DD"),
    resolver: TenantResolver = Depends(get_tenant_resolver),
):
    _no_cache(response)
    return await get_availability(resolver, bookings_loader(resolver.db), identifier, date_str)


@router.get("/availability", response_model=AvailabilityOut)
async def availability(
    response: Response,
    date_str: str | None = Query(None, alias="date", description="YYYY-MM-DD"),
    identifier: str | None = Depends(facility_identifier),
    resolver: TenantResolver = Depends(get_tenant_resolver),
):
    """Availability for the facility named by ?facility=, X-Facility-Slug, or the default facility."""
    _no_cache(response)
    return await get_availability(resolver, bookings_loader(resolver.db), identifier, date_str)
