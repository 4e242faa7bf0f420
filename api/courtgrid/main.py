"""CourtGrid API application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtgrid.core.config import settings
from courtgrid.core.database import async_session_factory
from courtgrid.core.errors import register_error_handlers
from courtgrid.routes import bookings, discounts, facilities, payments, vendor, webhooks
from courtgrid.services.tenant import TenantResolver

logger = logging.getLogger(__name__)


async def verify_default_facility() -> None:
    """Refuse to start when a configured default facility does not resolve."""
    if not settings.default_facility_slug:
        return
    async with async_session_factory() as db:
        facility = await TenantResolver(db, settings.default_facility_slug).resolve_default()
    logger.info("Default facility: %s (%s)", facility.slug, facility.id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await verify_default_facility()
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url=f"{settings.api_prefix}/docs",
    openapi_url=f"{settings.api_prefix}/openapi.json",
    lifespan=lifespan,
)

# CORS - permissive in dev, lock down in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Mount routes
app.include_router(facilities.router, prefix=settings.api_prefix)
app.include_router(bookings.router, prefix=settings.api_prefix)
app.include_router(discounts.router, prefix=settings.api_prefix)
app.include_router(payments.router, prefix=settings.api_prefix)
app.include_router(webhooks.router, prefix=settings.api_prefix)
app.include_router(vendor.router, prefix=settings.api_prefix)


@app.get(f"{settings.api_prefix}/health")
@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
