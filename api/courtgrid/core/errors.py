"""Domain errors and their HTTP rendering.

Services raise these; route handlers let them propagate and the handler
registered by register_error_handlers() turns them into JSON responses.
Services translate storage driver exceptions with storage_errors(); the
DBAPIError handler is the fallback for routes that query directly.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)


class CourtGridError(Exception):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)


class ValidationError(CourtGridError):
    """Malformed input: bad date/time format, missing field, past date."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(CourtGridError):
    status_code = status.HTTP_404_NOT_FOUND


class FacilityNotFound(NotFound):
    pass


class CourtNotFound(NotFound):
    pass


class BookingNotFound(NotFound):
    pass


class DiscountNotFound(NotFound):
    pass


class BookingConflict(CourtGridError):
    """The requested interval overlaps one or more qualifying bookings."""

    status_code = status.HTTP_409_CONFLICT


class InvalidBookingTransition(CourtGridError):
    """A status change out of a terminal state, or otherwise not allowed."""

    status_code = status.HTTP_409_CONFLICT


class AuthenticationError(CourtGridError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ConfigurationError(CourtGridError):
    """Operator-fixable misconfiguration, e.g. the default facility is missing."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PaymentError(CourtGridError):
    status_code = status.HTTP_502_BAD_GATEWAY


class StorageUnavailable(CourtGridError):
    """The store failed, or kept failing after the bounded retries."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise storage driver failures as StorageUnavailable."""
    try:
        yield
    except DBAPIError as exc:
        logger.error("Storage failure while %s: %s", action, exc.__class__.__name__)
        raise StorageUnavailable(f"Storage unavailable while {action}, please try again") from exc


def error_body(exc: CourtGridError) -> dict[str, Any]:
    body: dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CourtGridError)
    async def courtgrid_error_handler(request: Request, exc: CourtGridError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    @app.exception_handler(DBAPIError)
    async def storage_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.__class__.__name__)
        return JSONResponse(
            status_code=StorageUnavailable.status_code,
            content=error_body(StorageUnavailable("Storage unavailable, please try again")),
        )
