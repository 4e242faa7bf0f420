"""Vendor authentication: password hashing and JWT access tokens."""

import uuid
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from courtgrid.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(vendor_id: uuid.UUID, facility_id: uuid.UUID, facility_slug: str) -> str:
    """Issue a vendor access token bound to a single facility."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(vendor_id),
        "exp": expire,
        "type": "vendor_access",
        "facility_id": str(facility_id),
        "facility_slug": facility_slug,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a vendor JWT. Raises JWTError on failure."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    if payload.get("type") != "vendor_access":
        raise JWTError("Invalid token type")
    return payload
