"""FastAPI dependencies for database sessions and machine credentials."""

import hmac
from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_internal_api_key(authorization: str | None = Header(default=None)) -> None:
    """Check the `Authorization: Bearer <INTERNAL_API_KEY>` header."""
    expected = settings.INTERNAL_API_KEY
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_API_KEY not configured")
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def verify_internal_secret(x_internal_secret: str = Header(...)) -> None:
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not hmac.compare_digest(x_internal_secret, expected):
        raise HTTPException(status_code=403, detail="Invalid internal secret")
