"""
Shared FastAPI dependency helpers.

- `get_db` provides a SQLAlchemy session to each request and makes sure
  it's closed afterward.
- `get_actor` resolves the caller identity recorded on workflow actions
  (who generated / approved / paid / locked a payroll). Authentication
  lives in front of this service; we only read the forwarded identity.
"""

from typing import Generator, Optional

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from paydesk.db import SessionLocal  # noqa: E402


def get_db() -> Generator[Session, None, None]:
    """Yield a database session and close it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(x_actor: Optional[str] = Header(None, alias="X-Actor")) -> str:
    """Return the acting user id forwarded by the gateway."""
    actor = (x_actor or "").strip()
    if not actor:
        raise HTTPException(status_code=401, detail="Missing X-Actor header")
    return actor
