from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db_session
from .ledger import AttendanceLedger
from .repository import SqlAlchemyStore


def get_db() -> Session:
    yield from get_db_session()


def get_ledger(db: Session = Depends(get_db)) -> AttendanceLedger:
    settings = get_settings()
    return AttendanceLedger(SqlAlchemyStore(db), auto_checkout=settings.auto_checkout_on_load)


def require_token(authorization: Optional[str] = Header(default=None)) -> str:
    settings = get_settings()
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    if not secrets.compare_digest(token.encode(), settings.api_token.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return token
