from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..deps import get_ledger, require_token
from ..errors import PersistenceError
from ..ledger import AttendanceLedger
from ..schemas import Stats


router = APIRouter(prefix="/api", tags=["stats"], dependencies=[Depends(require_token)])
logger = logging.getLogger("checkme.stats")


@router.get("/stats", response_model=Stats)
def stats(ledger: AttendanceLedger = Depends(get_ledger)):
    try:
        return ledger.stats()
    except PersistenceError as exc:
        # Dashboard cards show zeros rather than an error page
        logger.warning("stats unavailable, returning zeros: %s", exc)
        return Stats()
