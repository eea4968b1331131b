from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from ..deps import get_ledger
from ..ledger import AttendanceLedger
from ..schemas import VISITOR_ID_MAX_LENGTH, ScanRequest, ScanResult, VisitorProfile, VisitorRegistration


# Kiosk-facing routes; the visitor id is the only identity
router = APIRouter(prefix="/api", tags=["visitors"])


def issue_visitor_id() -> str:
    return f"visitor-{uuid.uuid4()}"


@router.post("/scan", response_model=ScanResult)
def scan(payload: ScanRequest, ledger: AttendanceLedger = Depends(get_ledger)):
    outcome = ledger.record_scan(payload.visitor_id, payload.context, payload.event_id)
    return ScanResult(action=outcome.action, record=outcome.record)


@router.post("/visitors.register", response_model=ScanResult)
def visitors_register(payload: VisitorRegistration, ledger: AttendanceLedger = Depends(get_ledger)):
    visitor_id = (payload.visitor_id or "").strip() or issue_visitor_id()
    outcome = ledger.record_scan(visitor_id, payload.context, profile=payload.supplied())
    return ScanResult(action=outcome.action, record=outcome.record)


@router.get("/visitors.profile", response_model=VisitorProfile)
def visitors_profile(visitor_id: str = Query(..., min_length=1, max_length=VISITOR_ID_MAX_LENGTH), ledger: AttendanceLedger = Depends(get_ledger)):
    return ledger.visitor_profile(visitor_id)
