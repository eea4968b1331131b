from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..config import get_settings
from ..deps import get_ledger, require_token
from ..enums import AttendanceContext, VisitorStatus
from ..ledger import AttendanceLedger
from ..schemas import (
    AttendanceRecord,
    LogsListResponse,
    ManualRecordCreate,
    ProfileUpdate,
    ProfileUpdateResult,
    SweepResult,
)


router = APIRouter(prefix="/api", tags=["logs"], dependencies=[Depends(require_token)])


@router.get("/logs.list", response_model=LogsListResponse)
def logs_list(
    ledger: AttendanceLedger = Depends(get_ledger),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    visitor_id: Optional[str] = None,
    event_id: Optional[str] = None,
    status: Optional[VisitorStatus] = None,
    context: Optional[AttendanceContext] = None,
):
    page_size = min(page_size, get_settings().logs_page_size_max)
    items, total = ledger.list_logs(
        visitor_id=visitor_id,
        event_id=event_id,
        status=status,
        context=context,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return {"items": items, "total": total}


@router.post("/logs.manual", response_model=AttendanceRecord)
def logs_manual(payload: ManualRecordCreate, ledger: AttendanceLedger = Depends(get_ledger)):
    return ledger.add_manual_record(payload.supplied(), payload.check_in, payload.check_out)


@router.post("/logs.update_profile", response_model=ProfileUpdateResult)
def logs_update_profile(payload: ProfileUpdate, ledger: AttendanceLedger = Depends(get_ledger)):
    visitor_id, updated = ledger.update_profile(payload.id, payload.sent())
    return ProfileUpdateResult(visitor_id=visitor_id, updated=updated)


@router.post("/logs.sweep", response_model=SweepResult)
def logs_sweep(ledger: AttendanceLedger = Depends(get_ledger)):
    return SweepResult(updated=ledger.sweep_stale_checkins())
