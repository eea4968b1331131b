from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..deps import get_ledger, require_token
from ..ledger import AttendanceLedger
from ..schemas import (
    EventCreate,
    EventDefinition,
    EventRegistration,
    EventsListResponse,
    RegistrationResult,
)
from ..validation import validate_custom_data
from .visitors import issue_visitor_id


router = APIRouter(prefix="/api", tags=["events"])


@router.post("/events.create", response_model=EventDefinition, dependencies=[Depends(require_token)])
def events_create(payload: EventCreate, ledger: AttendanceLedger = Depends(get_ledger)):
    return ledger.create_event(payload.name, payload.custom_fields)


@router.get("/events.list", response_model=EventsListResponse, dependencies=[Depends(require_token)])
def events_list(ledger: AttendanceLedger = Depends(get_ledger)):
    items = ledger.list_events()
    return {"items": items, "total": len(items)}


# Public: the event QR code leads here to render the registration form
@router.get("/events.get", response_model=EventDefinition)
def events_get(id: str = Query(..., min_length=1), ledger: AttendanceLedger = Depends(get_ledger)):
    return ledger.get_event(id)


@router.post("/events.register", response_model=RegistrationResult)
def events_register(payload: EventRegistration, ledger: AttendanceLedger = Depends(get_ledger)):
    event = ledger.require_event(payload.event_id)
    visitor_id = (payload.visitor_id or "").strip()
    if visitor_id and ledger.has_registered(visitor_id, event.id):
        answers = {}
    else:
        visitor_id = visitor_id or issue_visitor_id()
        answers = validate_custom_data(event, payload.custom_data)
    outcome = ledger.register_for_event(visitor_id, event.id, payload.supplied(), answers)
    return RegistrationResult(action=outcome.action, record=outcome.record)
