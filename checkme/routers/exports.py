from __future__ import annotations

import csv
import io
import re
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ..deps import get_ledger, require_token
from ..ledger import AttendanceLedger
from ..validation import ATTENDEE_COLUMNS


router = APIRouter(prefix="/api", tags=["exports"], dependencies=[Depends(require_token)])

MAIN_GATE = "Main Gate"

LOG_HEADER = [
    "id",
    "visitor_id",
    "name",
    "status",
    "visitor_type",
    "department",
    "organization",
    "context",
    "check_in",
    "check_out",
    "duration",
    "laptop_name",
    "laptop_color",
    "serial_number",
]


def _stream_csv(
    rows: Iterable[dict],
    filename: str,
    header_fields: Optional[List[str]] = None,
    header_labels: Optional[List[str]] = None,
) -> StreamingResponse:
    buffer = io.StringIO()
    row_iter = iter(rows)
    first_row = next(row_iter, None)
    if header_fields is not None:
        fieldnames = header_fields
    elif first_row is not None:
        fieldnames = list(first_row.keys())
    else:
        fieldnames = []
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    if header_labels is not None:
        writer.writerow(dict(zip(fieldnames, header_labels)))
    else:
        writer.writeheader()
    if first_row is not None:
        writer.writerow(first_row)
    for row in row_iter:
        writer.writerow(row)
    buffer.seek(0)
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return StreamingResponse(iter([buffer.getvalue()]), media_type="text/csv", headers=headers)


@router.get("/export.logs.csv")
def export_logs(ledger: AttendanceLedger = Depends(get_ledger), event_id: Optional[str] = None):
    items, _ = ledger.list_logs(event_id=event_id)
    rows = (
        {
            "id": r.id,
            "visitor_id": r.visitor_id,
            "name": r.name,
            "status": r.status.value,
            "visitor_type": r.visitor_type.value if r.visitor_type else "",
            "department": r.department,
            "organization": r.organization,
            "context": r.event_name or MAIN_GATE,
            "check_in": r.check_in.isoformat(),
            "check_out": r.check_out.isoformat() if r.check_out else "",
            "duration": r.duration or "",
            "laptop_name": r.laptop_name,
            "laptop_color": r.laptop_color,
            "serial_number": r.serial_number,
        }
        for r in items
    )
    return _stream_csv(rows, "visitor_logs.csv", header_fields=LOG_HEADER)


@router.get("/export.attendees.csv")
def export_attendees(event_id: str = Query(..., min_length=1), ledger: AttendanceLedger = Depends(get_ledger)):
    event = ledger.get_event(event_id)
    items, _ = ledger.list_logs(event_id=event.id)
    # Answers are keyed by field id so that repeated labels keep separate columns
    answer_keys = [f"field:{f.id}" for f in event.custom_fields]
    header = list(ATTENDEE_COLUMNS) + answer_keys
    labels = list(ATTENDEE_COLUMNS) + [f.label for f in event.custom_fields]
    rows = (
        {
            "name": r.name,
            "organization": r.organization,
            "status": r.status.value,
            "registration_time": r.check_in.isoformat(),
            **{key: r.custom_data.get(f.id, "") for key, f in zip(answer_keys, event.custom_fields)},
        }
        for r in items
    )
    safe_name = re.sub(r"[^a-z0-9]", "_", event.name, flags=re.IGNORECASE)
    return _stream_csv(rows, f"attendees_{safe_name}.csv", header_fields=header, header_labels=labels)
