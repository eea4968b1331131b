"""
Persistence collaborators for the attendance ledger.

The ledger only talks to the ``AttendanceStore`` protocol. ``SqlAlchemyStore``
backs it with the ``visitor_logs``/``events`` tables; ``InMemoryStore`` keeps
everything in dictionaries for the client-only variant and unit tests.

Rows are mapped to records through a fixed field table so that status,
context and visitor type are validated as enums at the boundary.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .enums import AttendanceContext, VisitorStatus, VisitorType
from .errors import NotFoundError, PersistenceError
from .models import Event, VisitorLog
from .schemas import UNKNOWN_NAME, PROFILE_FIELDS, AttendanceRecord, EventDefinition, FormField


logger = logging.getLogger("checkme.repository")


class AttendanceStore(Protocol):
    def list_records(
        self,
        *,
        visitor_id: Optional[str] = None,
        event_id: Optional[str] = None,
        status: Optional[VisitorStatus] = None,
        context: Optional[AttendanceContext] = None,
        since: Optional[datetime] = None,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AttendanceRecord]:
        """Records matching every given filter, newest check-in first."""
        raise NotImplementedError

    def count_records(
        self,
        *,
        visitor_id: Optional[str] = None,
        event_id: Optional[str] = None,
        status: Optional[VisitorStatus] = None,
        context: Optional[AttendanceContext] = None,
        since: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> int:
        raise NotImplementedError

    def count_distinct_visitors(self, *, since: datetime, before: datetime) -> int:
        raise NotImplementedError

    def get_record(self, record_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def insert_record(self, record: AttendanceRecord) -> AttendanceRecord:
        raise NotImplementedError

    def update_status(
        self,
        record_id: str,
        *,
        status: VisitorStatus,
        check_out: datetime,
        duration: str,
    ) -> AttendanceRecord:
        raise NotImplementedError

    def update_profile(self, visitor_id: str, fields: Dict[str, object]) -> int:
        """Overwrite profile fields on every record of ``visitor_id``; returns rows touched."""
        raise NotImplementedError

    def get_event(self, event_id: str) -> Optional[EventDefinition]:
        raise NotImplementedError

    def list_events(self) -> List[EventDefinition]:
        raise NotImplementedError

    def insert_event(self, event: EventDefinition) -> EventDefinition:
        raise NotImplementedError

    def count_events(self) -> int:
        raise NotImplementedError


# Columns copied verbatim between VisitorLog rows and AttendanceRecord
_PLAIN_COLUMNS = ("id", "visitor_id", "event_id", "event_name", "check_in", "check_out", "duration")
# Optional text columns; NULL in the table, "" on the record
_TEXT_COLUMNS = ("organization", "department", "laptop_name", "laptop_color", "serial_number")


def record_from_row(row: VisitorLog) -> AttendanceRecord:
    return AttendanceRecord(
        **{c: getattr(row, c) for c in _PLAIN_COLUMNS},
        **{c: getattr(row, c) or "" for c in _TEXT_COLUMNS},
        name=row.name or UNKNOWN_NAME,
        visitor_type=VisitorType(row.visitor_type) if row.visitor_type else None,
        context=AttendanceContext(row.context or AttendanceContext.GATE.value),
        status=VisitorStatus(row.status),
        custom_data={str(k): str(v) for k, v in (row.custom_data or {}).items()},
    )


def row_from_record(record: AttendanceRecord) -> VisitorLog:
    return VisitorLog(
        **{c: getattr(record, c) for c in _PLAIN_COLUMNS},
        **{c: getattr(record, c) or None for c in _TEXT_COLUMNS},
        name=record.name or UNKNOWN_NAME,
        visitor_type=record.visitor_type.value if record.visitor_type else None,
        context=record.context.value,
        status=record.status.value,
        custom_data=dict(record.custom_data) or None,
    )


def event_from_row(row: Event) -> EventDefinition:
    return EventDefinition(
        id=row.id,
        name=row.name,
        created_at=row.created_at,
        custom_fields=[FormField.model_validate(f) for f in (row.custom_fields or [])],
    )


def _profile_columns(fields: Dict[str, object]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for field in PROFILE_FIELDS:
        if field not in fields:
            continue
        value = fields[field]
        if isinstance(value, VisitorType):
            value = value.value
        elif field in _TEXT_COLUMNS and not value:
            value = None
        values[field] = value
    return values


class SqlAlchemyStore:
    """``AttendanceStore`` over a SQLAlchemy session. Each write commits immediately."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("store %s failed: %s", action, exc)
            raise PersistenceError(f"Database error during {action}") from exc

    def _record_stmt(self, stmt, *, visitor_id, event_id, status, context, since, before):
        if visitor_id is not None:
            stmt = stmt.where(VisitorLog.visitor_id == visitor_id)
        if event_id is not None:
            stmt = stmt.where(VisitorLog.event_id == event_id)
        if status is not None:
            stmt = stmt.where(VisitorLog.status == status.value)
        if context is not None:
            stmt = stmt.where(VisitorLog.context == context.value)
        if since is not None:
            stmt = stmt.where(VisitorLog.check_in >= since)
        if before is not None:
            stmt = stmt.where(VisitorLog.check_in < before)
        return stmt

    def list_records(
        self,
        *,
        visitor_id=None,
        event_id=None,
        status=None,
        context=None,
        since=None,
        before=None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AttendanceRecord]:
        stmt = self._record_stmt(
            select(VisitorLog),
            visitor_id=visitor_id,
            event_id=event_id,
            status=status,
            context=context,
            since=since,
            before=before,
        ).order_by(VisitorLog.check_in.desc(), VisitorLog.seq.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._guard("list_records"):
            rows = self.db.execute(stmt).scalars().all()
        return [record_from_row(r) for r in rows]

    def count_records(self, *, visitor_id=None, event_id=None, status=None, context=None, since=None, before=None) -> int:
        stmt = self._record_stmt(
            select(func.count()).select_from(VisitorLog),
            visitor_id=visitor_id,
            event_id=event_id,
            status=status,
            context=context,
            since=since,
            before=before,
        )
        with self._guard("count_records"):
            return int(self.db.execute(stmt).scalar_one() or 0)

    def count_distinct_visitors(self, *, since: datetime, before: datetime) -> int:
        stmt = select(func.count(func.distinct(VisitorLog.visitor_id))).where(
            VisitorLog.check_in >= since, VisitorLog.check_in < before
        )
        with self._guard("count_distinct_visitors"):
            return int(self.db.execute(stmt).scalar_one() or 0)

    def get_record(self, record_id: str) -> Optional[AttendanceRecord]:
        with self._guard("get_record"):
            row = self.db.get(VisitorLog, record_id)
        return record_from_row(row) if row else None

    def insert_record(self, record: AttendanceRecord) -> AttendanceRecord:
        row = row_from_record(record)
        with self._guard("insert_record"):
            row.seq = int(self.db.execute(select(func.coalesce(func.max(VisitorLog.seq), 0))).scalar_one()) + 1
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return record_from_row(row)

    def update_status(self, record_id: str, *, status: VisitorStatus, check_out: datetime, duration: str) -> AttendanceRecord:
        with self._guard("update_status"):
            row = self.db.get(VisitorLog, record_id)
            if not row:
                raise NotFoundError("Record not found")
            row.status = status.value
            row.check_out = check_out
            row.duration = duration
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return record_from_row(row)

    def update_profile(self, visitor_id: str, fields: Dict[str, object]) -> int:
        values = _profile_columns(fields)
        if not values:
            return 0
        stmt = update(VisitorLog).where(VisitorLog.visitor_id == visitor_id).values(**values)
        with self._guard("update_profile"):
            result = self.db.execute(stmt)
            self.db.commit()
        return int(result.rowcount or 0)

    def get_event(self, event_id: str) -> Optional[EventDefinition]:
        with self._guard("get_event"):
            row = self.db.get(Event, event_id)
        return event_from_row(row) if row else None

    def list_events(self) -> List[EventDefinition]:
        with self._guard("list_events"):
            rows = self.db.execute(select(Event).order_by(Event.created_at.desc())).scalars().all()
        return [event_from_row(r) for r in rows]

    def insert_event(self, event: EventDefinition) -> EventDefinition:
        row = Event(
            id=event.id,
            name=event.name,
            created_at=event.created_at,
            custom_fields=[f.model_dump(mode="json") for f in event.custom_fields],
        )
        with self._guard("insert_event"):
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return event_from_row(row)

    def count_events(self) -> int:
        with self._guard("count_events"):
            return int(self.db.execute(select(func.count()).select_from(Event)).scalar_one() or 0)


class InMemoryStore:
    """Dictionary-backed ``AttendanceStore``; insertion order breaks check-in ties."""

    def __init__(self) -> None:
        self.records: Dict[str, AttendanceRecord] = {}
        self.events: Dict[str, EventDefinition] = {}

    def _matching(self, *, visitor_id=None, event_id=None, status=None, context=None, since=None, before=None) -> List[AttendanceRecord]:
        items = []
        for r in reversed(list(self.records.values())):
            if visitor_id is not None and r.visitor_id != visitor_id:
                continue
            if event_id is not None and r.event_id != event_id:
                continue
            if status is not None and r.status != status:
                continue
            if context is not None and r.context != context:
                continue
            if since is not None and r.check_in < since:
                continue
            if before is not None and r.check_in >= before:
                continue
            items.append(r)
        items.sort(key=lambda r: r.check_in, reverse=True)
        return items

    def list_records(self, *, limit: Optional[int] = None, offset: int = 0, **filters) -> List[AttendanceRecord]:
        items = self._matching(**filters)
        end = None if limit is None else offset + limit
        return [r.model_copy(deep=True) for r in items[offset:end]]

    def count_records(self, **filters) -> int:
        return len(self._matching(**filters))

    def count_distinct_visitors(self, *, since: datetime, before: datetime) -> int:
        return len({r.visitor_id for r in self._matching(since=since, before=before)})

    def get_record(self, record_id: str) -> Optional[AttendanceRecord]:
        record = self.records.get(record_id)
        return record.model_copy(deep=True) if record else None

    def insert_record(self, record: AttendanceRecord) -> AttendanceRecord:
        self.records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    def update_status(self, record_id: str, *, status: VisitorStatus, check_out: datetime, duration: str) -> AttendanceRecord:
        record = self.records.get(record_id)
        if not record:
            raise NotFoundError("Record not found")
        updated = record.model_copy(update={"status": status, "check_out": check_out, "duration": duration})
        self.records[record_id] = updated
        return updated.model_copy(deep=True)

    def update_profile(self, visitor_id: str, fields: Dict[str, object]) -> int:
        values = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
        if not values:
            return 0
        touched = 0
        for record_id, record in list(self.records.items()):
            if record.visitor_id == visitor_id:
                self.records[record_id] = record.model_copy(update=values)
                touched += 1
        return touched

    def get_event(self, event_id: str) -> Optional[EventDefinition]:
        event = self.events.get(event_id)
        return event.model_copy(deep=True) if event else None

    def list_events(self) -> List[EventDefinition]:
        events = sorted(self.events.values(), key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in events]

    def insert_event(self, event: EventDefinition) -> EventDefinition:
        self.events[event.id] = event.model_copy(deep=True)
        return event.model_copy(deep=True)

    def count_events(self) -> int:
        return len(self.events)

