"""
Attendance ledger: decides whether a scan is a check-in, a check-out, a daily
intern mark or an event registration, and derives the dashboard statistics.

State machine per record:
    (none) -> IN -> OUT             gate/event check-in and check-out
    (none) -> REGISTERED            event signup
    (none) -> ATTENDED              daily intern mark
    IN -> AUTO_CHECKOUT             end-of-day sweep of stale check-ins

All timestamps are naive wall-clock datetimes; "today" is the calendar day of
the ledger clock.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .enums import AttendanceContext, RegistrationAction, ScanAction, VisitorStatus
from .errors import NotFoundError, ValidationError
from .repository import AttendanceStore
from .schemas import (
    PROFILE_FIELDS,
    UNKNOWN_NAME,
    AttendanceRecord,
    EventDefinition,
    FormField,
    Stats,
    VisitorProfile,
)
from .validation import ensure_checkout_after_checkin, validate_event_fields


logger = logging.getLogger("checkme.ledger")

END_OF_DAY = time(23, 59, 59, 999000)


class ScanOutcome(NamedTuple):
    action: ScanAction
    record: AttendanceRecord


class RegistrationOutcome(NamedTuple):
    action: RegistrationAction
    record: AttendanceRecord


def format_duration(start: datetime, end: datetime) -> str:
    """``"{h}h {m}m {s}s"`` with every component floored."""
    total = max(0, (end - start) // timedelta(seconds=1))
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours}h {minutes}m {seconds}s"


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def to_wall_clock(value: datetime) -> datetime:
    """Aware datetimes are converted to local time and stripped of tzinfo."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _usable(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        value = value.strip()
        return bool(value) and value != UNKNOWN_NAME
    return True


def consolidate_profile(history: Sequence[AttendanceRecord]) -> Dict[str, object]:
    """Most recent usable value of each profile field across ``history`` (newest first)."""
    profile: Dict[str, object] = {
        "name": UNKNOWN_NAME,
        "organization": "",
        "department": "",
        "laptop_name": "",
        "laptop_color": "",
        "serial_number": "",
        "visitor_type": None,
    }
    pending = set(PROFILE_FIELDS)
    for record in history:
        for field in list(pending):
            value = getattr(record, field)
            if _usable(value):
                profile[field] = value
                pending.discard(field)
        if not pending:
            break
    return profile


class AttendanceLedger:
    def __init__(
        self,
        store: AttendanceStore,
        *,
        clock: Callable[[], datetime] = datetime.now,
        auto_checkout: bool = False,
    ) -> None:
        self.store = store
        self.clock = clock
        self.auto_checkout = auto_checkout

    # Events
    def create_event(self, name: str, custom_fields: Sequence[FormField] = ()) -> EventDefinition:
        custom_fields = list(custom_fields)
        validate_event_fields(custom_fields)
        event = EventDefinition(id=str(uuid.uuid4()), name=name, created_at=self.clock(), custom_fields=custom_fields)
        event = self.store.insert_event(event)
        logger.info("event created id=%s name=%s fields=%d", event.id, event.name, len(custom_fields))
        return event

    def get_event(self, event_id: str) -> EventDefinition:
        event = self.store.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    def require_event(self, event_id: str) -> EventDefinition:
        """Like ``get_event`` but an unknown id is a validation error of the caller's input."""
        event = self.store.get_event(event_id)
        if not event:
            raise ValidationError("Invalid eventId")
        return event

    def list_events(self) -> List[EventDefinition]:
        return self.store.list_events()

    # Scans and registrations
    def record_scan(
        self,
        visitor_id: str,
        context: AttendanceContext = AttendanceContext.GATE,
        event_id: Optional[str] = None,
        profile: Optional[Mapping[str, object]] = None,
    ) -> ScanOutcome:
        visitor_id = (visitor_id or "").strip()
        if not visitor_id:
            raise ValidationError("visitorId is required")
        if context == AttendanceContext.EVENT and not event_id:
            raise ValidationError("eventId is required for the event context")
        event = self.require_event(event_id) if event_id else None

        now = self.clock()
        today = now.date()
        history = self.store.list_records(visitor_id=visitor_id)

        if context == AttendanceContext.INTERN:
            for record in history:
                if (
                    record.context == AttendanceContext.INTERN
                    and record.status == VisitorStatus.ATTENDED
                    and record.check_in.date() == today
                ):
                    return ScanOutcome(ScanAction.ALREADY_ATTENDED, record)
            record = self._insert(
                visitor_id,
                status=VisitorStatus.ATTENDED,
                context=AttendanceContext.INTERN,
                now=now,
                profile=self._merge_profile(history, profile),
            )
            logger.info("intern attended visitor=%s record=%s", visitor_id, record.id)
            return ScanOutcome(ScanAction.ATTENDED, record)

        if event:
            partition = [r for r in history if r.event_id == event.id]
        else:
            partition = [r for r in history if r.context == AttendanceContext.GATE and not r.event_id]
        latest = partition[0] if partition else None

        if latest and latest.status == VisitorStatus.IN and latest.check_out is None:
            if latest.check_in.date() == today:
                record = self.store.update_status(
                    latest.id,
                    status=VisitorStatus.OUT,
                    check_out=now,
                    duration=format_duration(latest.check_in, now),
                )
                logger.info("checkout visitor=%s record=%s duration=%s", visitor_id, record.id, record.duration)
                return ScanOutcome(ScanAction.CHECKOUT, record)
            # A check-in left open on an earlier day is closed before a new one starts
            self._auto_checkout(latest)

        record = self._insert(
            visitor_id,
            status=VisitorStatus.IN,
            context=AttendanceContext.EVENT if event else AttendanceContext.GATE,
            now=now,
            profile=self._merge_profile(history, profile),
            event=event,
        )
        logger.info("checkin visitor=%s record=%s event=%s", visitor_id, record.id, record.event_id)
        return ScanOutcome(ScanAction.CHECKIN, record)

    def register_for_event(
        self,
        visitor_id: str,
        event_id: str,
        profile: Optional[Mapping[str, object]] = None,
        custom_data: Optional[Mapping[str, str]] = None,
    ) -> RegistrationOutcome:
        visitor_id = (visitor_id or "").strip()
        if not visitor_id:
            raise ValidationError("visitorId is required")
        event = self.require_event(event_id)

        history = self.store.list_records(visitor_id=visitor_id)
        existing = [r for r in history if r.event_id == event.id]
        if existing:
            return RegistrationOutcome(RegistrationAction.ALREADY_REGISTERED, existing[0])

        declared = {f.id for f in event.custom_fields}
        answers = {k: str(v) for k, v in (custom_data or {}).items() if k in declared}
        record = self._insert(
            visitor_id,
            status=VisitorStatus.REGISTERED,
            context=AttendanceContext.EVENT,
            now=self.clock(),
            profile=self._merge_profile(history, profile),
            event=event,
            custom_data=answers,
        )
        logger.info("registered visitor=%s event=%s record=%s", visitor_id, event.id, record.id)
        return RegistrationOutcome(RegistrationAction.REGISTERED, record)

    def has_registered(self, visitor_id: str, event_id: str) -> bool:
        return self.store.count_records(visitor_id=visitor_id, event_id=event_id) > 0

    # Admin operations
    def add_manual_record(
        self,
        profile: Mapping[str, object],
        check_in: datetime,
        check_out: Optional[datetime] = None,
    ) -> AttendanceRecord:
        check_in = to_wall_clock(check_in)
        check_out = to_wall_clock(check_out) if check_out is not None else None
        ensure_checkout_after_checkin(check_in, check_out)

        values = consolidate_profile(())
        values.update({k: v for k, v in profile.items() if k in PROFILE_FIELDS and _usable(v)})
        record = AttendanceRecord(
            id=str(uuid.uuid4()),
            visitor_id=f"visitor-manual-{uuid.uuid4()}",
            **values,
            context=AttendanceContext.GATE,
            check_in=check_in,
            check_out=check_out,
            duration=format_duration(check_in, check_out) if check_out else None,
            status=VisitorStatus.OUT if check_out else VisitorStatus.IN,
        )
        record = self.store.insert_record(record)
        logger.info("manual record=%s status=%s", record.id, record.status.value)
        return record

    def update_profile(self, record_id: str, profile: Mapping[str, object]) -> Tuple[str, int]:
        """Apply profile corrections to every record of the visitor owning ``record_id``."""
        record = self.store.get_record(record_id)
        if not record:
            raise NotFoundError("Record not found")
        fields = {k: v for k, v in profile.items() if k in PROFILE_FIELDS}
        if not fields:
            raise ValidationError("No profile fields to update")
        if "name" in fields and not _usable(fields["name"]):
            fields["name"] = UNKNOWN_NAME
        touched = self.store.update_profile(record.visitor_id, fields)
        logger.info("profile updated visitor=%s records=%d fields=%s", record.visitor_id, touched, sorted(fields))
        return record.visitor_id, touched

    def visitor_profile(self, visitor_id: str) -> VisitorProfile:
        history = self.store.list_records(visitor_id=visitor_id)
        if not history:
            raise NotFoundError("Visitor not found")
        return VisitorProfile(visitor_id=visitor_id, **consolidate_profile(history))

    def list_logs(
        self,
        *,
        visitor_id: Optional[str] = None,
        event_id: Optional[str] = None,
        status: Optional[VisitorStatus] = None,
        context: Optional[AttendanceContext] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[AttendanceRecord], int]:
        if self.auto_checkout:
            self.sweep_stale_checkins()
        filters = dict(visitor_id=visitor_id, event_id=event_id, status=status, context=context)
        items = self.store.list_records(limit=limit, offset=offset, **filters)
        return items, self.store.count_records(**filters)

    # Derived data
    def stats(self) -> Stats:
        if self.auto_checkout:
            self.sweep_stale_checkins()
        start, end = day_bounds(self.clock().date())
        return Stats(
            currently_in=self.store.count_records(status=VisitorStatus.IN),
            total_visitors_today=self.store.count_distinct_visitors(since=start, before=end),
            total_events=self.store.count_events(),
        )

    def sweep_stale_checkins(self) -> int:
        """Close every IN record from an earlier day as AUTO_CHECKOUT at the end of its day."""
        today_start, _ = day_bounds(self.clock().date())
        stale = self.store.list_records(status=VisitorStatus.IN, before=today_start)
        for record in stale:
            self._auto_checkout(record)
        if stale:
            logger.info("auto checkout swept %d record(s)", len(stale))
        return len(stale)

    def _auto_checkout(self, record: AttendanceRecord) -> AttendanceRecord:
        check_out = datetime.combine(record.check_in.date(), END_OF_DAY)
        return self.store.update_status(
            record.id,
            status=VisitorStatus.AUTO_CHECKOUT,
            check_out=check_out,
            duration=format_duration(record.check_in, check_out),
        )

    def _merge_profile(
        self, history: Sequence[AttendanceRecord], supplied: Optional[Mapping[str, object]]
    ) -> Dict[str, object]:
        profile = consolidate_profile(history)
        for field, value in (supplied or {}).items():
            if field in PROFILE_FIELDS and _usable(value):
                profile[field] = value.strip() if isinstance(value, str) else value
        return profile

    def _insert(
        self,
        visitor_id: str,
        *,
        status: VisitorStatus,
        context: AttendanceContext,
        now: datetime,
        profile: Mapping[str, object],
        event: Optional[EventDefinition] = None,
        custom_data: Optional[Dict[str, str]] = None,
    ) -> AttendanceRecord:
        record = AttendanceRecord(
            id=str(uuid.uuid4()),
            visitor_id=visitor_id,
            **profile,
            event_id=event.id if event else None,
            event_name=event.name if event else None,
            context=context,
            check_in=now,
            status=status,
            custom_data=custom_data or {},
        )
        return self.store.insert_record(record)
