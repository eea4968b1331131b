from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import (
    AttendanceContext,
    FieldType,
    RegistrationAction,
    ScanAction,
    VisitorStatus,
    VisitorType,
)


UNKNOWN_NAME = "Unknown"
VISITOR_ID_MAX_LENGTH = 64
PROFILE_FIELDS = (
    "name",
    "organization",
    "department",
    "laptop_name",
    "laptop_color",
    "serial_number",
    "visitor_type",
)


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case keys; serializes as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Profile
class ProfileFields(CamelModel):
    name: Optional[str] = None
    organization: Optional[str] = None
    department: Optional[str] = None
    laptop_name: Optional[str] = None
    laptop_color: Optional[str] = None
    serial_number: Optional[str] = None
    visitor_type: Optional[VisitorType] = None

    def supplied(self) -> dict:
        """Profile values that were actually provided (non-blank)."""
        values = {}
        for field in PROFILE_FIELDS:
            value = getattr(self, field)
            if isinstance(value, str):
                value = value.strip()
            if value:
                values[field] = value
        return values

    def sent(self) -> dict:
        """Profile values present in the request, blanks included, so corrections can clear a field."""
        values = {}
        for field in PROFILE_FIELDS:
            if field not in self.model_fields_set:
                continue
            value = getattr(self, field)
            values[field] = value.strip() if isinstance(value, str) else value
        return values


class VisitorProfile(ProfileFields):
    visitor_id: str


# Events
class FormField(CamelModel):
    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    type: FieldType = FieldType.TEXT
    options: List[str] = Field(default_factory=list)
    required: bool = False


class EventCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    custom_fields: List[FormField] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class EventDefinition(CamelModel):
    id: str
    name: str
    created_at: datetime
    custom_fields: List[FormField] = Field(default_factory=list)


class EventsListResponse(CamelModel):
    items: List[EventDefinition]
    total: int


# Attendance records
class AttendanceRecord(CamelModel):
    id: str
    visitor_id: str
    name: str = UNKNOWN_NAME
    organization: str = ""
    department: str = ""
    laptop_name: str = ""
    laptop_color: str = ""
    serial_number: str = ""
    visitor_type: Optional[VisitorType] = None
    event_id: Optional[str] = None
    event_name: Optional[str] = None
    context: AttendanceContext = AttendanceContext.GATE
    check_in: datetime
    check_out: Optional[datetime] = None
    duration: Optional[str] = None
    status: VisitorStatus
    custom_data: Dict[str, str] = Field(default_factory=dict)


class LogsListResponse(CamelModel):
    items: List[AttendanceRecord]
    total: int


class ScanRequest(CamelModel):
    visitor_id: str = Field(max_length=VISITOR_ID_MAX_LENGTH)
    context: AttendanceContext = AttendanceContext.GATE
    event_id: Optional[str] = None


class ScanResult(CamelModel):
    ok: bool = True
    action: ScanAction
    record: AttendanceRecord


class VisitorRegistration(ProfileFields):
    """Gate or intern form submission; a visitor id is issued when absent."""

    visitor_id: Optional[str] = Field(default=None, max_length=VISITOR_ID_MAX_LENGTH)
    context: AttendanceContext = AttendanceContext.GATE


class EventRegistration(ProfileFields):
    visitor_id: Optional[str] = Field(default=None, max_length=VISITOR_ID_MAX_LENGTH)
    event_id: str
    custom_data: Dict[str, str] = Field(default_factory=dict)


class RegistrationResult(CamelModel):
    ok: bool = True
    action: RegistrationAction
    record: AttendanceRecord


class ManualRecordCreate(ProfileFields):
    name: str
    department: str
    check_in: datetime
    check_out: Optional[datetime] = None

    @field_validator("name", "department")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ProfileUpdate(ProfileFields):
    id: str


class ProfileUpdateResult(CamelModel):
    ok: bool = True
    visitor_id: str
    updated: int


class SweepResult(CamelModel):
    ok: bool = True
    updated: int


class Stats(CamelModel):
    currently_in: int = 0
    total_visitors_today: int = 0
    total_events: int = 0
