from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Mapping, Optional

from .enums import FieldType
from .errors import ValidationError
from .schemas import EventDefinition, FormField


# Fixed leading columns of the attendee export; custom field labels may not reuse them
ATTENDEE_COLUMNS = ("name", "organization", "status", "registration_time")


def validate_event_fields(fields: Iterable[FormField]) -> None:
    seen: set[str] = set()
    labels: set[str] = set()
    for field in fields:
        if field.id in seen:
            raise ValidationError(f"Duplicate custom field id: {field.id}")
        seen.add(field.id)
        label = field.label.strip().lower()
        if label in labels or label in ATTENDEE_COLUMNS:
            raise ValidationError(f"Custom field label is already in use: {field.label}")
        labels.add(label)
        if field.type == FieldType.RADIO and not [o for o in field.options if o.strip()]:
            raise ValidationError(f'Radio field "{field.label}" needs at least one option')


def validate_custom_data(event: EventDefinition, custom_data: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Check answers against the event's registration form and return the cleaned answers.

    Answers for undeclared field ids are dropped. Every required field must
    have a non-blank answer and radio answers must be one of the declared
    options.
    """
    custom_data = custom_data or {}
    cleaned: Dict[str, str] = {}
    missing = []
    for field in event.custom_fields:
        raw = custom_data.get(field.id)
        value = str(raw).strip() if raw is not None else ""
        if not value:
            if field.required:
                missing.append(field.label)
            continue
        if field.type == FieldType.RADIO and value not in field.options:
            raise ValidationError(f'Invalid option for "{field.label}": {value}')
        cleaned[field.id] = value
    if missing:
        labels = ", ".join(f'"{label}"' for label in missing)
        raise ValidationError(f"Please fill out the required field(s): {labels}")
    return cleaned


def ensure_checkout_after_checkin(check_in: datetime, check_out: Optional[datetime]) -> None:
    if check_out is not None and check_out <= check_in:
        raise ValidationError("Check-out time must be after check-in time")
