from __future__ import annotations

from enum import Enum


class VisitorStatus(str, Enum):
    IN = "IN"
    OUT = "OUT"
    AUTO_CHECKOUT = "AUTO_CHECKOUT"
    REGISTERED = "REGISTERED"
    ATTENDED = "ATTENDED"


class VisitorType(str, Enum):
    STAFF = "Staff"
    CORPER = "Corper"
    SIWES = "SIWES"
    GUEST = "Guest"


class AttendanceContext(str, Enum):
    GATE = "gate"
    EVENT = "event"
    INTERN = "intern"


class ScanAction(str, Enum):
    CHECKIN = "checkin"
    CHECKOUT = "checkout"
    ATTENDED = "attended"
    ALREADY_ATTENDED = "already_attended"


class RegistrationAction(str, Enum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"


class FieldType(str, Enum):
    TEXT = "text"
    RADIO = "radio"
