"""
ORM tables for the visitor log and events.

Status, context and visitor type are stored as plain strings; the repository
layer converts them to enums when rows are mapped to records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class Event(Base):
    __tablename__ = "events"
    """
    Admin-created event with an optional custom registration form.
    Never updated or deleted once created.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    # [{"id", "label", "type", "options", "required"}, ...]
    custom_fields: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (
        Index("ix_events_created_at", "created_at"),
    )


class VisitorLog(Base):
    __tablename__ = "visitor_logs"
    """
    One attendance record: a gate check-in/out cycle, an event registration or
    attendance, or a daily intern mark.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    visitor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), default="Unknown", nullable=False)
    organization: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    laptop_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    laptop_color: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    serial_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    visitor_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    event_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("events.id"), nullable=True, index=True)
    event_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    context: Mapped[str] = mapped_column(String(16), default="gate", nullable=False)
    check_in: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    check_out: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    custom_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    # Insertion order; breaks ties between records sharing a check-in instant
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_visitor_logs_check_in", "check_in", "seq"),
        Index("ix_visitor_logs_status", "status"),
        Index("ix_visitor_logs_visitor_context", "visitor_id", "context"),
    )
