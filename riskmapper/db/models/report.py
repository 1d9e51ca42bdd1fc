"""Report model — one per paid session, driven through draft → processing → ready | error."""

import secrets
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID

from riskmapper.db.base import Base


class ReportStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


# Statuses the recovery scan may re-enqueue
PENDING_STATUSES = (ReportStatus.DRAFT.value, ReportStatus.PROCESSING.value)

# Statuses no worker should touch again
TERMINAL_STATUSES = (ReportStatus.READY.value, ReportStatus.ERROR.value)


def new_access_token() -> str:
    return secrets.token_hex(32)


class Report(Base):
    __tablename__ = "reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(UUID(as_uuid=True), ForeignKey("sessions.id", ondelete="CASCADE"), unique=True, nullable=False)
    status = Column(String(20), nullable=False, default=ReportStatus.DRAFT.value, index=True)
    error_message = Column(Text, nullable=True)

    # Aggregates, written once on finalize
    overall_score = Column(Integer, nullable=True)
    critical_count = Column(Integer, nullable=True)
    risks_json = Column(JSON, nullable=True)  # Snapshot of the ranked risks
    executive_summary = Column(Text, nullable=True)
    top_priority_html = Column(Text, nullable=True)

    access_token = Column(String(64), unique=True, nullable=False, default=new_access_token)
    generated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
