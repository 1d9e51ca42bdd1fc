"""RiskResult model — one ranked, scored risk per question per report."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from riskmapper.db.base import Base


class RiskResult(Base):
    __tablename__ = "risk_results"
    __table_args__ = (UniqueConstraint("report_id", "question_id", name="uq_risk_results_report_question"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    report_id = Column(UUID(as_uuid=True), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(String(50), nullable=False)

    rank = Column(Integer, nullable=False)  # 1-indexed, dense
    risk_name = Column(String(255), nullable=False)
    risk_desc = Column(Text, nullable=False, default="")
    probability = Column(Integer, nullable=False)
    impact = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False)  # probability * impact
    tier = Column(String(20), nullable=False)  # watch | red | manage | ignore

    hedge = Column(Text, nullable=False, default="")  # Static, authored with the question
    ai_hedge = Column(Text, nullable=True)  # AI override, when the hedger produced one
    section = Column(String(255), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
