"""QuestionDefinition model — the questionnaire bank and each question's scoring rule."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from riskmapper.db.base import Base


class QuestionDefinition(Base):
    __tablename__ = "question_definitions"

    id = Column(String(50), primary_key=True)  # Stable slug, e.g. "q_cashflow_runway"
    section_id = Column(String(50), nullable=False)
    section_title = Column(String(255), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    text = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # radio | text
    opts = Column(JSON, nullable=True)  # Ordered option labels for radio questions

    # Risk metadata copied onto each RiskResult
    risk_name = Column(String(255), nullable=False)
    risk_desc = Column(Text, nullable=False, default="")
    hedge = Column(Text, nullable=False, default="")

    scoring_config = Column(JSON, nullable=False)  # Validated by riskmapper.scoring.config
    is_scoring = Column(Boolean, nullable=False, default=True)  # False = context-only question

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
