"""PaymentEvent model — idempotency record for Stripe webhook deliveries."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from riskmapper.db.base import Base


class PaymentEvent(Base):
    """One row per Stripe event id; redeliveries only re-claim it while processed is false."""

    __tablename__ = "stripe_events"

    stripe_event_id = Column(String(255), primary_key=True)
    type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)

    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)

    received_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
