"""CheckoutSession model — one anonymous visitor working through the questionnaire."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID

from riskmapper.db.base import Base


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CheckoutSession(Base):
    __tablename__ = "sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    anon_token = Column(String(64), unique=True, nullable=False, index=True)

    # Contact + business context (all optional, filled in as the user progresses)
    email = Column(String(255), nullable=True)
    biz_name = Column(String(255), nullable=True)
    industry = Column(String(100), nullable=True)
    stage = Column(String(100), nullable=True)

    # Stripe: at most one payment intent per session, ever
    stripe_customer_id = Column(String(255), unique=True, nullable=True)
    stripe_payment_intent = Column(String(255), unique=True, nullable=True, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Attribution
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    referrer = Column(Text, nullable=True)
    ip_hash = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
