"""Checkout route — one Stripe PaymentIntent per session, reused on retries and races."""

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from riskmapper.api.deps import get_payments, get_store, require_session
from riskmapper.core.config import get_settings
from riskmapper.core.exceptions import PaymentIntentAlreadyAttachedError
from riskmapper.db.models import CheckoutSession
from riskmapper.payments import PaymentGateway
from riskmapper.store import Store

logger = structlog.get_logger(__name__)

router = APIRouter()


class CheckoutRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def _looks_like_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v:
            raise ValueError("email is invalid")
        return v


class CheckoutResponse(BaseModel):
    client_secret: str
    is_existing: bool = False


async def _existing_client_secret(payments: PaymentGateway, payment_intent_id: str) -> str:
    try:
        return await payments.get_client_secret(payment_intent_id)
    except stripe.StripeError as e:
        logger.error("stripe_retrieve_payment_intent_failed", payment_intent=payment_intent_id, error=str(e))
        raise HTTPException(status_code=502, detail="Payment provider unavailable")


@router.post("/session/{session_id}/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    session: CheckoutSession = Depends(require_session),
    store: Store = Depends(get_store),
    payments: PaymentGateway = Depends(get_payments),
):
    """Return a client_secret for the session's PaymentIntent, creating the intent once."""
    # Common retry path: skip Stripe creation when an intent is already attached
    if session.stripe_payment_intent:
        client_secret = await _existing_client_secret(payments, session.stripe_payment_intent)
        return CheckoutResponse(client_secret=client_secret, is_existing=True)

    settings = get_settings()
    try:
        intent = await payments.create_payment_intent(
            amount_cents=settings.report_price_cents,
            currency=settings.report_currency,
            email=body.email,
            metadata={"session_id": str(session.id)},
        )
    except stripe.StripeError as e:
        logger.error("stripe_create_payment_intent_failed", session_id=str(session.id), error=str(e))
        raise HTTPException(status_code=502, detail="Payment provider unavailable")

    try:
        await store.attach_payment_intent(session.id, intent.customer_id, intent.id, body.email)
    except PaymentIntentAlreadyAttachedError as exc:
        # Lost the race to a concurrent checkout; our intent expires unused in Stripe
        winner = exc.session.stripe_payment_intent
        logger.info(
            "checkout_lost_race_returning_existing_intent",
            session_id=str(session.id),
            payment_intent=winner,
            orphaned_payment_intent=intent.id,
        )
        client_secret = await _existing_client_secret(payments, winner)
        return CheckoutResponse(client_secret=client_secret, is_existing=True)

    return CheckoutResponse(client_secret=intent.client_secret)
