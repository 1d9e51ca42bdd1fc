"""Stripe payments: PaymentIntent creation for checkout and webhook verification."""

import json
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import stripe
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class PaymentIntent:
    id: str
    client_secret: str
    customer_id: str | None = None


@dataclass
class WebhookEvent:
    """A verified Stripe event. ``data`` is the event's data.object as plain dicts."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def payload(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "data": {"object": self.data}}

    def payment_intent_id(self) -> str:
        """Intent id for payment_intent.* events (the object itself) and charge.* events."""
        if self.type.startswith("charge."):
            pi = self.data.get("payment_intent")
        else:
            pi = self.data.get("id")
        if not pi:
            raise ValueError(f"No payment intent id in event {self.id}")
        return pi


@runtime_checkable
class PaymentGateway(Protocol):
    """Capability the checkout and webhook routes use for all Stripe calls."""

    @property
    def webhook_configured(self) -> bool:
        ...

    async def create_payment_intent(
        self, amount_cents: int, currency: str, email: str | None, metadata: dict[str, str]
    ) -> PaymentIntent:
        ...

    async def get_client_secret(self, payment_intent_id: str) -> str:
        ...

    def verify_webhook(self, payload: bytes, sig_header: str) -> WebhookEvent:
        ...


class StripeGateway:
    def __init__(self, secret_key: str, webhook_secret: str):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    @property
    def webhook_configured(self) -> bool:
        return bool(self._webhook_secret)

    def _get_stripe(self) -> None:
        """Configure the stripe module with the secret key."""
        stripe.api_key = self._secret_key

    async def create_payment_intent(
        self, amount_cents: int, currency: str, email: str | None, metadata: dict[str, str]
    ) -> PaymentIntent:
        """Create a Customer (so receipts and the dashboard show the email) and a PaymentIntent."""
        self._get_stripe()
        customer = await stripe.Customer.create_async(email=email or None, metadata=metadata)
        intent = await stripe.PaymentIntent.create_async(
            amount=amount_cents,
            currency=currency,
            customer=customer.id,
            automatic_payment_methods={"enabled": True},
            metadata=metadata,
        )
        logger.info("stripe_payment_intent_created", payment_intent=intent.id, customer_id=customer.id)
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret, customer_id=customer.id)

    async def get_client_secret(self, payment_intent_id: str) -> str:
        self._get_stripe()
        intent = await stripe.PaymentIntent.retrieve_async(payment_intent_id)
        return intent.client_secret

    def verify_webhook(self, payload: bytes, sig_header: str) -> WebhookEvent:
        """Validate the Stripe-Signature header.

        Raises:
            ValueError: payload is not a valid event.
            stripe.SignatureVerificationError: signature mismatch or outside tolerance.
        """
        stripe.Webhook.construct_event(payload, sig_header, self._webhook_secret)
        # Signature holds; read the body as plain JSON rather than StripeObjects
        raw = json.loads(payload)
        try:
            return WebhookEvent(id=raw["id"], type=raw["type"], data=raw["data"]["object"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed Stripe event: {exc}") from exc
