"""Payment processor integration."""

from riskmapper.payments.stripe_gateway import PaymentGateway, PaymentIntent, StripeGateway, WebhookEvent

__all__ = ["PaymentGateway", "PaymentIntent", "StripeGateway", "WebhookEvent"]
