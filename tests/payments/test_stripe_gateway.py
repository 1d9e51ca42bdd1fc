"""Tests for StripeGateway with the async Stripe SDK patched out."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import stripe

from riskmapper.payments import StripeGateway, WebhookEvent

pytestmark = pytest.mark.unit


def test_payment_intent_id_from_payment_intent_event():
    event = WebhookEvent(id="evt_1", type="payment_intent.succeeded", data={"id": "pi_123"})
    assert event.payment_intent_id() == "pi_123"


def test_payment_intent_id_from_charge_event():
    event = WebhookEvent(id="evt_2", type="charge.refunded", data={"id": "ch_1", "payment_intent": "pi_456"})
    assert event.payment_intent_id() == "pi_456"


def test_payment_intent_id_missing_raises():
    event = WebhookEvent(id="evt_3", type="charge.refunded", data={"id": "ch_1", "payment_intent": None})
    with pytest.raises(ValueError):
        event.payment_intent_id()


def test_payload_wraps_object():
    event = WebhookEvent(id="evt_1", type="payment_intent.succeeded", data={"id": "pi_1"})
    assert event.payload == {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}


@pytest.mark.asyncio
async def test_create_payment_intent_uses_async_sdk():
    gateway = StripeGateway("sk_test", "whsec_test")

    with (
        patch("stripe.Customer.create_async", new_callable=AsyncMock, return_value=SimpleNamespace(id="cus_1")) as create_customer,
        patch(
            "stripe.PaymentIntent.create_async",
            new_callable=AsyncMock,
            return_value=SimpleNamespace(id="pi_1", client_secret="pi_1_secret"),
        ) as create_intent,
    ):
        intent = await gateway.create_payment_intent(5900, "usd", "owner@acme.test", {"session_id": "s1"})

    assert intent.id == "pi_1"
    assert intent.client_secret == "pi_1_secret"
    assert intent.customer_id == "cus_1"
    create_customer.assert_awaited_once_with(email="owner@acme.test", metadata={"session_id": "s1"})
    kwargs = create_intent.call_args.kwargs
    assert kwargs["amount"] == 5900
    assert kwargs["currency"] == "usd"
    assert kwargs["customer"] == "cus_1"
    assert kwargs["metadata"] == {"session_id": "s1"}


@pytest.mark.asyncio
async def test_get_client_secret_retrieves_intent():
    gateway = StripeGateway("sk_test", "whsec_test")

    with patch(
        "stripe.PaymentIntent.retrieve_async",
        new_callable=AsyncMock,
        return_value=SimpleNamespace(client_secret="pi_9_secret"),
    ) as retrieve:
        secret = await gateway.get_client_secret("pi_9")

    assert secret == "pi_9_secret"
    retrieve.assert_awaited_once_with("pi_9")


def test_verify_webhook_returns_plain_event():
    gateway = StripeGateway("sk_test", "whsec_test")
    payload = json.dumps(
        {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1", "amount": 5900}}}
    ).encode()

    with patch("stripe.Webhook.construct_event") as construct:
        event = gateway.verify_webhook(payload, "t=1,v1=sig")

    construct.assert_called_once_with(payload, "t=1,v1=sig", "whsec_test")
    assert event.id == "evt_1"
    assert event.type == "payment_intent.succeeded"
    assert event.data == {"id": "pi_1", "amount": 5900}


def test_verify_webhook_propagates_signature_error():
    gateway = StripeGateway("sk_test", "whsec_test")

    with patch(
        "stripe.Webhook.construct_event",
        side_effect=stripe.SignatureVerificationError("bad signature", "t=0,v1=bad"),
    ):
        with pytest.raises(stripe.SignatureVerificationError):
            gateway.verify_webhook(b"{}", "t=0,v1=bad")


def test_verify_webhook_rejects_event_without_object():
    gateway = StripeGateway("sk_test", "whsec_test")

    with patch("stripe.Webhook.construct_event"):
        with pytest.raises(ValueError, match="Malformed Stripe event"):
            gateway.verify_webhook(b'{"id": "evt_1", "type": "x"}', "t=1,v1=sig")


def test_webhook_configured():
    assert StripeGateway("sk", "whsec").webhook_configured
    assert not StripeGateway("sk", "").webhook_configured
