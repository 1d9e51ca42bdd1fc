"""Tests for the Stripe webhook: idempotency, dispatch and failure handling.

Covers:
- Processed event ids acknowledged with 200 and not dispatched again
- Events whose handler failed are dispatched again on redelivery
- payment_intent.succeeded creates the report, sends the receipt, enqueues
- Replays for an existing report re-enqueue only non-terminal reports
- Handler failures recorded on the event and answered with 500
"""

import uuid
from types import SimpleNamespace

import pytest
import stripe

from riskmapper.core.exceptions import QueueFullError, ReportAlreadyExistsError, SessionNotFoundError
from riskmapper.db.models import PaymentStatus
from riskmapper.payments import WebhookEvent

pytestmark = pytest.mark.unit

HEADERS = {"stripe-signature": "t=1,v1=sig", "Content-Type": "application/json"}


def _event(event_type: str, data: dict, event_id: str = "evt_001") -> WebhookEvent:
    return WebhookEvent(id=event_id, type=event_type, data=data)


def _report(session_id, status: str = "draft") -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), session_id=session_id, status=status)


def _post(api_client):
    return api_client.post("/api/webhooks/stripe", content=b"{}", headers=HEADERS)


class TestVerification:
    def test_returns_503_when_not_configured(self, api_client, payments):
        payments.webhook_configured = False

        response = _post(api_client)

        assert response.status_code == 503
        assert "not configured" in response.json()["detail"].lower()

    def test_rejects_missing_signature(self, api_client):
        response = api_client.post("/api/webhooks/stripe", content=b"{}", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert "stripe-signature" in response.json()["detail"].lower()

    def test_rejects_invalid_signature(self, api_client, payments, store):
        payments.verify_webhook.side_effect = stripe.SignatureVerificationError("Invalid signature", "t=0,v1=bad")

        response = _post(api_client)

        assert response.status_code == 400
        store.record_payment_event.assert_not_called()

    def test_rejects_invalid_payload(self, api_client, payments):
        payments.verify_webhook.side_effect = ValueError("bad json")

        response = _post(api_client)

        assert response.status_code == 400

    def test_rejects_oversized_body(self, api_client):
        response = api_client.post("/api/webhooks/stripe", content=b"x" * 70_000, headers=HEADERS)

        assert response.status_code == 413


class TestIdempotency:
    def test_duplicate_event_is_acknowledged_without_dispatch(self, api_client, payments, store):
        payments.verify_webhook.return_value = _event("payment_intent.succeeded", {"id": "pi_1"})
        store.record_payment_event.return_value = False

        response = _post(api_client)

        assert response.status_code == 200
        store.initialise_report.assert_not_called()
        store.mark_event_processed.assert_not_called()

    def test_event_is_recorded_with_payload(self, api_client, payments, store):
        event = _event("customer.created", {"id": "cus_1"})
        payments.verify_webhook.return_value = event
        store.record_payment_event.return_value = True

        response = _post(api_client)

        assert response.status_code == 200
        store.record_payment_event.assert_awaited_once_with("evt_001", "customer.created", event.payload)
        store.mark_event_processed.assert_awaited_once_with("evt_001")

    def test_event_failed_earlier_is_dispatched_on_redelivery(self, api_client, payments, store, runner, session):
        payments.verify_webhook.return_value = _event("payment_intent.succeeded", {"id": "pi_1"})
        processed: set[str] = set()
        store.record_payment_event.side_effect = lambda event_id, *_: event_id not in processed
        store.mark_event_processed.side_effect = lambda event_id: processed.add(event_id)
        report = _report(session.id)
        store.initialise_report.side_effect = [RuntimeError("db blip"), report]

        first = _post(api_client)
        second = _post(api_client)
        third = _post(api_client)

        assert first.status_code == 500
        assert second.status_code == 200
        assert third.status_code == 200
        assert store.initialise_report.await_count == 2
        store.mark_event_failed.assert_awaited_once_with("evt_001", "db blip")
        runner.enqueue.assert_called_once_with(report.id)


class TestPaymentSucceeded:
    @pytest.fixture(autouse=True)
    def _succeeded_event(self, payments, store):
        payments.verify_webhook.return_value = _event("payment_intent.succeeded", {"id": "pi_1"})
        store.record_payment_event.return_value = True

    def test_creates_report_sends_receipt_and_enqueues(self, api_client, store, runner, sender, session):
        session.email = "owner@acme.test"
        session.biz_name = "Acme"
        report = _report(session.id)
        store.initialise_report.return_value = report

        response = _post(api_client)

        assert response.status_code == 200
        store.initialise_report.assert_awaited_once_with("pi_1")
        sender.send_receipt.assert_awaited_once_with("owner@acme.test", "Acme", 5900, "usd")
        runner.enqueue.assert_called_once_with(report.id)
        store.mark_event_processed.assert_awaited_once_with("evt_001")

    def test_no_receipt_without_email(self, api_client, store, runner, sender, session):
        store.initialise_report.return_value = _report(session.id)

        _post(api_client)

        sender.send_receipt.assert_not_called()
        runner.enqueue.assert_called_once()

    def test_receipt_failure_is_not_fatal(self, api_client, store, runner, sender, session):
        session.email = "owner@acme.test"
        store.initialise_report.return_value = _report(session.id)
        sender.send_receipt.side_effect = RuntimeError("resend down")

        response = _post(api_client)

        assert response.status_code == 200
        runner.enqueue.assert_called_once()

    def test_full_queue_is_not_fatal(self, api_client, store, runner, session):
        report = _report(session.id)
        store.initialise_report.return_value = report
        runner.enqueue.side_effect = QueueFullError(report.id)

        response = _post(api_client)

        assert response.status_code == 200
        store.mark_event_processed.assert_awaited_once_with("evt_001")

    @pytest.mark.parametrize("status", ["draft", "processing"])
    def test_replay_reenqueues_pending_report(self, api_client, store, runner, sender, session, status):
        existing = _report(session.id, status=status)
        store.initialise_report.side_effect = ReportAlreadyExistsError(existing)

        response = _post(api_client)

        assert response.status_code == 200
        runner.enqueue.assert_called_once_with(existing.id)
        sender.send_receipt.assert_not_called()

    @pytest.mark.parametrize("status", ["ready", "error"])
    def test_replay_leaves_terminal_report_alone(self, api_client, store, runner, session, status):
        store.initialise_report.side_effect = ReportAlreadyExistsError(_report(session.id, status=status))

        response = _post(api_client)

        assert response.status_code == 200
        runner.enqueue.assert_not_called()

    def test_unknown_intent_marks_event_failed(self, api_client, store, runner):
        store.initialise_report.side_effect = SessionNotFoundError("No session for payment intent pi_1")

        response = _post(api_client)

        assert response.status_code == 500
        store.mark_event_failed.assert_awaited_once()
        event_id, error = store.mark_event_failed.call_args.args
        assert event_id == "evt_001"
        assert "pi_1" in error
        store.mark_event_processed.assert_not_called()
        runner.enqueue.assert_not_called()


class TestPaymentFailedAndRefunded:
    def test_payment_failed_marks_session(self, api_client, payments, store):
        payments.verify_webhook.return_value = _event("payment_intent.payment_failed", {"id": "pi_9"})
        store.record_payment_event.return_value = True

        response = _post(api_client)

        assert response.status_code == 200
        store.set_payment_status.assert_awaited_once_with("pi_9", PaymentStatus.FAILED)

    def test_charge_refunded_marks_session(self, api_client, payments, store):
        payments.verify_webhook.return_value = _event(
            "charge.refunded", {"id": "ch_1", "payment_intent": "pi_9"}
        )
        store.record_payment_event.return_value = True

        response = _post(api_client)

        assert response.status_code == 200
        store.set_payment_status.assert_awaited_once_with("pi_9", PaymentStatus.REFUNDED)

    def test_charge_refunded_without_intent_is_ignored(self, api_client, payments, store):
        payments.verify_webhook.return_value = _event("charge.refunded", {"id": "ch_1"})
        store.record_payment_event.return_value = True

        response = _post(api_client)

        assert response.status_code == 200
        store.set_payment_status.assert_not_called()
        store.mark_event_processed.assert_awaited_once_with("evt_001")
