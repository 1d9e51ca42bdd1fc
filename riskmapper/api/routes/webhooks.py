"""Stripe webhook — the trigger for report generation.

Stripe delivers at least once. Every delivery is recorded in stripe_events
keyed by event id. A replay of a processed event is acknowledged with 200
without being dispatched again. A handler failure leaves the event
unprocessed and returns 500, so the redelivery is dispatched from scratch.
"""

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from riskmapper.api.deps import get_enqueuer, get_payments, get_sender, get_store
from riskmapper.core.config import get_settings
from riskmapper.core.exceptions import QueueFullError, ReportAlreadyExistsError
from riskmapper.db.models import TERMINAL_STATUSES, PaymentStatus
from riskmapper.notifications import Sender
from riskmapper.payments import PaymentGateway, WebhookEvent
from riskmapper.store import Store
from riskmapper.worker import Enqueuer

logger = structlog.get_logger(__name__)

router = APIRouter()

MAX_WEBHOOK_BODY_BYTES = 65_536


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    store: Store = Depends(get_store),
    payments: PaymentGateway = Depends(get_payments),
    enqueuer: Enqueuer = Depends(get_enqueuer),
    sender: Sender = Depends(get_sender),
):
    """Verify, record and dispatch one Stripe event."""
    if not payments.webhook_configured:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(status_code=503, detail="Stripe webhook endpoint is not configured")

    body = await request.body()
    if len(body) > MAX_WEBHOOK_BODY_BYTES:
        raise HTTPException(status_code=413, detail="Payload too large")

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        event = payments.verify_webhook(body, sig_header)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.warning("stripe_webhook_invalid_signature")
        raise HTTPException(status_code=400, detail="Invalid signature")

    if not await store.record_payment_event(event.id, event.type, event.payload):
        logger.info("stripe_processed_event_ignored", event_id=event.id)
        return {"status": "ok"}

    logger.info("stripe_webhook_received", event_id=event.id, event_type=event.type)

    try:
        if event.type == "payment_intent.succeeded":
            await _handle_payment_succeeded(event, store, enqueuer, sender)
        elif event.type == "payment_intent.payment_failed":
            await _handle_payment_failed(event, store)
        elif event.type == "charge.refunded":
            await _handle_charge_refunded(event, store)
        else:
            logger.debug("stripe_event_unhandled", event_type=event.type)
    except Exception as e:
        logger.error(
            "stripe_webhook_handler_failed",
            event_id=event.id,
            event_type=event.type,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        await store.mark_event_failed(event.id, str(e) or type(e).__name__)
        return JSONResponse(status_code=500, content={"detail": "Webhook handler failed"})

    await store.mark_event_processed(event.id)
    return {"status": "ok"}


# ── Webhook handlers ────────────────────────────────────────────────


def _enqueue(enqueuer: Enqueuer, report_id) -> None:
    try:
        enqueuer.enqueue(report_id)
    except QueueFullError:
        logger.warning("report_enqueue_rejected_awaiting_recovery_scan", report_id=str(report_id))


async def _handle_payment_succeeded(event: WebhookEvent, store: Store, enqueuer: Enqueuer, sender: Sender) -> None:
    """Mark paid + create the draft report, send the receipt, hand the report to the workers."""
    payment_intent_id = event.payment_intent_id()

    try:
        report = await store.initialise_report(payment_intent_id)
    except ReportAlreadyExistsError as exc:
        existing = exc.report
        logger.info("report_already_exists", report_id=str(existing.id), status=existing.status)
        # A worker may have crashed mid-run; terminal reports are left alone
        if existing.status not in TERMINAL_STATUSES:
            _enqueue(enqueuer, existing.id)
        return

    settings = get_settings()
    session = await store.get_session(report.session_id)
    if session is not None and session.email:
        try:
            await sender.send_receipt(
                session.email,
                session.biz_name or "",
                settings.report_price_cents,
                settings.report_currency,
            )
        except Exception as e:
            logger.warning("receipt_email_failed", report_id=str(report.id), error=str(e), error_type=type(e).__name__)

    _enqueue(enqueuer, report.id)


async def _handle_payment_failed(event: WebhookEvent, store: Store) -> None:
    payment_intent_id = event.payment_intent_id()
    session = await store.set_payment_status(payment_intent_id, PaymentStatus.FAILED)
    if session is None:
        logger.warning("payment_failed_unknown_intent", payment_intent=payment_intent_id)


async def _handle_charge_refunded(event: WebhookEvent, store: Store) -> None:
    try:
        payment_intent_id = event.payment_intent_id()
    except ValueError:
        logger.warning("charge_refunded_without_payment_intent", event_id=event.id)
        return

    session = await store.set_payment_status(payment_intent_id, PaymentStatus.REFUNDED)
    logger.info("charge_refunded", payment_intent=payment_intent_id, session_found=session is not None)
