"""API-specific test fixtures.

Routes are exercised against a test app whose lifespan wires fakes onto
app.state instead of a database, Stripe and a worker pool.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from riskmapper.api.routes import api_router
from riskmapper.main import generic_exception_handler, http_exception_handler
from riskmapper.middleware.correlation import setup_correlation_middleware
from riskmapper.payments import PaymentIntent
from riskmapper.store import Store

ANON_TOKEN = "a" * 64


def make_session(**overrides) -> SimpleNamespace:
    fields = dict(
        id=uuid.uuid4(),
        anon_token=ANON_TOKEN,
        email=None,
        biz_name=None,
        industry=None,
        stage=None,
        stripe_customer_id=None,
        stripe_payment_intent=None,
        payment_status="pending",
        created_at=datetime.now(timezone.utc),
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def session() -> SimpleNamespace:
    return make_session()


@pytest.fixture
def store(session) -> MagicMock:
    store = MagicMock(spec=Store)
    store.get_session_by_token.side_effect = lambda token: session if token == session.anon_token else None
    store.get_session.return_value = session
    store.ping.return_value = None
    return store


@pytest.fixture
def runner() -> MagicMock:
    runner = MagicMock()
    runner.is_running = True
    return runner


@pytest.fixture
def sender() -> MagicMock:
    sender = MagicMock()
    sender.send_receipt = AsyncMock()
    sender.send_report_ready = AsyncMock()
    return sender


@pytest.fixture
def payments() -> MagicMock:
    payments = MagicMock()
    payments.webhook_configured = True
    payments.create_payment_intent = AsyncMock(
        return_value=PaymentIntent(id="pi_new", client_secret="pi_new_secret", customer_id="cus_new")
    )
    payments.get_client_secret = AsyncMock(return_value="pi_existing_secret")
    return payments


@pytest.fixture
def api_client(store, runner, sender, payments):
    """FastAPI test client with fakes wired onto app.state in the lifespan."""

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        app.state.shutting_down = False
        app.state.store = store
        app.state.runner = runner
        app.state.sender = sender
        app.state.payments = payments
        yield

    app = FastAPI(title="Risk Mapper - Test Client", lifespan=test_lifespan)
    setup_correlation_middleware(app)

    # Exception handlers (needed for debug_id testing)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def auth_headers(session) -> dict[str, str]:
    return {"X-Anon-Token": session.anon_token}
