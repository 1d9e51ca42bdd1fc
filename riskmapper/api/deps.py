"""FastAPI dependencies: collaborators wired in the lifespan, and anon-token auth."""

import uuid

from fastapi import Depends, Header, HTTPException, Request

from riskmapper.db.models import CheckoutSession
from riskmapper.notifications import Sender
from riskmapper.payments import PaymentGateway
from riskmapper.store import Store
from riskmapper.worker import Enqueuer

ANON_TOKEN_HEADER = "X-Anon-Token"


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_enqueuer(request: Request) -> Enqueuer:
    return request.app.state.runner


def get_sender(request: Request) -> Sender:
    return request.app.state.sender


def get_payments(request: Request) -> PaymentGateway:
    return request.app.state.payments


async def require_session(
    session_id: uuid.UUID,
    x_anon_token: str | None = Header(default=None, alias=ANON_TOKEN_HEADER),
    store: Store = Depends(get_store),
) -> CheckoutSession:
    """Resolve the anon token to its session and check it owns the session in the path.

    Raises:
        HTTPException(401): header missing or token unknown.
        HTTPException(403): token belongs to a different session.
    """
    token = (x_anon_token or "").strip()
    if not token:
        raise HTTPException(status_code=401, detail=f"Missing {ANON_TOKEN_HEADER} header")

    session = await store.get_session_by_token(token)
    if session is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    if session.id != session_id:
        raise HTTPException(status_code=403, detail="Token does not match session")

    return session
