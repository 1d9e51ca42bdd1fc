"""Session routes — anonymous visitor sessions and their business context."""

import hashlib
import secrets

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from riskmapper.api.deps import get_store, require_session
from riskmapper.db.models import CheckoutSession
from riskmapper.store import Store

logger = structlog.get_logger(__name__)

router = APIRouter()


# ── Request / Response schemas ──────────────────────────────────────


class SessionContext(BaseModel):
    biz_name: str = Field(default="", max_length=255)
    industry: str = Field(default="", max_length=100)
    stage: str = Field(default="", max_length=100)


class CreateSessionResponse(BaseModel):
    session_id: str
    anon_token: str


class SessionContextResponse(SessionContext):
    session_id: str


# ── Helpers ─────────────────────────────────────────────────────────


def _client_ip(request: Request) -> str:
    """X-Real-IP from the reverse proxy, else the socket peer."""
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


def _hash_ip(ip: str) -> str | None:
    """Raw IPs are never stored, only their SHA-256."""
    if not ip:
        return None
    return hashlib.sha256(ip.encode()).hexdigest()


# ── Endpoints ───────────────────────────────────────────────────────


@router.post("/session", response_model=CreateSessionResponse, status_code=201)
async def create_session(
    request: Request,
    body: SessionContext | None = None,
    store: Store = Depends(get_store),
):
    """Create an anonymous session. The anon_token authenticates later session-scoped calls."""
    params = request.query_params
    anon_token = secrets.token_hex(32)

    session = await store.create_session(
        anon_token=anon_token,
        utm_source=params.get("utm_source") or None,
        utm_medium=params.get("utm_medium") or None,
        utm_campaign=params.get("utm_campaign") or None,
        referrer=request.headers.get("referer") or None,
        ip_hash=_hash_ip(_client_ip(request)),
        user_agent=request.headers.get("user-agent") or None,
    )

    if body and (body.biz_name or body.industry or body.stage):
        try:
            await store.update_session_context(
                session.id, body.biz_name or None, body.industry or None, body.stage or None
            )
        except Exception as e:
            # Context can still be set via PATCH later
            logger.warning(
                "create_session_context_failed",
                session_id=str(session.id),
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.info("session_created", session_id=str(session.id))
    return CreateSessionResponse(session_id=str(session.id), anon_token=anon_token)


@router.patch("/session/{session_id}/context", response_model=SessionContextResponse)
async def update_context(
    body: SessionContext,
    session: CheckoutSession = Depends(require_session),
    store: Store = Depends(get_store),
):
    """Set the business name, industry and stage shown on the report."""
    updated = await store.update_session_context(
        session.id, body.biz_name or None, body.industry or None, body.stage or None
    )
    return SessionContextResponse(
        session_id=str(updated.id),
        biz_name=updated.biz_name or "",
        industry=updated.industry or "",
        stage=updated.stage or "",
    )
