"""Risk Mapper backend: FastAPI application entry point."""

import asyncio
import signal
import uuid
from contextlib import asynccontextmanager

# CRITICAL ORDER: configure_structlog MUST be called before all other app imports
# to avoid the structlog cache pitfall (structlog caches the processor chain on first use).
from riskmapper.core.logging import configure_structlog
from riskmapper.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from riskmapper.api.routes import api_router
from riskmapper.core.config import get_settings, validate_settings
from riskmapper.db import close_db, init_db
from riskmapper.db.seed import seed_questions
from riskmapper.hedging import build_hedger
from riskmapper.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)
from riskmapper.notifications import build_sender
from riskmapper.payments import StripeGateway
from riskmapper.scoring import TierThresholds
from riskmapper.store import Store
from riskmapper.worker import ReportJob, Runner, RunnerConfig

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Graceful shutdown flag; the SIGTERM handler flips it so the health check returns 503
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    # Startup
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_settings(settings)
    logger.info("settings_validated")

    engine = await init_db()
    logger.info("db_initialized")

    inserted = await seed_questions(engine)
    logger.info("questions_seeded", inserted=inserted)

    store = Store(engine)
    hedger = build_hedger(settings)
    if hedger is None:
        logger.warning("hedger_disabled", reason="no_ai_api_key", fallback="static_hedges")
    sender = build_sender(settings)

    job = ReportJob(
        store=store,
        hedger=hedger,
        sender=sender,
        thresholds=TierThresholds(
            high_impact=settings.tier_high_impact,
            high_probability=settings.tier_high_probability,
        ),
    )
    runner = Runner(job, store, RunnerConfig.from_settings(settings))

    app.state.store = store
    app.state.sender = sender
    app.state.payments = StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)
    app.state.runner = runner

    runner_task = asyncio.create_task(runner.start(), name="report-runner")
    logger.info("runner_started")

    yield

    # Shutdown
    logger.info("shutdown_begin")
    runner.stop()
    try:
        await runner_task
    except Exception as e:
        logger.error("runner_exit_error", error=str(e), error_type=type(e).__name__)
    await close_db()
    logger.info("shutdown_complete")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())
    corr_id = get_correlation_id()

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=corr_id,
        path=request.url.path,
        method=request.method,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())
    corr_id = get_correlation_id()

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=corr_id,
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    # No internal details leaked
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Paid business risk questionnaire: scoring, AI hedges and report delivery",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    # Exception handlers
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix="/api")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "riskmapper.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
