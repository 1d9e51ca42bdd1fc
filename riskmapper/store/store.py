"""Transactional store for sessions, reports and payment events.

The multi-step writes (attach_payment_intent, initialise_report,
persist_scored_report) run inside SERIALIZABLE transactions. The status
columns are not a lock: two writers racing on the same rows are resolved by
Postgres aborting one of them with a serialization failure, which is retried
here a bounded number of times before surfacing.

Idempotent replays surface as sentinel exceptions carrying the existing row
(PaymentIntentAlreadyAttachedError, ReportAlreadyExistsError). They are
raised inside the transaction so that any writes made before the check roll
back with it.
"""

import uuid
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from riskmapper.core.exceptions import (
    PaymentIntentAlreadyAttachedError,
    ReportAlreadyExistsError,
    ReportNotFoundError,
    SessionNotFoundError,
)
from riskmapper.db.models import (
    PENDING_STATUSES,
    Answer,
    CheckoutSession,
    PaymentEvent,
    PaymentStatus,
    QuestionDefinition,
    Report,
    ReportStatus,
    RiskResult,
)
from riskmapper.scoring import AnswerRow, ScoredRisk, critical_count, overall_score

logger = structlog.get_logger(__name__)

# serialization_failure, deadlock_detected, unique_violation
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "23505"})

TX_MAX_ATTEMPTS = 3


def _sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_retryable_tx_error(exc: BaseException) -> bool:
    """True for errors Postgres raises when a concurrent transaction won a race."""
    return isinstance(exc, DBAPIError) and _sqlstate(exc) in RETRYABLE_SQLSTATES


def _log_tx_retry(retry_state) -> None:
    exc = retry_state.outcome.exception()
    logger.info(
        "store_tx_retry",
        attempt=retry_state.attempt_number,
        sqlstate=_sqlstate(exc),
        error_type=type(exc).__name__,
    )


class Store:
    """Owns the engine and exposes the report lifecycle writes plus the reads around them."""

    def __init__(self, engine: AsyncEngine, tx_max_attempts: int = TX_MAX_ATTEMPTS):
        self._engine = engine
        self._tx_max_attempts = tx_max_attempts
        self._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._serializable_factory = async_sessionmaker(
            engine.execution_options(isolation_level="SERIALIZABLE"),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # ── Transaction helpers ─────────────────────────────────────────

    @asynccontextmanager
    async def _serializable_tx(self) -> AsyncIterator[AsyncSession]:
        """One SERIALIZABLE transaction: commit on exit, roll back on any exception."""
        async with self._serializable_factory() as db:
            async with db.begin():
                yield db

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(is_retryable_tx_error),
            stop=stop_after_attempt(self._tx_max_attempts),
            wait=wait_random_exponential(multiplier=0.05, max=1),
            reraise=True,
            before_sleep=_log_tx_retry,
        )

    # ── Multi-step writes ───────────────────────────────────────────

    async def attach_payment_intent(
        self,
        session_id: uuid.UUID,
        customer_id: str | None,
        payment_intent_id: str,
        email: str | None,
    ) -> CheckoutSession:
        """Attach a Stripe customer + payment intent to a session exactly once.

        Raises:
            PaymentIntentAlreadyAttachedError: the session already has an intent;
                ``exc.session`` is the current row with the winning intent id.
            SessionNotFoundError: no such session.
        """
        async for attempt in self._retrying():
            with attempt:
                async with self._serializable_tx() as db:
                    session = await db.get(CheckoutSession, session_id)
                    if session is None:
                        raise SessionNotFoundError(f"Session {session_id} not found")

                    if session.stripe_payment_intent:
                        db.expunge(session)
                        raise PaymentIntentAlreadyAttachedError(session)

                    if customer_id:
                        session.stripe_customer_id = customer_id
                    session.stripe_payment_intent = payment_intent_id
                    if email:
                        session.email = email
                    await db.flush()

        logger.info("payment_intent_attached", session_id=str(session_id), payment_intent=payment_intent_id)
        return session

    async def initialise_report(self, payment_intent_id: str) -> Report:
        """Mark the intent's session paid and create its draft report in one transaction.

        Raises:
            ReportAlreadyExistsError: duplicate trigger; ``exc.report`` is the existing row.
                The paid-mark of this call is rolled back with the transaction.
            SessionNotFoundError: no session carries this payment intent.
        """
        async for attempt in self._retrying():
            with attempt:
                async with self._serializable_tx() as db:
                    result = await db.execute(
                        update(CheckoutSession)
                        .where(CheckoutSession.stripe_payment_intent == payment_intent_id)
                        .values(payment_status=PaymentStatus.PAID.value, paid_at=datetime.now(UTC))
                        .returning(CheckoutSession.id)
                    )
                    session_id = result.scalar_one_or_none()
                    if session_id is None:
                        raise SessionNotFoundError(f"No session for payment intent {payment_intent_id}")

                    existing = await db.scalar(select(Report).where(Report.session_id == session_id))
                    if existing is not None:
                        db.expunge(existing)
                        raise ReportAlreadyExistsError(existing)

                    report = Report(session_id=session_id, status=ReportStatus.DRAFT.value)
                    db.add(report)
                    await db.flush()
                    await db.refresh(report)

        logger.info("report_initialised", report_id=str(report.id), session_id=str(report.session_id))
        return report

    async def persist_scored_report(
        self,
        report_id: uuid.UUID,
        risks: list[ScoredRisk],
        ai_hedges: Mapping[str, str] | None = None,
        executive_summary: str = "",
        top_priority_html: str = "",
    ) -> Report:
        """Write all result rows and finalize the report as ready, atomically.

        A report that is already ready is returned unchanged. AI hedges for
        question ids outside ``risks`` or with empty text are ignored.

        Raises:
            ReportNotFoundError: no such report.
        """
        ai_hedges = ai_hedges or {}

        async for attempt in self._retrying():
            with attempt:
                async with self._serializable_tx() as db:
                    report = await db.get(Report, report_id)
                    if report is None:
                        raise ReportNotFoundError(f"Report {report_id} not found")
                    if report.status == ReportStatus.READY.value:
                        logger.info("report_already_ready", report_id=str(report_id))
                        return report

                    # Not a lock; exclusion comes from the SERIALIZABLE transaction
                    report.status = ReportStatus.PROCESSING.value
                    await db.flush()

                    rows: dict[str, RiskResult] = {}
                    for risk in risks:
                        row = RiskResult(
                            report_id=report_id,
                            question_id=risk.question_id,
                            rank=risk.rank,
                            risk_name=risk.risk_name,
                            risk_desc=risk.risk_desc,
                            probability=risk.probability,
                            impact=risk.impact,
                            score=risk.score,
                            tier=risk.tier.value,
                            hedge=risk.hedge,
                            section=risk.section,
                        )
                        db.add(row)
                        rows[risk.question_id] = row
                    await db.flush()

                    snapshot = []
                    for risk in risks:
                        entry = risk.to_dict()
                        ai_hedge = ai_hedges.get(risk.question_id)
                        if ai_hedge:
                            rows[risk.question_id].ai_hedge = ai_hedge
                            entry["ai_hedge"] = ai_hedge
                        snapshot.append(entry)

                    skipped = sorted(set(ai_hedges) - set(rows))
                    if skipped:
                        logger.info("ai_hedges_skipped_unknown_questions", report_id=str(report_id), question_ids=skipped)

                    report.overall_score = overall_score(risks)
                    report.critical_count = critical_count(risks)
                    report.risks_json = snapshot
                    report.executive_summary = executive_summary or None
                    report.top_priority_html = top_priority_html or None
                    report.status = ReportStatus.READY.value
                    report.generated_at = datetime.now(UTC)
                    report.error_message = None
                    await db.flush()

        logger.info(
            "report_persisted",
            report_id=str(report_id),
            risk_count=len(risks),
            overall_score=report.overall_score,
            critical_count=report.critical_count,
        )
        return report

    async def mark_report_failed(self, report_id: uuid.UUID, reason: str) -> Report | None:
        """Set a report to the terminal error status. A ready report is left alone."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(Report)
                .where(Report.id == report_id, Report.status != ReportStatus.READY.value)
                .values(status=ReportStatus.ERROR.value, error_message=reason)
                .returning(Report)
            )
            report = result.scalar_one_or_none()
            await db.commit()

        if report is None:
            logger.warning("mark_report_failed_noop", report_id=str(report_id))
        else:
            logger.info("report_marked_failed", report_id=str(report_id), reason=reason)
        return report

    # ── Payment events ──────────────────────────────────────────────

    async def record_payment_event(self, event_id: str, event_type: str, payload: dict) -> bool:
        """Insert or re-claim the idempotency record for a Stripe event.

        Returns True when the event should be dispatched: it is new, or an
        earlier delivery was recorded but never marked processed. Returns
        False only for events already processed.
        """
        stmt = pg_insert(PaymentEvent).values(stripe_event_id=event_id, type=event_type, payload=payload)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PaymentEvent.stripe_event_id],
            set_={"payload": stmt.excluded.payload},
            where=PaymentEvent.processed.is_(False),
        ).returning(PaymentEvent.stripe_event_id)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            claimed = result.scalar_one_or_none() is not None
            await db.commit()
        return claimed

    async def mark_event_processed(self, event_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(PaymentEvent)
                .where(PaymentEvent.stripe_event_id == event_id)
                .values(processed=True, processed_at=datetime.now(UTC), error=None)
            )
            await db.commit()

    async def mark_event_failed(self, event_id: str, error: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(PaymentEvent)
                .where(PaymentEvent.stripe_event_id == event_id)
                .values(processed=False, error=error)
            )
            await db.commit()

    # ── Sessions ────────────────────────────────────────────────────

    async def create_session(
        self,
        anon_token: str,
        utm_source: str | None = None,
        utm_medium: str | None = None,
        utm_campaign: str | None = None,
        referrer: str | None = None,
        ip_hash: str | None = None,
        user_agent: str | None = None,
    ) -> CheckoutSession:
        async with self._session_factory() as db:
            session = CheckoutSession(
                anon_token=anon_token,
                utm_source=utm_source,
                utm_medium=utm_medium,
                utm_campaign=utm_campaign,
                referrer=referrer,
                ip_hash=ip_hash,
                user_agent=user_agent,
            )
            db.add(session)
            await db.commit()
            await db.refresh(session)
            return session

    async def get_session(self, session_id: uuid.UUID) -> CheckoutSession | None:
        async with self._session_factory() as db:
            return await db.get(CheckoutSession, session_id)

    async def get_session_by_token(self, anon_token: str) -> CheckoutSession | None:
        async with self._session_factory() as db:
            return await db.scalar(select(CheckoutSession).where(CheckoutSession.anon_token == anon_token))

    async def update_session_context(
        self,
        session_id: uuid.UUID,
        biz_name: str | None,
        industry: str | None,
        stage: str | None,
    ) -> CheckoutSession:
        async with self._session_factory() as db:
            session = await db.get(CheckoutSession, session_id)
            if session is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            session.biz_name = biz_name
            session.industry = industry
            session.stage = stage
            await db.commit()
            return session

    async def set_payment_status(self, payment_intent_id: str, status: PaymentStatus) -> CheckoutSession | None:
        """Record a failed or refunded payment. Returns None if no session carries the intent."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(CheckoutSession)
                .where(CheckoutSession.stripe_payment_intent == payment_intent_id)
                .values(payment_status=status.value)
                .returning(CheckoutSession)
            )
            session = result.scalar_one_or_none()
            await db.commit()
            return session

    # ── Answers ─────────────────────────────────────────────────────

    async def upsert_answers(self, session_id: uuid.UUID, answers: Iterable[Mapping]) -> int:
        """Insert or overwrite answers keyed by (session, question). Returns rows written."""
        # Last write wins within a batch; ON CONFLICT cannot touch a row twice
        by_question = {
            a["question_id"]: {
                "session_id": session_id,
                "question_id": a["question_id"],
                "answer_text": a.get("answer_text") or "",
                "client_p": a.get("client_p"),
                "client_i": a.get("client_i"),
            }
            for a in answers
        }
        values = list(by_question.values())
        if not values:
            return 0

        stmt = pg_insert(Answer).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Answer.session_id, Answer.question_id],
            set_={
                "answer_text": stmt.excluded.answer_text,
                "client_p": stmt.excluded.client_p,
                "client_i": stmt.excluded.client_i,
                "updated_at": datetime.now(UTC),
            },
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()
        return len(values)

    async def get_answer_rows(self, session_id: uuid.UUID) -> list[AnswerRow]:
        """Answers joined with question metadata, in questionnaire order."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(Answer, QuestionDefinition)
                .join(QuestionDefinition, QuestionDefinition.id == Answer.question_id)
                .where(Answer.session_id == session_id)
                .order_by(QuestionDefinition.display_order, QuestionDefinition.id)
            )
            rows = result.all()

        return [
            AnswerRow(
                question_id=answer.question_id,
                answer_text=answer.answer_text,
                scoring_config=question.scoring_config,
                is_scoring=question.is_scoring,
                section_title=question.section_title,
                risk_name=question.risk_name,
                risk_desc=question.risk_desc,
                hedge=question.hedge,
            )
            for answer, question in rows
        ]

    # ── Reports ─────────────────────────────────────────────────────

    async def get_report(self, report_id: uuid.UUID) -> Report:
        async with self._session_factory() as db:
            report = await db.get(Report, report_id)
        if report is None:
            raise ReportNotFoundError(f"Report {report_id} not found")
        return report

    async def get_report_by_access_token(self, access_token: str) -> tuple[Report, CheckoutSession] | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Report, CheckoutSession)
                .join(CheckoutSession, CheckoutSession.id == Report.session_id)
                .where(Report.access_token == access_token)
            )
            row = result.one_or_none()
        return None if row is None else row._tuple()

    async def get_risk_results(self, report_id: uuid.UUID) -> list[RiskResult]:
        async with self._session_factory() as db:
            result = await db.scalars(
                select(RiskResult).where(RiskResult.report_id == report_id).order_by(RiskResult.rank)
            )
            return list(result.all())

    async def list_pending_reports(self, window: timedelta) -> list[Report]:
        """Draft/processing reports created within ``window``, oldest first."""
        cutoff = datetime.now(UTC) - window
        async with self._session_factory() as db:
            result = await db.scalars(
                select(Report)
                .where(Report.status.in_(PENDING_STATUSES), Report.created_at > cutoff)
                .order_by(Report.created_at)
            )
            return list(result.all())

    # ── Health ──────────────────────────────────────────────────────

    async def ping(self) -> None:
        async with self._session_factory() as db:
            await db.execute(text("SELECT 1"))
