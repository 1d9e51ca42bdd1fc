"""ReportJob — one end-to-end run of the report pipeline for a single report.

load → score → hedge → persist → notify

Everything up to and including persist raises to the caller (the Runner
retries). Hedging and the delivery email are best-effort: failures are logged
and the pipeline carries on with static hedges / without email.
"""

import uuid

import structlog

from riskmapper.core.exceptions import NoAnswersError
from riskmapper.db.models import TERMINAL_STATUSES, Report
from riskmapper.hedging import HedgeResult, Hedger
from riskmapper.notifications import Sender
from riskmapper.scoring import (
    DEFAULT_THRESHOLDS,
    HEDGE_TIERS,
    ScoredRisk,
    TierThresholds,
    compute_risks,
    critical_count,
    filter_by_tier,
    overall_score,
)
from riskmapper.store import Store

logger = structlog.get_logger(__name__)


class ReportJob:
    def __init__(
        self,
        store: Store,
        hedger: Hedger | None,
        sender: Sender,
        thresholds: TierThresholds = DEFAULT_THRESHOLDS,
    ):
        self.store = store
        self.hedger = hedger
        self.sender = sender
        self.thresholds = thresholds

    async def run(self, report_id: uuid.UUID) -> Report:
        log = logger.bind(report_id=str(report_id))
        log.info("job_started")

        report = await self.store.get_report(report_id)
        if report.status in TERMINAL_STATUSES:
            log.info("job_skipped_terminal_report", status=report.status)
            return report

        rows = await self.store.get_answer_rows(report.session_id)
        if not rows:
            raise NoAnswersError(report.session_id)

        risks = compute_risks(rows, self.thresholds)
        log.debug(
            "job_scored",
            answer_count=len(rows),
            risk_count=len(risks),
            critical_count=critical_count(risks),
            overall_score=overall_score(risks),
        )

        hedges = await self._generate_hedges(risks, log)

        final = await self.store.persist_scored_report(
            report_id,
            risks,
            ai_hedges=hedges.hedges,
            executive_summary=hedges.executive_summary,
            top_priority_html=hedges.top_priority_html,
        )
        log.info(
            "job_report_persisted",
            overall_score=final.overall_score,
            critical_count=final.critical_count,
            ai_hedge_count=len(hedges.hedges),
        )

        await self._notify(final, log)
        return final

    async def _generate_hedges(self, risks: list[ScoredRisk], log) -> HedgeResult:
        """Non-fatal: AI narratives for watch + red risks only."""
        priority = filter_by_tier(risks, *HEDGE_TIERS)
        if not priority or self.hedger is None:
            return HedgeResult()

        try:
            return await self.hedger.generate_hedges(priority)
        except Exception as e:
            log.warning(
                "job_hedging_failed_using_static_hedges",
                risk_count=len(priority),
                error=str(e),
                error_type=type(e).__name__,
            )
            return HedgeResult()

    async def _notify(self, report: Report, log) -> None:
        """Non-fatal: the report stays reachable by access token whatever happens here."""
        try:
            session = await self.store.get_session(report.session_id)
            if session is None or not session.email:
                log.info("job_no_email_on_session")
                return
            await self.sender.send_report_ready(session.email, session.biz_name or "", report.access_token)
            log.info("job_report_email_sent")
        except Exception as e:
            log.warning(
                "job_report_email_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
