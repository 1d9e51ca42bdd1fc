"""Report route — the emailed access token is the only credential."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from riskmapper.api.deps import get_store
from riskmapper.db.models import ReportStatus, RiskResult
from riskmapper.store import Store

router = APIRouter()


class RiskItem(BaseModel):
    rank: int
    question_id: str
    risk_name: str
    risk_desc: str
    probability: int
    impact: int
    score: int
    tier: str
    section: str
    hedge: str


class ReportResponse(BaseModel):
    report_id: str
    status: str
    biz_name: str | None = None
    industry: str | None = None
    stage: str | None = None
    overall_score: int
    critical_count: int
    executive_summary: str = ""
    top_priority_html: str = ""
    risks: list[RiskItem]
    generated_at: datetime | None = None


def _risk_item(row: RiskResult) -> RiskItem:
    return RiskItem(
        rank=row.rank,
        question_id=row.question_id,
        risk_name=row.risk_name,
        risk_desc=row.risk_desc or "",
        probability=row.probability,
        impact=row.impact,
        score=row.score,
        tier=row.tier,
        section=row.section or "",
        # The AI hedge replaces the authored one when present
        hedge=row.ai_hedge or row.hedge or "",
    )


@router.get(
    "/report/{access_token}",
    response_model=ReportResponse,
    responses={202: {"description": "Report is still being generated"}},
)
async def get_report(access_token: str, store: Store = Depends(get_store)):
    """Return the finished report, or 202 with its status while it is still in progress."""
    found = await store.get_report_by_access_token(access_token)
    if found is None:
        raise HTTPException(status_code=404, detail="Report not found")

    report, session = found
    if report.status != ReportStatus.READY.value:
        return JSONResponse(
            status_code=202,
            content={"report_id": str(report.id), "status": report.status},
        )

    rows = await store.get_risk_results(report.id)
    return ReportResponse(
        report_id=str(report.id),
        status=report.status,
        biz_name=session.biz_name,
        industry=session.industry,
        stage=session.stage,
        overall_score=report.overall_score or 0,
        critical_count=report.critical_count or 0,
        executive_summary=report.executive_summary or "",
        top_priority_html=report.top_priority_html or "",
        risks=[_risk_item(row) for row in rows],
        generated_at=report.generated_at,
    )
