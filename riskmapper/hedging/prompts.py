"""Prompt construction and response parsing shared by the hedging providers."""

import json

from pydantic import BaseModel, ValidationError

from riskmapper.core.exceptions import HedgingError
from riskmapper.hedging.base import HedgeResult
from riskmapper.scoring import ScoredRisk

SYSTEM_PROMPT: str = """You are a risk management advisor for small and medium businesses.
You will receive a list of business risks identified through an assessment questionnaire.
Each risk has a name, description, probability (1-10), impact (1-10), tier (watch/red/manage/ignore), and a static hedge suggestion.

Produce:
1. executive_summary: 2-3 sentences on the overall risk posture. Be direct and specific.
2. top_priority_html: a short inline HTML fragment (1-2 sentences, <strong> allowed, no block elements) naming the single most urgent action.
3. hedges: for each risk, keyed by question_id, an improved and specific hedge narrative of 2-4 sentences with concrete actions and rough timelines. Do not repeat the static hedge verbatim.

Respond ONLY with valid JSON in exactly this shape, no markdown fences, no preamble:
{
  "executive_summary": "...",
  "top_priority_html": "...",
  "hedges": {
    "question_id_1": "...",
    "question_id_2": "..."
  }
}"""

# Truncation for raw model output quoted in error messages
_RAW_PREVIEW_CHARS = 200


class HedgePayload(BaseModel):
    executive_summary: str = ""
    top_priority_html: str = ""
    hedges: dict[str, str] = {}


def build_prompt(risks: list[ScoredRisk]) -> str:
    lines = ["Here are the business risks to analyse:", ""]
    for r in risks:
        lines.append(f"question_id: {r.question_id}")
        lines.append(f"name: {r.risk_name}")
        lines.append(f"description: {r.risk_desc}")
        lines.append(
            f"probability: {r.probability}/10, impact: {r.impact}/10, score: {r.score}, tier: {r.tier.value}"
        )
        lines.append(f"static_hedge: {r.hedge}")
        lines.append("---")
    return "\n".join(lines)


def strip_json_fences(content: str) -> str:
    """Remove markdown code fences wrapping JSON output."""
    content = content.strip()
    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        else:
            content = content.removeprefix("```json").removeprefix("```")
        if content.endswith("```"):
            content = content[:-3].rstrip()
    return content.strip()


def parse_hedge_response(raw: str) -> HedgeResult:
    """Parse the model's JSON reply into a HedgeResult.

    Raises:
        HedgingError: reply is not JSON or does not match the expected shape.
    """
    content = strip_json_fences(raw)
    try:
        payload = HedgePayload.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise HedgingError(
            f"Unparseable hedge response: {exc} (raw: {content[:_RAW_PREVIEW_CHARS]!r})"
        ) from exc

    return HedgeResult(
        hedges={qid: text for qid, text in payload.hedges.items() if text},
        executive_summary=payload.executive_summary,
        top_priority_html=payload.top_priority_html,
    )
