"""Risk scoring engine.

Pure domain functions: one answer + its scoring config → (probability, impact),
composite score (p × i) and a tier from the probability/impact quadrant.
No DB access, fully deterministic.
"""

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from riskmapper.core.exceptions import ScoringConfigError
from riskmapper.scoring.config import RadioConfig, TextConfig, parse_scoring_config


class RiskTier(StrEnum):
    """Quadrant classification of a (probability, impact) pair."""

    WATCH = "watch"  # high probability, high impact
    RED = "red"  # low probability, high impact
    MANAGE = "manage"  # high probability, low impact
    IGNORE = "ignore"  # low probability, low impact


# Tiers worth sending to the hedging client
HEDGE_TIERS = (RiskTier.WATCH, RiskTier.RED)


@dataclass(frozen=True)
class TierThresholds:
    """Cutoffs for the quadrant split. Both comparisons are inclusive."""

    high_impact: int = 7
    high_probability: int = 6


DEFAULT_THRESHOLDS = TierThresholds()


@dataclass
class AnswerRow:
    """One answer joined with its question's metadata, as loaded for scoring."""

    question_id: str
    answer_text: str
    scoring_config: Any  # Raw JSON column value
    is_scoring: bool = True
    section_title: str = ""
    risk_name: str = ""
    risk_desc: str = ""
    hedge: str = ""


@dataclass
class ScoredRisk:
    """Fully computed output for a single question."""

    question_id: str
    probability: int
    impact: int
    score: int
    tier: RiskTier
    rank: int = 0  # 1-indexed, assigned by compute_risks
    risk_name: str = ""
    risk_desc: str = ""
    hedge: str = ""
    section: str = ""

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "rank": self.rank,
            "risk_name": self.risk_name,
            "risk_desc": self.risk_desc,
            "probability": self.probability,
            "impact": self.impact,
            "score": self.score,
            "tier": self.tier.value,
            "hedge": self.hedge,
            "section": self.section,
        }


def score_answer(config: RadioConfig | TextConfig | Any, answer: str) -> tuple[int, int]:
    """Score one answer against its config.

    Accepts a parsed config or the raw JSON value. Radio answers missing from
    the option list score (1, 1); text answers score "long" only when the
    trimmed length is strictly greater than the threshold.

    Raises:
        ScoringConfigError: if a raw config cannot be parsed or validated.
    """
    if not isinstance(config, (RadioConfig, TextConfig)):
        config = parse_scoring_config(config)
    return config.score((answer or "").strip())


def get_tier(probability: int, impact: int, thresholds: TierThresholds = DEFAULT_THRESHOLDS) -> RiskTier:
    high_impact = impact >= thresholds.high_impact
    high_prob = probability >= thresholds.high_probability

    if high_impact and high_prob:
        return RiskTier.WATCH
    if high_impact:
        return RiskTier.RED
    if high_prob:
        return RiskTier.MANAGE
    return RiskTier.IGNORE


def compute_risks(
    rows: list[AnswerRow],
    thresholds: TierThresholds = DEFAULT_THRESHOLDS,
) -> list[ScoredRisk]:
    """Score every scoring row and return them ranked.

    Non-scoring rows (context questions) are skipped. Output is sorted by
    score descending, ties broken by question id ascending, and ranked 1..n.

    Raises:
        ScoringConfigError: naming the first question whose config is invalid.
    """
    risks: list[ScoredRisk] = []

    for row in rows:
        if not row.is_scoring:
            continue

        try:
            p, i = score_answer(row.scoring_config, row.answer_text)
        except ScoringConfigError as exc:
            raise ScoringConfigError(str(exc), question_id=row.question_id) from exc

        risks.append(
            ScoredRisk(
                question_id=row.question_id,
                probability=p,
                impact=i,
                score=p * i,
                tier=get_tier(p, i, thresholds),
                risk_name=row.risk_name,
                risk_desc=row.risk_desc,
                hedge=row.hedge,
                section=row.section_title,
            )
        )

    risks.sort(key=lambda r: (-r.score, r.question_id))
    return [replace(risk, rank=idx) for idx, risk in enumerate(risks, start=1)]


def overall_score(risks: list[ScoredRisk]) -> int:
    """Mean composite score, rounded half-up. 0 for no risks."""
    if not risks:
        return 0
    total = sum(r.score for r in risks)
    n = len(risks)
    # Integer half-up: floor(total / n + 1/2)
    return (2 * total + n) // (2 * n)


def critical_count(risks: list[ScoredRisk]) -> int:
    return sum(1 for r in risks if r.tier == RiskTier.WATCH)


def filter_by_tier(risks: list[ScoredRisk], *tiers: RiskTier) -> list[ScoredRisk]:
    wanted = set(tiers)
    return [r for r in risks if r.tier in wanted]
