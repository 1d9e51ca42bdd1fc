"""Risk scoring — pure functions, no DB access."""

from riskmapper.scoring.config import RadioConfig, ScoringConfig, TextConfig, parse_scoring_config
from riskmapper.scoring.scorer import (
    DEFAULT_THRESHOLDS,
    HEDGE_TIERS,
    AnswerRow,
    RiskTier,
    ScoredRisk,
    TierThresholds,
    compute_risks,
    critical_count,
    filter_by_tier,
    get_tier,
    overall_score,
    score_answer,
)

__all__ = [
    "AnswerRow",
    "DEFAULT_THRESHOLDS",
    "HEDGE_TIERS",
    "RadioConfig",
    "RiskTier",
    "ScoredRisk",
    "ScoringConfig",
    "TextConfig",
    "TierThresholds",
    "compute_risks",
    "critical_count",
    "filter_by_tier",
    "get_tier",
    "overall_score",
    "parse_scoring_config",
    "score_answer",
]
