"""Hedging test fixtures."""

import pytest

from riskmapper.scoring import RiskTier, ScoredRisk


@pytest.fixture
def risks() -> list[ScoredRisk]:
    return [
        ScoredRisk(
            question_id="fin_runway",
            probability=9,
            impact=10,
            score=90,
            tier=RiskTier.WATCH,
            rank=1,
            risk_name="Cash runway",
            risk_desc="Short runway",
            hedge="Build a cash forecast",
            section="Finance",
        ),
        ScoredRisk(
            question_id="ops_key_person",
            probability=5,
            impact=9,
            score=45,
            tier=RiskTier.RED,
            rank=2,
            risk_name="Key person dependency",
            hedge="Train a deputy",
            section="Operations",
        ),
    ]
