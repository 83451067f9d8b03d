"""Shared fixtures for entity_risk_engine tests."""

from datetime import datetime, timedelta, UTC

import pytest

from entity_risk_engine import CategoryScore, Metric, RiskEngineConfig, RiskProfile, TrendPoint
from entity_risk_engine.risk_score import determine_risk_tier


AS_OF = datetime(2024, 6, 30, tzinfo=UTC)


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def config():
    return RiskEngineConfig.default()


@pytest.fixture
def financial_metrics():
    """credit_score normalizes to 450/550, liquidity to 0.8."""
    return [
        Metric("financial", "credit_score", 750, 300, 850, weight=2.0, last_updated=AS_OF),
        Metric("financial", "liquidity_ratio", 2.5, 0.5, 3.0, weight=1.0, last_updated=AS_OF),
    ]


@pytest.fixture
def operational_metrics():
    """delivery_reliability normalizes to 0.84."""
    return [Metric("operational", "delivery_reliability", 0.92, 0.5, 1.0, weight=1.0, last_updated=AS_OF)]


def make_profile(entity_id, score, category_scores=None, timestamp=AS_OF, degraded=False):
    """Scored profile with the given overall score and optional {category: score}."""
    category_scores = category_scores or {}
    return RiskProfile(
        entity_id=entity_id,
        overall_score=score,
        risk_tier=determine_risk_tier(score),
        confidence=0.8,
        category_scores={
            c: CategoryScore(category=c, score=s, metric_count=1, effective_weight=1.0)
            for c, s in category_scores.items()
        },
        recommendations=("Maintain the current relationship",),
        timestamp=timestamp,
        coverage=len(category_scores) / 6,
        degraded=degraded,
    )


def make_history(entity_id, scores, start=AS_OF, step_days=30):
    return [
        TrendPoint(entity_id=entity_id, timestamp=start + timedelta(days=i * step_days), overall_score=s)
        for i, s in enumerate(scores)
    ]


@pytest.fixture
def profile_factory():
    return make_profile


@pytest.fixture
def history_factory():
    return make_history
