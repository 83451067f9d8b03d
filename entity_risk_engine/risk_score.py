#!/usr/bin/env python3
"""
Entity Risk Score Module

Turns a (possibly partial) set of raw metrics for one entity into an
immutable ``RiskProfile``: overall score in [0, 1], risk tier, confidence
and human-readable recommendations.

Pipeline:
    metrics -> normalization -> category aggregation -> composite score

Composite policy mirrors the category policy: only *present* categories
contribute, and their weights are renormalized to sum to 1 among
themselves. Missing categories lower coverage, which lowers confidence.

Confidence is deterministic:
    confidence = base + coverage_weight * coverage + recency_weight * recency
where ``coverage`` is present / weighted categories (zero-weight categories
are excluded) and ``recency`` decays linearly from 1 (fresh) to 0 (older
than the staleness window) with the age of the newest metric used.
"""

from __future__ import annotations

import logging
from datetime import datetime, UTC
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from entity_risk_engine._logging import log_errors, log_operation
from entity_risk_engine.category_scoring import aggregate_categories
from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.constants import (
    TIER_EXTREME,
    TIER_HIGH,
    TIER_LOW,
    TIER_MEDIUM,
    get_category_display_name,
)
from entity_risk_engine.data_objects import CategoryScore, Metric, RiskProfile, as_utc
from entity_risk_engine.exceptions import InsufficientDataError
from entity_risk_engine.normalization import normalize_metrics

logger = logging.getLogger(__name__)


def determine_risk_tier(score: float, thresholds: Optional[Mapping[str, float]] = None) -> str:
    """
    Map a composite score to its tier.

    Bands are inclusive on the lower bound and exclusive on the upper:
    ``[0.8, 1] low``, ``[0.6, 0.8) medium``, ``[0.4, 0.6) high``,
    ``[0, 0.4) extreme`` with the default thresholds.
    """
    if thresholds is None:
        thresholds = RiskEngineConfig.default().tier_thresholds
    if score >= thresholds[TIER_LOW]:
        return TIER_LOW
    if score >= thresholds[TIER_MEDIUM]:
        return TIER_MEDIUM
    if score >= thresholds[TIER_HIGH]:
        return TIER_HIGH
    return TIER_EXTREME


def compute_overall_score(
    category_scores: Mapping[str, CategoryScore],
    category_weights: Mapping[str, float],
) -> tuple[float, Dict[str, float]]:
    """
    Weighted mean over present categories with weights renormalized among them.

    Returns:
        (overall_score, effective_weights) where ``effective_weights`` are the
        renormalized weights actually applied (summing to 1)

    Raises:
        InsufficientDataError: no present category carries positive weight
    """
    raw = {
        category: float(category_weights.get(category, 0.0))
        for category in category_scores
        if float(category_weights.get(category, 0.0)) > 0
    }
    total = sum(raw.values())
    if total <= 0:
        raise InsufficientDataError("No weighted risk category present; composite score not produced")

    effective = {category: w / total for category, w in raw.items()}
    overall = sum(category_scores[c].score * w for c, w in effective.items())
    return max(0.0, min(1.0, overall)), effective


def compute_recency(
    newest_update: Optional[datetime],
    as_of: datetime,
    staleness_window_days: float,
) -> float:
    """1.0 for fresh data, decaying linearly to 0.0 at the staleness window."""
    if newest_update is None:
        return 0.0
    age_days = (as_utc(as_of) - as_utc(newest_update)).total_seconds() / 86400.0
    if age_days <= 0:
        return 1.0
    return max(0.0, 1.0 - age_days / staleness_window_days)


def compute_confidence(coverage: float, recency: float, config: Optional[RiskEngineConfig] = None) -> float:
    config = config or RiskEngineConfig.default()
    value = config.confidence_base + config.coverage_weight * coverage + config.recency_weight * recency
    return max(0.0, min(1.0, value))


def generate_score_interpretation(score: float, thresholds: Optional[Mapping[str, float]] = None) -> Dict[str, Any]:
    """
    Generate score interpretation with both risk assessment and actionable guidance.

    Returns:
        Dict with:
        - 'summary': Action-focused title
        - 'details': Actionable steps (the tier boilerplate recommendations)
        - 'risk_assessment': Risk-focused context
    """
    tier = determine_risk_tier(score, thresholds)
    if tier == TIER_LOW:
        summary = "LOW RISK: Entity profile is strong"
        details = [
            "Maintain the current relationship",
            "Consider expanding business with this entity",
            "Explore strategic partnership opportunities",
        ]
        risk_assessment = [
            "Risk indicators are healthy across assessed categories",
            "Suitable for long-term engagement",
        ]
    elif tier == TIER_MEDIUM:
        summary = "MEDIUM RISK: Entity needs regular oversight"
        details = [
            "Establish regular performance reviews and monitoring",
            "Diversify the supplier base to reduce concentration risk",
            "Implement contingency planning for potential disruptions",
        ]
        risk_assessment = [
            "Some risk indicators are below target",
            "Monitor for deterioration between assessments",
        ]
    elif tier == TIER_HIGH:
        summary = "HIGH RISK: Entity requires active risk mitigation"
        details = [
            "Implement enhanced monitoring and regular audits",
            "Require additional financial guarantees or insurance",
            "Identify alternative entities for critical volume",
        ]
        risk_assessment = [
            "Multiple risk indicators are weak",
            "Disruption is plausible under moderate stress",
        ]
    else:
        summary = "EXTREME RISK: Entity needs immediate review"
        details = [
            "Consider alternative entities with better risk profiles",
            "Reduce exposure until risk indicators recover",
            "Escalate to risk committee for review",
        ]
        risk_assessment = [
            "Severe weakness across risk categories",
            "High likelihood of disruption",
        ]
    return {"tier": tier, "summary": summary, "details": details, "risk_assessment": risk_assessment}


def generate_recommendations(
    overall_score: float,
    category_scores: Mapping[str, CategoryScore],
    config: Optional[RiskEngineConfig] = None,
) -> List[str]:
    """Tier boilerplate plus one recommendation per weak category."""
    config = config or RiskEngineConfig.default()
    recommendations = list(generate_score_interpretation(overall_score, config.tier_thresholds)["details"])
    for category, cs in category_scores.items():
        if cs.score < config.recommendation_threshold:
            recommendations.append(
                f"Address {get_category_display_name(category)} concerns through targeted improvement programs"
            )
    return recommendations


@log_errors("medium")
@log_operation("compute_entity_risk")
def compute_entity_risk(
    entity_id: str,
    metrics: Iterable[Metric],
    category_weights: Optional[Mapping[str, float]] = None,
    config: Optional[RiskEngineConfig] = None,
    as_of: Optional[datetime] = None,
) -> RiskProfile:
    """
    Score one entity from its (possibly partial) metric set.

    Parameters
    ----------
    entity_id : str
        Identifier of the assessed entity.
    metrics : Iterable[Metric]
        Raw metrics from the ingestion layer. Misconfigured metrics are
        excluded and listed on the profile; metrics for categories missing
        from ``category_weights`` are excluded as well.
    category_weights : Mapping[str, float], optional
        Category weight table; defaults to ``config.category_weights``. Its
        keys define the full category set used for coverage.
    config : RiskEngineConfig, optional
    as_of : datetime, optional
        Assessment time (defaults to now, UTC); also the profile timestamp.

    Returns
    -------
    RiskProfile

    Raises
    ------
    InsufficientDataError
        No category had a usable metric.
    """
    config = config or RiskEngineConfig.default()
    weights = dict(category_weights) if category_weights is not None else dict(config.category_weights)
    as_of = as_of or datetime.now(UTC)

    normalized, excluded = normalize_metrics(metrics)

    known = []
    for nm in normalized:
        if nm.category in weights:
            known.append(nm)
        else:
            logger.warning("Excluding metric %s.%s: category not in weight table", nm.category, nm.name)
            excluded.append(f"{nm.category}.{nm.name}: unknown category")

    present, absent = aggregate_categories(known, list(weights.keys()))
    if not present:
        raise InsufficientDataError(f"No risk category present for entity {entity_id}", entity_id=entity_id)

    try:
        overall, effective_weights = compute_overall_score(present, weights)
    except InsufficientDataError as exc:
        raise InsufficientDataError(f"{exc} (entity {entity_id})", entity_id=entity_id) from exc
    weighted = [c for c, w in weights.items() if float(w) > 0]
    coverage = sum(1 for c in weighted if c in present) / len(weighted)

    used = [nm.metric.last_updated for nm in known if nm.metric.last_updated is not None]
    newest = max(used, key=as_utc) if used else None
    recency = compute_recency(newest, as_of, config.staleness_window_days)
    confidence = compute_confidence(coverage, recency, config)

    if absent:
        logger.info("Entity %s scored with partial coverage; missing categories: %s", entity_id, ", ".join(absent))

    return RiskProfile(
        entity_id=entity_id,
        overall_score=overall,
        risk_tier=determine_risk_tier(overall, config.tier_thresholds),
        confidence=confidence,
        category_scores=present,
        recommendations=tuple(generate_recommendations(overall, present, config)),
        timestamp=as_of,
        coverage=coverage,
        category_weights=effective_weights,
        missing_categories=tuple(absent),
        excluded_metrics=tuple(excluded),
    )
