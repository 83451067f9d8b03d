"""
Core Data Objects Module

Data structures flowing through the entity risk pipeline.

Classes:
- Metric / NormalizedMetric: raw and normalized per-entity inputs
- CategoryScore / RiskProfile: per-assessment derived snapshots (immutable)
- TrendPoint: append-only score history record
- StressScenario / ScenarioLibrary / StressResult: stress testing config and output
- TailRiskMetrics / InsufficientHistory: tail-risk output
- EntityRiskContribution / ScenarioLoss / PortfolioRecommendation / PortfolioRisk:
  portfolio aggregation output
- Alert: threshold alert with hysteresis state
- BatchResult: output of a multi-entity scoring run

Usage: every result object exposes ``to_dict()`` returning JSON-safe output.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Dict, List, Optional, Any, Tuple, Mapping, Sequence
import math

from entity_risk_engine._vendor import make_json_safe
from entity_risk_engine.constants import (
    HIGHER_IS_BETTER,
    VALID_ORIENTATIONS,
    STATUS_SCORED,
    STATUS_UNSCORED,
)
from entity_risk_engine.exceptions import MetricConfigurationError, RiskConfigurationError


def as_utc(ts: datetime) -> datetime:
    """Naive timestamps are taken as UTC; aware ones are converted."""
    return ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts.astimezone(UTC)


@dataclass(frozen=True)
class Metric:
    """
    A single raw business metric supplied by the data-ingestion layer.

    Bounds are validated lazily through ``validate()`` so that a misconfigured
    metric can reach the normalizer and be excluded there, instead of
    aborting the whole ingestion batch.

    Parameters:
    - category: risk category the metric belongs to (e.g. "financial")
    - name: metric name, unique within its category
    - value: raw value, any scale
    - min_value/max_value: expected valid range (min < max)
    - weight: relative importance within the category (> 0)
    - orientation: "higher_is_better" or "lower_is_better"
    - last_updated: when the source last refreshed this value
    """

    category: str
    name: str
    value: float
    min_value: float
    max_value: float
    weight: float = 1.0
    orientation: str = HIGHER_IS_BETTER
    last_updated: Optional[datetime] = None

    def validate(self) -> None:
        """
        Raises:
            MetricConfigurationError: non-finite value/bounds, ``max <= min``,
                non-positive weight or unknown orientation
        """
        label = f"{self.category}.{self.name}"
        for attr in ("value", "min_value", "max_value", "weight"):
            raw = getattr(self, attr)
            try:
                numeric = float(raw)
            except (TypeError, ValueError) as exc:
                raise MetricConfigurationError(
                    f"{label}: {attr} must be numeric, got {raw!r}", self.name, self.category
                ) from exc
            if not math.isfinite(numeric):
                raise MetricConfigurationError(f"{label}: {attr} must be finite", self.name, self.category)
        if float(self.max_value) <= float(self.min_value):
            raise MetricConfigurationError(
                f"{label}: invalid range (min={self.min_value}, max={self.max_value}); max must exceed min",
                self.name,
                self.category,
            )
        if float(self.weight) <= 0:
            raise MetricConfigurationError(f"{label}: weight must be positive, got {self.weight}", self.name, self.category)
        if self.orientation not in VALID_ORIENTATIONS:
            raise MetricConfigurationError(
                f"{label}: unknown orientation {self.orientation!r}", self.name, self.category
            )

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "category": self.category,
            "name": self.name,
            "value": self.value,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "weight": self.weight,
            "orientation": self.orientation,
            "last_updated": self.last_updated,
        })


@dataclass(frozen=True)
class NormalizedMetric:
    """A validated metric with its [0, 1] score (1 = lowest risk)."""

    metric: Metric
    score: float

    @property
    def category(self) -> str:
        return self.metric.category

    @property
    def name(self) -> str:
        return self.metric.name

    @property
    def weight(self) -> float:
        return float(self.metric.weight)


@dataclass(frozen=True)
class CategoryScore:
    category: str
    score: float
    metric_count: int
    effective_weight: float
    metric_scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "category": self.category,
            "score": self.score,
            "metric_count": self.metric_count,
            "effective_weight": self.effective_weight,
            "metric_scores": self.metric_scores,
        })


@dataclass(frozen=True)
class RiskProfile:
    """
    Immutable per-assessment snapshot for one entity.

    An unscored profile (``status == "unscored"``) has no overall score or
    tier and zero confidence; it is distinct from a low-but-valid score.
    ``degraded`` marks profiles built from missing or timed-out inputs.
    """

    entity_id: str
    overall_score: Optional[float]
    risk_tier: Optional[str]
    confidence: float
    category_scores: Dict[str, CategoryScore]
    recommendations: Tuple[str, ...]
    timestamp: datetime
    coverage: float = 0.0
    category_weights: Dict[str, float] = field(default_factory=dict)
    missing_categories: Tuple[str, ...] = ()
    excluded_metrics: Tuple[str, ...] = ()
    status: str = STATUS_SCORED
    degraded: bool = False
    degraded_reason: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))

    @property
    def is_scored(self) -> bool:
        return self.status == STATUS_SCORED and self.overall_score is not None

    @property
    def partial_coverage(self) -> bool:
        return self.coverage < 1.0

    def category_score(self, category: str) -> Optional[float]:
        cs = self.category_scores.get(category)
        return cs.score if cs is not None else None

    @classmethod
    def unscored(
        cls,
        entity_id: str,
        timestamp: datetime,
        missing_categories: Sequence[str] = (),
        excluded_metrics: Sequence[str] = (),
        degraded: bool = False,
        degraded_reason: Optional[str] = None,
    ) -> "RiskProfile":
        return cls(
            entity_id=entity_id,
            overall_score=None,
            risk_tier=None,
            confidence=0.0,
            category_scores={},
            recommendations=(),
            timestamp=timestamp,
            coverage=0.0,
            missing_categories=tuple(missing_categories),
            excluded_metrics=tuple(excluded_metrics),
            status=STATUS_UNSCORED,
            degraded=degraded,
            degraded_reason=degraded_reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "entity_id": self.entity_id,
            "status": self.status,
            "overall_score": self.overall_score,
            "risk_tier": self.risk_tier,
            "confidence": self.confidence,
            "coverage": self.coverage,
            "partial_coverage": self.partial_coverage,
            "category_scores": {k: v.to_dict() for k, v in self.category_scores.items()},
            "category_weights": self.category_weights,
            "missing_categories": self.missing_categories,
            "excluded_metrics": self.excluded_metrics,
            "recommendations": self.recommendations,
            "timestamp": self.timestamp,
            "degraded": self.degraded,
            "degraded_reason": self.degraded_reason,
        })


@dataclass(frozen=True)
class TrendPoint:
    entity_id: str
    timestamp: datetime
    overall_score: float
    category_scores: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))

    @classmethod
    def from_profile(cls, profile: RiskProfile) -> "TrendPoint":
        if not profile.is_scored:
            raise ValueError(f"Cannot record trend point for unscored entity {profile.entity_id}")
        return cls(
            entity_id=profile.entity_id,
            timestamp=profile.timestamp,
            overall_score=float(profile.overall_score),
            category_scores={k: v.score for k, v in profile.category_scores.items()},
        )

    def to_log_record(self) -> Dict[str, Any]:
        """Persisted trend-log format: (timestamp, overall score, category snapshot)."""
        return make_json_safe({
            "entity_id": self.entity_id,
            "timestamp": self.timestamp,
            "overall_score": self.overall_score,
            "category_scores": self.category_scores,
        })


@dataclass(frozen=True)
class StressScenario:
    name: str
    base_probability: float
    base_impact: float
    base_recovery_days: float
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise RiskConfigurationError("Stress scenario name cannot be empty")
        if not 0.0 <= float(self.base_probability) <= 1.0:
            raise RiskConfigurationError(f"{self.name}: base_probability must be in [0, 1]")
        if float(self.base_impact) < 0:
            raise RiskConfigurationError(f"{self.name}: base_impact must be non-negative")
        if float(self.base_recovery_days) <= 0:
            raise RiskConfigurationError(f"{self.name}: base_recovery_days must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StressScenario":
        return cls(
            name=str(data["name"]),
            base_probability=float(data["base_probability"]),
            base_impact=float(data["base_impact"]),
            base_recovery_days=float(data["base_recovery_days"]),
            description=str(data.get("description", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "base_probability": self.base_probability,
            "base_impact": self.base_impact,
            "base_recovery_days": self.base_recovery_days,
            "description": self.description,
        }


@dataclass(frozen=True)
class ScenarioLibrary:
    """Fixed, versioned set of stress scenarios."""

    version: str
    scenarios: Tuple[StressScenario, ...]

    def __post_init__(self):
        names = [s.name for s in self.scenarios]
        if len(names) != len(set(names)):
            raise RiskConfigurationError(f"Scenario library {self.version} has duplicate scenario names")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScenarioLibrary":
        return cls(
            version=str(data.get("version", "custom")),
            scenarios=tuple(StressScenario.from_dict(s) for s in data.get("scenarios", [])),
        )

    def names(self) -> List[str]:
        return [s.name for s in self.scenarios]

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "scenarios": [s.to_dict() for s in self.scenarios]}


@dataclass(frozen=True)
class StressResult:
    entity_id: str
    scenario: str
    probability: float
    impact: float
    mitigation_score: float
    estimated_loss: float
    recovery_days: float
    library_version: str

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "entity_id": self.entity_id,
            "scenario": self.scenario,
            "probability": self.probability,
            "impact": self.impact,
            "mitigation_score": self.mitigation_score,
            "estimated_loss": self.estimated_loss,
            "recovery_days": self.recovery_days,
            "library_version": self.library_version,
        })


@dataclass(frozen=True)
class TailRiskMetrics:
    """
    Tail statistics derived from an entity's score history.

    VaR/ES values are expressed in loss space (``1 - score``). When the
    history is shorter than the reliability threshold they are ``None``
    and ``var_reliable`` is False, with the reason in ``warnings``.
    """

    entity_id: str
    observations: int
    volatility: float
    max_drawdown: float
    mean_delta: float
    value_at_risk: Dict[str, Optional[float]]
    expected_shortfall: Dict[str, Optional[float]]
    beta: Optional[float] = None
    risk_adjusted_trend: Optional[float] = None
    var_reliable: bool = False
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "entity_id": self.entity_id,
            "observations": self.observations,
            "volatility": self.volatility,
            "max_drawdown": self.max_drawdown,
            "mean_delta": self.mean_delta,
            "value_at_risk": self.value_at_risk,
            "expected_shortfall": self.expected_shortfall,
            "beta": self.beta,
            "risk_adjusted_trend": self.risk_adjusted_trend,
            "var_reliable": self.var_reliable,
            "warnings": self.warnings,
        })


@dataclass(frozen=True)
class InsufficientHistory:
    """Explicit "not enough data" result returned instead of a fabricated statistic."""

    entity_id: str
    available: int
    required: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "insufficient_history": True,
            "available": self.available,
            "required": self.required,
            "message": self.message,
        }


@dataclass(frozen=True)
class EntityRiskContribution:
    entity_id: str
    exposure: float
    score: float
    volatility: float
    contribution: float
    marginal_risk: float
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "entity_id": self.entity_id,
            "exposure": self.exposure,
            "score": self.score,
            "volatility": self.volatility,
            "contribution": self.contribution,
            "marginal_risk": self.marginal_risk,
            "degraded": self.degraded,
        })


@dataclass(frozen=True)
class ScenarioLoss:
    scenario: str
    probability_of_loss: float
    expected_loss_rate: float
    expected_loss: float
    worst_case_loss: float
    entity_losses: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "scenario": self.scenario,
            "probability_of_loss": self.probability_of_loss,
            "expected_loss_rate": self.expected_loss_rate,
            "expected_loss": self.expected_loss,
            "worst_case_loss": self.worst_case_loss,
            "entity_losses": self.entity_losses,
        })


@dataclass(frozen=True)
class PortfolioRecommendation:
    type: str
    priority: str
    description: str
    expected_benefit: str
    implementation: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "type": self.type,
            "priority": self.priority,
            "description": self.description,
            "expected_benefit": self.expected_benefit,
            "implementation": self.implementation,
        })


@dataclass(frozen=True)
class PortfolioRisk:
    """Derived, disposable portfolio view; the engine does not persist it."""

    entity_ids: Tuple[str, ...]
    total_exposure: float
    overall_risk: float
    portfolio_volatility: float
    diversification_benefit: float
    concentration_index: float
    herfindahl: float
    correlation_matrix: Tuple[Tuple[float, ...], ...]
    contributions: Tuple[EntityRiskContribution, ...]
    scenario_analysis: Tuple[ScenarioLoss, ...]
    recommendations: Tuple[PortfolioRecommendation, ...]
    timestamp: datetime
    degraded: bool = False
    degraded_entities: Tuple[str, ...] = ()

    def contribution_for(self, entity_id: str) -> Optional[EntityRiskContribution]:
        for c in self.contributions:
            if c.entity_id == entity_id:
                return c
        return None

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "entity_ids": self.entity_ids,
            "total_exposure": self.total_exposure,
            "overall_risk": self.overall_risk,
            "portfolio_volatility": self.portfolio_volatility,
            "diversification_benefit": self.diversification_benefit,
            "concentration_index": self.concentration_index,
            "herfindahl": self.herfindahl,
            "correlation_matrix": self.correlation_matrix,
            "contributions": [c.to_dict() for c in self.contributions],
            "scenario_analysis": [s.to_dict() for s in self.scenario_analysis],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "timestamp": self.timestamp,
            "degraded": self.degraded,
            "degraded_entities": self.degraded_entities,
        })


@dataclass(frozen=True)
class Alert:
    """
    Threshold alert for one entity.

    Alerts are never deleted: recovery only flips ``is_active`` to False and
    stamps ``deactivated_at`` once the score has been back above
    ``threshold`` for the configured number of consecutive assessments.
    """

    alert_id: str
    entity_id: str
    alert_type: str
    severity: str
    title: str
    description: str
    threshold: float
    triggering_score: float
    created_at: datetime
    recommendations: Tuple[str, ...] = ()
    is_active: bool = True
    consecutive_recoveries: int = 0
    last_evaluated_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.entity_id, self.alert_type, self.severity)

    def to_log_record(self) -> Dict[str, Any]:
        """Persisted alert-log format: (entity, type, createdAt, deactivatedAt|null)."""
        return make_json_safe({
            "alert_id": self.alert_id,
            "entity_id": self.entity_id,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "created_at": self.created_at,
            "deactivated_at": self.deactivated_at,
        })

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "alert_id": self.alert_id,
            "entity_id": self.entity_id,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "threshold": self.threshold,
            "triggering_score": self.triggering_score,
            "recommendations": self.recommendations,
            "created_at": self.created_at,
            "is_active": self.is_active,
            "consecutive_recoveries": self.consecutive_recoveries,
            "last_evaluated_at": self.last_evaluated_at,
            "deactivated_at": self.deactivated_at,
        })


@dataclass(frozen=True)
class BatchResult:
    """Profiles for every requested entity; degraded ones are listed, never dropped."""

    profiles: Dict[str, RiskProfile]
    degraded: Tuple[str, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.degraded)

    def to_dict(self) -> Dict[str, Any]:
        return make_json_safe({
            "profiles": {k: v.to_dict() for k, v in self.profiles.items()},
            "degraded": self.degraded,
            "partial": self.partial,
        })
