"""Configuration surface for entity_risk_engine.

Module-level defaults are environment-overridable and can be patched with
``configure()``. Every engine call takes an explicit ``RiskEngineConfig``
built from these defaults (``RiskEngineConfig.default()``), a dict or a
YAML file, so several configurations can coexist in one process.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from entity_risk_engine.constants import (
    COMPLIANCE,
    ESG,
    FINANCIAL,
    GEOPOLITICAL,
    HIGHER_IS_BETTER,
    LOWER_IS_BETTER,
    MARKET,
    OPERATIONAL,
    TIER_HIGH,
    TIER_LOW,
    TIER_MEDIUM,
)
from entity_risk_engine.data_objects import ScenarioLibrary
from entity_risk_engine.exceptions import RiskConfigurationError


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


# Metric catalog: category -> metric name -> (min, max, weight, orientation).
# Ranges and within-category weights follow the production scoring model.
_H, _L = HIGHER_IS_BETTER, LOWER_IS_BETTER

DEFAULT_METRIC_CATALOG: Dict[str, Dict[str, Tuple[float, float, float, str]]] = {
    FINANCIAL: {
        "credit_score": (300.0, 850.0, 0.25, _H),
        "liquidity_ratio": (0.5, 3.0, 0.20, _H),
        "debt_to_equity": (0.0, 2.0, 0.15, _L),
        "profit_margin": (0.0, 0.3, 0.15, _H),
        "cash_flow_stability": (0.0, 1.0, 0.15, _H),
        "financial_transparency": (0.0, 1.0, 0.05, _H),
        "audit_quality": (0.0, 1.0, 0.05, _H),
    },
    OPERATIONAL: {
        "delivery_reliability": (0.5, 1.0, 0.20, _H),
        "quality_consistency": (0.5, 1.0, 0.15, _H),
        "capacity_utilization": (0.3, 1.0, 0.15, _H),
        "technology_risk": (0.0, 1.0, 0.15, _L),
        "supply_chain_depth": (0.3, 1.0, 0.15, _H),
        "business_continuity": (0.4, 1.0, 0.10, _H),
        "key_person_risk": (0.0, 1.0, 0.10, _L),
    },
    MARKET: {
        "price_volatility": (0.0, 1.0, 0.20, _L),
        "demand_stability": (0.3, 1.0, 0.18, _H),
        "competitive_position": (0.2, 1.0, 0.15, _H),
        "market_concentration": (0.0, 1.0, 0.12, _L),
        "customer_concentration": (0.0, 1.0, 0.12, _L),
        "sector_exposure": (0.0, 1.0, 0.12, _L),
        "economic_sensitivity": (0.0, 1.0, 0.11, _L),
    },
    COMPLIANCE: {
        "regulatory_compliance": (0.5, 1.0, 1.0, _H),
        "certification_status": (0.5, 1.0, 1.0, _H),
        "legal_history": (0.0, 1.0, 1.0, _L),
        "ethical_standards": (0.5, 1.0, 1.0, _H),
        "data_privacy": (0.5, 1.0, 1.0, _H),
        "labor_compliance": (0.5, 1.0, 1.0, _H),
        "environmental_compliance": (0.5, 1.0, 1.0, _H),
    },
    GEOPOLITICAL: {
        "country_risk": (0.0, 1.0, 1.0, _L),
        "political_stability": (0.3, 1.0, 1.0, _H),
        "currency_risk": (0.0, 1.0, 1.0, _L),
        "trade_policy": (0.0, 1.0, 1.0, _L),
        "sanctions_risk": (0.0, 1.0, 1.0, _L),
        "conflict_exposure": (0.0, 1.0, 1.0, _L),
    },
    ESG: {
        "environmental_score": (0.3, 1.0, 1.0, _H),
        "social_score": (0.3, 1.0, 1.0, _H),
        "governance_score": (0.3, 1.0, 1.0, _H),
        "sustainability_practices": (0.3, 1.0, 1.0, _H),
        "carbon_footprint": (0.0, 1.0, 1.0, _L),
        "stakeholder_relations": (0.3, 1.0, 1.0, _H),
    },
}


_DEFAULTS: dict[str, Any] = {
    "CATEGORY_WEIGHTS": {
        FINANCIAL: 0.25,
        OPERATIONAL: 0.20,
        MARKET: 0.15,
        COMPLIANCE: 0.15,
        GEOPOLITICAL: 0.15,
        ESG: 0.10,
    },
    # Lower bound (inclusive) of each tier; anything below "high" is extreme.
    "TIER_THRESHOLDS": {
        TIER_LOW: 0.8,
        TIER_MEDIUM: 0.6,
        TIER_HIGH: 0.4,
    },
    "CONFIDENCE_SETTINGS": {
        "base": 0.5,
        "coverage_weight": 0.3,
        "recency_weight": 0.2,
        "staleness_window_days": _env_float("RISK_STALENESS_WINDOW_DAYS", 30.0),
    },
    "RECOMMENDATION_THRESHOLD": 0.5,
    "STRESS_SETTINGS": {
        "driver_categories": [COMPLIANCE, GEOPOLITICAL],
        "max_probability_uplift": 1.0,
        "neutral_driver_score": 0.5,
        "min_mitigation": 0.05,
    },
    "SCENARIO_LIBRARY": {
        "version": "2024.1",
        "scenarios": [
            {
                "name": "Economic Recession",
                "base_probability": 0.15,
                "base_impact": 0.25,
                "base_recovery_days": 180,
                "description": "Broad demand contraction and tighter credit",
            },
            {
                "name": "Supply Chain Disruption",
                "base_probability": 0.20,
                "base_impact": 0.35,
                "base_recovery_days": 90,
                "description": "Loss of upstream suppliers or logistics capacity",
            },
            {
                "name": "Regulatory Changes",
                "base_probability": 0.25,
                "base_impact": 0.15,
                "base_recovery_days": 60,
                "description": "New compliance obligations or licensing changes",
            },
            {
                "name": "Currency Volatility",
                "base_probability": 0.30,
                "base_impact": 0.20,
                "base_recovery_days": 45,
                "description": "Sharp moves in settlement or input-cost currencies",
            },
        ],
    },
    "TAIL_RISK_SETTINGS": {
        "min_volatility_points": 2,
        "min_var_points": _env_int("RISK_MIN_VAR_POINTS", 8),
        "history_window": None,
        "min_beta_observations": 3,
    },
    "TREND_SETTINGS": {
        "window": _env_int("RISK_TREND_WINDOW", 6),
        "dead_zone": _env_float("RISK_TREND_DEAD_ZONE", 0.005),
    },
    "ALERT_SETTINGS": {
        "hysteresis_cycles": _env_int("RISK_ALERT_HYSTERESIS_CYCLES", 3),
        "category_threshold": 0.5,
        "category_critical_threshold": 0.4,
    },
    "PORTFOLIO_SETTINGS": {
        "degraded_score": _env_float("RISK_DEGRADED_SCORE", 0.35),
        "fallback_volatility": _env_float("RISK_FALLBACK_VOLATILITY", 0.10),
        "min_correlation_overlap": 3,
        "diversification_warning": 0.15,
        "concentration_warning": 0.25,
        "correlation_warning": 0.5,
    },
}


CATEGORY_WEIGHTS = _DEFAULTS["CATEGORY_WEIGHTS"]
TIER_THRESHOLDS = _DEFAULTS["TIER_THRESHOLDS"]
CONFIDENCE_SETTINGS = _DEFAULTS["CONFIDENCE_SETTINGS"]
RECOMMENDATION_THRESHOLD = float(_DEFAULTS["RECOMMENDATION_THRESHOLD"])
STRESS_SETTINGS = _DEFAULTS["STRESS_SETTINGS"]
SCENARIO_LIBRARY = _DEFAULTS["SCENARIO_LIBRARY"]
TAIL_RISK_SETTINGS = _DEFAULTS["TAIL_RISK_SETTINGS"]
TREND_SETTINGS = _DEFAULTS["TREND_SETTINGS"]
ALERT_SETTINGS = _DEFAULTS["ALERT_SETTINGS"]
PORTFOLIO_SETTINGS = _DEFAULTS["PORTFOLIO_SETTINGS"]


def configure(**overrides: Any) -> None:
    """Programmatically override package configuration values."""
    globals_dict = globals()
    for key, value in overrides.items():
        if key not in _DEFAULTS:
            raise KeyError(f"Unknown config key: {key}")
        globals_dict[key] = value


@dataclass(frozen=True)
class RiskEngineConfig:
    """
    Explicit configuration/context object passed into every engine call.

    Construction methods:
    - default(): current module-level defaults
    - from_dict(): defaults overlaid with a (possibly partial) mapping
    - from_yaml(): ``from_dict`` over a YAML file

    Example:
        config = RiskEngineConfig.from_dict({"alert_hysteresis_cycles": 5})
    """

    category_weights: Dict[str, float] = field(default_factory=dict)
    tier_thresholds: Dict[str, float] = field(default_factory=dict)

    confidence_base: float = 0.5
    coverage_weight: float = 0.3
    recency_weight: float = 0.2
    staleness_window_days: float = 30.0
    recommendation_threshold: float = 0.5

    scenario_library: Optional[ScenarioLibrary] = None
    stress_driver_categories: Tuple[str, ...] = (COMPLIANCE, GEOPOLITICAL)
    max_probability_uplift: float = 1.0
    neutral_driver_score: float = 0.5
    min_mitigation: float = 0.05

    min_volatility_points: int = 2
    min_var_points: int = 8
    history_window: Optional[int] = None
    min_beta_observations: int = 3

    trend_window: int = 6
    trend_dead_zone: float = 0.005

    alert_hysteresis_cycles: int = 3
    category_alert_threshold: float = 0.5
    category_critical_threshold: float = 0.4

    degraded_score: float = 0.35
    fallback_volatility: float = 0.10
    min_correlation_overlap: int = 3
    diversification_warning: float = 0.15
    concentration_warning: float = 0.25
    correlation_warning: float = 0.5

    metric_catalog: Dict[str, Dict[str, Tuple[float, float, float, str]]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_METRIC_CATALOG)
    )

    def __post_init__(self):
        if not self.category_weights:
            object.__setattr__(self, "category_weights", dict(CATEGORY_WEIGHTS))
        if not self.tier_thresholds:
            object.__setattr__(self, "tier_thresholds", dict(TIER_THRESHOLDS))
        if self.scenario_library is None:
            object.__setattr__(self, "scenario_library", ScenarioLibrary.from_dict(SCENARIO_LIBRARY))
        object.__setattr__(self, "stress_driver_categories", tuple(self.stress_driver_categories))
        self.validate()

    @property
    def categories(self) -> Tuple[str, ...]:
        return tuple(self.category_weights.keys())

    def validate(self) -> None:
        """
        Raises:
            RiskConfigurationError: on any inconsistent setting
        """
        if not self.category_weights:
            raise RiskConfigurationError("category_weights cannot be empty")
        for category, weight in self.category_weights.items():
            if float(weight) < 0:
                raise RiskConfigurationError(f"category weight for {category} must be non-negative")
        if sum(float(w) for w in self.category_weights.values()) <= 0:
            raise RiskConfigurationError("category weights must not all be zero")

        missing = {TIER_LOW, TIER_MEDIUM, TIER_HIGH} - set(self.tier_thresholds)
        if missing:
            raise RiskConfigurationError(f"tier_thresholds missing: {', '.join(sorted(missing))}")
        low = float(self.tier_thresholds[TIER_LOW])
        medium = float(self.tier_thresholds[TIER_MEDIUM])
        high = float(self.tier_thresholds[TIER_HIGH])
        if not 0.0 < high < medium < low <= 1.0:
            raise RiskConfigurationError(
                f"tier thresholds must satisfy 0 < high < medium < low <= 1, got {high}/{medium}/{low}"
            )

        if self.staleness_window_days <= 0:
            raise RiskConfigurationError("staleness_window_days must be positive")
        if self.min_volatility_points < 2:
            raise RiskConfigurationError("min_volatility_points must be at least 2")
        if self.min_var_points < self.min_volatility_points:
            raise RiskConfigurationError("min_var_points must be >= min_volatility_points")
        if self.history_window is not None and self.history_window < self.min_volatility_points:
            raise RiskConfigurationError("history_window must cover at least min_volatility_points")
        if self.trend_window < 2:
            raise RiskConfigurationError("trend_window must be at least 2")
        if self.trend_dead_zone < 0:
            raise RiskConfigurationError("trend_dead_zone must be non-negative")
        if self.alert_hysteresis_cycles < 1:
            raise RiskConfigurationError("alert_hysteresis_cycles must be at least 1")
        if not 0.0 < self.min_mitigation <= 1.0:
            raise RiskConfigurationError("min_mitigation must be in (0, 1]")
        if self.max_probability_uplift < 0:
            raise RiskConfigurationError("max_probability_uplift must be non-negative")
        if not 0.0 <= self.degraded_score <= 1.0:
            raise RiskConfigurationError("degraded_score must be in [0, 1]")
        if self.fallback_volatility < 0:
            raise RiskConfigurationError("fallback_volatility must be non-negative")

    @classmethod
    def default(cls) -> "RiskEngineConfig":
        confidence = CONFIDENCE_SETTINGS
        stress = STRESS_SETTINGS
        tail = TAIL_RISK_SETTINGS
        trend = TREND_SETTINGS
        alerts = ALERT_SETTINGS
        portfolio = PORTFOLIO_SETTINGS
        return cls(
            category_weights=dict(CATEGORY_WEIGHTS),
            tier_thresholds=dict(TIER_THRESHOLDS),
            confidence_base=float(confidence["base"]),
            coverage_weight=float(confidence["coverage_weight"]),
            recency_weight=float(confidence["recency_weight"]),
            staleness_window_days=float(confidence["staleness_window_days"]),
            recommendation_threshold=float(RECOMMENDATION_THRESHOLD),
            scenario_library=ScenarioLibrary.from_dict(SCENARIO_LIBRARY),
            stress_driver_categories=tuple(stress["driver_categories"]),
            max_probability_uplift=float(stress["max_probability_uplift"]),
            neutral_driver_score=float(stress["neutral_driver_score"]),
            min_mitigation=float(stress["min_mitigation"]),
            min_volatility_points=int(tail["min_volatility_points"]),
            min_var_points=int(tail["min_var_points"]),
            history_window=tail["history_window"],
            min_beta_observations=int(tail["min_beta_observations"]),
            trend_window=int(trend["window"]),
            trend_dead_zone=float(trend["dead_zone"]),
            alert_hysteresis_cycles=int(alerts["hysteresis_cycles"]),
            category_alert_threshold=float(alerts["category_threshold"]),
            category_critical_threshold=float(alerts["category_critical_threshold"]),
            degraded_score=float(portfolio["degraded_score"]),
            fallback_volatility=float(portfolio["fallback_volatility"]),
            min_correlation_overlap=int(portfolio["min_correlation_overlap"]),
            diversification_warning=float(portfolio["diversification_warning"]),
            concentration_warning=float(portfolio["concentration_warning"]),
            correlation_warning=float(portfolio["correlation_warning"]),
        )

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RiskEngineConfig":
        """Overlay a partial mapping of field names onto the defaults."""
        base = cls.default()
        if not data:
            return base
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise RiskConfigurationError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        values = {f.name: getattr(base, f.name) for f in fields(cls)}
        for key, value in data.items():
            if key == "scenario_library" and isinstance(value, Mapping):
                value = ScenarioLibrary.from_dict(value)
            elif key == "metric_catalog":
                value = {
                    category: {name: tuple(spec) for name, spec in metrics.items()}
                    for category, metrics in value.items()
                }
            elif key in ("category_weights", "tier_thresholds"):
                value = {str(k): float(v) for k, v in value.items()}
            values[key] = value
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RiskEngineConfig":
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise RiskConfigurationError(f"{path}: expected a mapping at top level")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out["scenario_library"] = self.scenario_library.to_dict()
        out["stress_driver_categories"] = list(self.stress_driver_categories)
        out["metric_catalog"] = {
            category: {name: list(spec) for name, spec in metrics.items()}
            for category, metrics in self.metric_catalog.items()
        }
        return out
