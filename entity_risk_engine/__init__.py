"""Public API for entity_risk_engine."""

from entity_risk_engine.alerts import evaluate_alerts
from entity_risk_engine.batch import MetricSource, StaticMetricSource, score_entities
from entity_risk_engine.config import DEFAULT_METRIC_CATALOG, RiskEngineConfig, configure
from entity_risk_engine.data_objects import (
    Alert,
    BatchResult,
    CategoryScore,
    EntityRiskContribution,
    InsufficientHistory,
    Metric,
    NormalizedMetric,
    PortfolioRecommendation,
    PortfolioRisk,
    RiskProfile,
    ScenarioLibrary,
    ScenarioLoss,
    StressResult,
    StressScenario,
    TailRiskMetrics,
    TrendPoint,
)
from entity_risk_engine.engine import RiskEngine
from entity_risk_engine.exceptions import (
    InsufficientDataError,
    InsufficientHistoryError,
    MetricConfigurationError,
    PortfolioConfigurationError,
    RiskConfigurationError,
    RiskEngineError,
)
from entity_risk_engine.normalization import metrics_from_raw, normalize
from entity_risk_engine.portfolio import compute_portfolio_risk, estimate_correlation_matrix
from entity_risk_engine.risk_score import compute_entity_risk, generate_score_interpretation
from entity_risk_engine.storage import AlertStore, InMemoryAlertStore, InMemoryTrendStore, TrendStore
from entity_risk_engine.stress_testing import run_stress_tests
from entity_risk_engine.tail_risk import compute_tail_risk
from entity_risk_engine.trends import TrendTracker

__all__ = [
    "RiskEngine",
    "RiskEngineConfig",
    "configure",
    "DEFAULT_METRIC_CATALOG",
    "normalize",
    "metrics_from_raw",
    "compute_entity_risk",
    "generate_score_interpretation",
    "run_stress_tests",
    "compute_tail_risk",
    "TrendTracker",
    "compute_portfolio_risk",
    "estimate_correlation_matrix",
    "evaluate_alerts",
    "score_entities",
    "MetricSource",
    "StaticMetricSource",
    "TrendStore",
    "AlertStore",
    "InMemoryTrendStore",
    "InMemoryAlertStore",
    "Metric",
    "NormalizedMetric",
    "CategoryScore",
    "RiskProfile",
    "TrendPoint",
    "StressScenario",
    "ScenarioLibrary",
    "StressResult",
    "TailRiskMetrics",
    "InsufficientHistory",
    "EntityRiskContribution",
    "ScenarioLoss",
    "PortfolioRecommendation",
    "PortfolioRisk",
    "Alert",
    "BatchResult",
    "RiskEngineError",
    "RiskConfigurationError",
    "MetricConfigurationError",
    "InsufficientDataError",
    "InsufficientHistoryError",
    "PortfolioConfigurationError",
]
