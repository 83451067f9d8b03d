"""
RiskEngine: the collaborator-facing entry point.

Bundles an explicit ``RiskEngineConfig`` with the storage handles for
trend history and alerts, and exposes the engine operations on top of
the stateless scoring modules. Several engines with different
configurations or stores can live in one process.

Example:
    engine = RiskEngine(RiskEngineConfig.from_yaml("risk.yaml"))
    profile = engine.assess_entity("SUP-001", metrics)
    label = engine.classify_trend("SUP-001")
"""

from __future__ import annotations

import threading
from datetime import datetime, UTC
from typing import Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd

from entity_risk_engine._logging import log_operation, risk_logger
from entity_risk_engine.alerts import evaluate_alerts
from entity_risk_engine.batch import MetricSource, score_entities, score_or_unscored
from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.data_objects import (
    Alert,
    BatchResult,
    InsufficientHistory,
    Metric,
    PortfolioRisk,
    RiskProfile,
    ScenarioLibrary,
    StressResult,
    TailRiskMetrics,
    TrendPoint,
)
from entity_risk_engine.exceptions import InsufficientHistoryError
from entity_risk_engine.portfolio import MatrixLike, compute_portfolio_risk, estimate_correlation_matrix
from entity_risk_engine.risk_score import compute_entity_risk
from entity_risk_engine.storage import AlertStore, InMemoryAlertStore, TrendStore
from entity_risk_engine.stress_testing import run_stress_tests
from entity_risk_engine.tail_risk import compute_tail_risk
from entity_risk_engine.trends import TrendTracker


class RiskEngine:
    def __init__(
        self,
        config: Optional[RiskEngineConfig] = None,
        trend_store: Optional[TrendStore] = None,
        alert_store: Optional[AlertStore] = None,
    ):
        self.config = config or RiskEngineConfig.default()
        self.trends = TrendTracker(trend_store, self.config)
        self.alert_store = alert_store if alert_store is not None else InMemoryAlertStore()

    # ------------------------------------------------------------------
    # Entity-level operations
    # ------------------------------------------------------------------

    def compute_entity_risk(
        self,
        entity_id: str,
        metrics: Iterable[Metric],
        category_weights: Optional[Mapping[str, float]] = None,
        as_of: Optional[datetime] = None,
    ) -> RiskProfile:
        """Score one entity; raises ``InsufficientDataError`` when no category is present."""
        return compute_entity_risk(entity_id, metrics, category_weights, self.config, as_of)

    def run_stress_tests(
        self,
        profile: RiskProfile,
        scenario_library: Optional[ScenarioLibrary] = None,
        exposure: float = 1.0,
    ) -> List[StressResult]:
        return run_stress_tests(profile, scenario_library, exposure, self.config)

    def compute_tail_risk(
        self,
        entity_id: str,
        history_window: Optional[int] = None,
        benchmark: Optional[Union[Sequence[TrendPoint], pd.Series]] = None,
    ) -> Union[TailRiskMetrics, InsufficientHistory]:
        """Tail statistics from the stored history, or an explicit ``InsufficientHistory``."""
        history = self.trends.history(entity_id)
        try:
            return compute_tail_risk(history, self.config, entity_id, history_window, benchmark)
        except InsufficientHistoryError as e:
            return InsufficientHistory(
                entity_id=entity_id,
                available=e.available,
                required=e.required,
                message=str(e),
            )

    def append_trend_point(self, entity_id: str, point: TrendPoint) -> None:
        self.trends.append_point(entity_id, point)

    def classify_trend(self, entity_id: str, window: Optional[int] = None) -> str:
        return self.trends.classify(entity_id, window)

    def trend_history(self, entity_id: str, window: Optional[int] = None) -> List[TrendPoint]:
        return self.trends.history(entity_id, window)

    def evaluate_alerts(self, profile: RiskProfile, active_alerts: Optional[Sequence[Alert]] = None) -> List[Alert]:
        """
        Reconcile alerts for ``profile``.

        With ``active_alerts`` omitted the entity's alerts are read from and
        written back to the alert store.
        """
        if active_alerts is not None:
            return evaluate_alerts(profile, active_alerts, self.config)
        alerts = evaluate_alerts(profile, self.alert_store.get_alerts(profile.entity_id), self.config)
        self.alert_store.put_alerts(profile.entity_id, alerts)
        return alerts

    @log_operation("assess_entity")
    def assess_entity(
        self,
        entity_id: str,
        metrics: Iterable[Metric],
        as_of: Optional[datetime] = None,
    ) -> RiskProfile:
        """
        One full assessment cycle: score, record the trend point, update alerts.

        Never raises for missing data: an entity with no usable category comes
        back unscored (confidence 0) and its history and alerts are left as is.
        """
        profile = score_or_unscored(entity_id, metrics, self.config, as_of or datetime.now(UTC))
        if profile.is_scored:
            self.append_trend_point(entity_id, TrendPoint.from_profile(profile))
        else:
            risk_logger.warning("Entity %s unscored: no risk category present", entity_id)
        self.evaluate_alerts(profile)
        return profile

    def tail_risk_for(self, entity_ids: Sequence[str], history_window: Optional[int] = None):
        """``compute_tail_risk`` for several entities, keyed by entity id."""
        return {eid: self.compute_tail_risk(eid, history_window) for eid in entity_ids}

    # ------------------------------------------------------------------
    # Multi-entity operations
    # ------------------------------------------------------------------

    def score_entities(
        self,
        entity_ids: Sequence[str],
        source: MetricSource,
        deadline: Optional[float] = None,
        max_workers: int = 8,
        cancel_event: Optional[threading.Event] = None,
        as_of: Optional[datetime] = None,
    ) -> BatchResult:
        return score_entities(entity_ids, source, self.config, deadline, max_workers, cancel_event, as_of)

    def estimate_correlation_matrix(self, entity_ids: Sequence[str]) -> pd.DataFrame:
        """Historical correlation of score changes across ``entity_ids``."""
        histories = {eid: self.trends.history(eid) for eid in entity_ids}
        return estimate_correlation_matrix(histories, config=self.config)

    def compute_portfolio_risk(
        self,
        profiles: Sequence[RiskProfile],
        exposures,
        correlation_matrix: MatrixLike,
        volatilities=None,
        stress_results=None,
        as_of: Optional[datetime] = None,
    ) -> PortfolioRisk:
        """
        Aggregate ``profiles`` into a ``PortfolioRisk``.

        When ``volatilities`` is omitted each entity's volatility comes from
        its stored trend history; entities with too little history use the
        configured fallback volatility.
        """
        if volatilities is None:
            volatilities = {}
            for p in profiles:
                tail = self.compute_tail_risk(p.entity_id)
                if isinstance(tail, TailRiskMetrics):
                    volatilities[p.entity_id] = tail.volatility
        return compute_portfolio_risk(
            profiles,
            exposures,
            correlation_matrix,
            volatilities=volatilities,
            stress_results=stress_results,
            config=self.config,
            as_of=as_of,
        )
