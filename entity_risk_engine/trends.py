"""
Trend tracking.

Maintains the append-only per-entity score history and classifies the
recent direction of travel as improving, stable or declining.

Contract notes:
- ``append_point`` is idempotent per timestamp: a second point with the same
  (entity, timestamp) replaces the first instead of duplicating it.
- History is always returned ordered by timestamp, whatever the arrival order.
- ``classify`` fits an OLS line to the overall score over the last
  ``window`` points (x = assessment index) and reports ``stable`` while
  ``|slope|`` stays inside the dead zone.
"""

from __future__ import annotations

import bisect
import logging
from typing import List, Optional

import numpy as np
import statsmodels.api as sm

from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.constants import TREND_DECLINING, TREND_IMPROVING, TREND_STABLE
from entity_risk_engine.data_objects import TrendPoint
from entity_risk_engine.storage import InMemoryTrendStore, TrendStore

logger = logging.getLogger(__name__)


def regression_slope(values: List[float]) -> float:
    """OLS slope of ``values`` against their index; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    y = np.asarray(values, dtype=float)
    if float(np.ptp(y)) == 0.0:
        return 0.0
    X = sm.add_constant(np.arange(len(y), dtype=float))
    model = sm.OLS(y, X).fit()
    return float(model.params[1])


class TrendTracker:
    """Append-only score history per entity, backed by a ``TrendStore``."""

    def __init__(self, store: Optional[TrendStore] = None, config: Optional[RiskEngineConfig] = None):
        self.store = store if store is not None else InMemoryTrendStore()
        self.config = config or RiskEngineConfig.default()

    def append_point(self, entity_id: str, point: TrendPoint) -> None:
        if point.entity_id != entity_id:
            raise ValueError(f"TrendPoint for {point.entity_id} cannot be appended to {entity_id}")

        points = self.store.get(entity_id)
        if not points or point.timestamp > points[-1].timestamp:
            self.store.append(point)
            return

        timestamps = [p.timestamp for p in points]
        idx = bisect.bisect_left(timestamps, point.timestamp)
        if idx < len(points) and points[idx].timestamp == point.timestamp:
            logger.debug("Replacing trend point for %s at %s", entity_id, point.timestamp)
            points[idx] = point
        else:
            points.insert(idx, point)
        self.store.put(entity_id, points)

    def history(self, entity_id: str, window: Optional[int] = None) -> List[TrendPoint]:
        points = self.store.get(entity_id)
        if window is not None:
            if window <= 0:
                raise ValueError("window must be positive")
            points = points[-window:]
        return points

    def slope(self, entity_id: str, window: Optional[int] = None) -> float:
        window = window if window is not None else self.config.trend_window
        return regression_slope([p.overall_score for p in self.history(entity_id, window)])

    def classify(self, entity_id: str, window: Optional[int] = None) -> str:
        slope = self.slope(entity_id, window)
        if abs(slope) < self.config.trend_dead_zone:
            return TREND_STABLE
        return TREND_IMPROVING if slope > 0 else TREND_DECLINING
