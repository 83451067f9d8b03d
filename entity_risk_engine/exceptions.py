"""
Error types raised by the risk scoring and aggregation engine.

Every concrete error also subclasses ``ValueError`` so callers that only
guard against bad inputs keep working.
"""

from __future__ import annotations

from typing import Optional


class RiskEngineError(Exception):
    """Base class for all engine errors."""


class RiskConfigurationError(RiskEngineError, ValueError):
    """Engine configuration (weights, thresholds, scenarios) is invalid."""


class MetricConfigurationError(RiskEngineError, ValueError):
    """A metric has invalid bounds, weight or value and must be excluded."""

    def __init__(self, message: str, metric_name: Optional[str] = None, category: Optional[str] = None):
        super().__init__(message)
        self.metric_name = metric_name
        self.category = category


class InsufficientDataError(RiskEngineError, ValueError):
    """No risk category had a usable metric, so no composite score exists."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity_id = entity_id


class InsufficientHistoryError(RiskEngineError, ValueError):
    """Too few trend points to compute a tail-risk statistic."""

    def __init__(self, message: str, entity_id: Optional[str] = None, available: int = 0, required: int = 0):
        super().__init__(message)
        self.entity_id = entity_id
        self.available = available
        self.required = required


class PortfolioConfigurationError(RiskEngineError, ValueError):
    """Correlation matrix, exposures or dimensions are malformed."""
