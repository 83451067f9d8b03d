"""
Metric normalization.

Maps raw, differently-scaled metric values onto a bounded [0, 1] score that
is always oriented so 1 = healthiest / lowest risk.

Called by:
- ``risk_score.compute_entity_risk`` before category aggregation.
- Ingestion adapters through ``metrics_from_raw``.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from entity_risk_engine._vendor import _to_float
from entity_risk_engine.constants import HIGHER_IS_BETTER, LOWER_IS_BETTER, VALID_ORIENTATIONS
from entity_risk_engine.data_objects import Metric, NormalizedMetric
from entity_risk_engine.exceptions import MetricConfigurationError

logger = logging.getLogger(__name__)


def _clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def normalize(value: float, min_value: float, max_value: float, orientation: str = HIGHER_IS_BETTER) -> float:
    """
    Rescale ``value`` from ``[min_value, max_value]`` onto [0, 1].

    Values outside the range are clamped, not rejected. For
    ``lower_is_better`` metrics the raw value is mirrored inside the range
    (``max + min - value``) before the same clamp formula, so the result is
    exactly ``1 - normalize(value, ..., higher_is_better)``.

    Raises:
        MetricConfigurationError: if ``max_value <= min_value`` or the
            orientation is unknown
    """
    lo, hi = float(min_value), float(max_value)
    if not (math.isfinite(lo) and math.isfinite(hi)) or hi <= lo:
        raise MetricConfigurationError(f"invalid range (min={min_value}, max={max_value}); max must exceed min")
    if orientation not in VALID_ORIENTATIONS:
        raise MetricConfigurationError(f"unknown orientation {orientation!r}")

    v = float(value)
    if orientation == LOWER_IS_BETTER:
        v = hi + lo - v
    return _clamp((v - lo) / (hi - lo))


def normalize_metric(metric: Metric) -> NormalizedMetric:
    """Validate one metric and attach its normalized score."""
    metric.validate()
    score = normalize(metric.value, metric.min_value, metric.max_value, metric.orientation)
    return NormalizedMetric(metric=metric, score=score)


def normalize_metrics(metrics: Iterable[Metric]) -> Tuple[List[NormalizedMetric], List[str]]:
    """
    Normalize a metric set, excluding misconfigured metrics.

    A duplicate ``(category, name)`` keeps the most recently updated value.

    Returns:
        (normalized, excluded) where ``excluded`` holds ``"category.name: reason"``
        strings for every metric that was dropped
    """
    normalized: Dict[Tuple[str, str], NormalizedMetric] = {}
    excluded: List[str] = []

    for metric in metrics:
        label = f"{metric.category}.{metric.name}"
        try:
            nm = normalize_metric(metric)
        except MetricConfigurationError as exc:
            logger.warning("Excluding metric %s: %s", label, exc)
            excluded.append(f"{label}: {exc}")
            continue

        key = (metric.category, metric.name)
        prior = normalized.get(key)
        if prior is not None and _is_newer(prior.metric.last_updated, metric.last_updated):
            continue
        normalized[key] = nm

    return list(normalized.values()), excluded


def _is_newer(existing: Optional[datetime], candidate: Optional[datetime]) -> bool:
    """True when ``existing`` should be kept over ``candidate``."""
    if existing is None:
        return False
    if candidate is None:
        return True
    return existing > candidate


def metrics_from_raw(
    category: str,
    raw_values: Mapping[str, Any],
    last_updated: Optional[datetime] = None,
    catalog: Optional[Mapping[str, Mapping[str, Tuple[float, float, float, str]]]] = None,
) -> List[Metric]:
    """
    Build ``Metric`` records from a raw ``{name: value}`` mapping using the
    metric catalog's range, weight and orientation for each name.

    Unknown names and non-numeric values are skipped with a warning; a
    ``None`` value means "not supplied" and is skipped silently.
    """
    if catalog is None:
        from entity_risk_engine.config import DEFAULT_METRIC_CATALOG

        catalog = DEFAULT_METRIC_CATALOG

    specs = catalog.get(category)
    if specs is None:
        logger.warning("No metric catalog entry for category %s; %d values skipped", category, len(raw_values))
        return []

    metrics: List[Metric] = []
    for name, raw in raw_values.items():
        if raw is None:
            continue
        spec = specs.get(name)
        if spec is None:
            logger.warning("Unknown metric %s.%s skipped", category, name)
            continue
        value = _to_float(raw)
        if value is None:
            logger.warning("Non-numeric value for %s.%s skipped: %r", category, name, raw)
            continue
        lo, hi, weight, orientation = spec
        metrics.append(
            Metric(
                category=category,
                name=name,
                value=value,
                min_value=float(lo),
                max_value=float(hi),
                weight=float(weight),
                orientation=orientation,
                last_updated=last_updated,
            )
        )
    return metrics
