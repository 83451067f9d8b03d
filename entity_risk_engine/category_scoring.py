"""
Category aggregation.

Combines the normalized metrics of one risk category into a ``CategoryScore``
using per-metric weights. Weights need not sum to 1; they are renormalized
over the metrics actually present. A category with no metrics is *absent*
(``None``), never a neutral 0.5.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from entity_risk_engine.data_objects import CategoryScore, NormalizedMetric


def aggregate_category(category: str, metrics: Sequence[NormalizedMetric]) -> Optional[CategoryScore]:
    """
    Weighted mean ``sum(score_i * w_i) / sum(w_i)`` over the metrics of
    ``category`` present in ``metrics``.

    Returns ``None`` when the category has no metrics.
    """
    present = [m for m in metrics if m.category == category]
    if not present:
        return None

    total_weight = sum(m.weight for m in present)
    score = sum(m.score * m.weight for m in present) / total_weight
    return CategoryScore(
        category=category,
        score=max(0.0, min(1.0, score)),
        metric_count=len(present),
        effective_weight=total_weight,
        metric_scores={m.name: m.score for m in present},
    )


def group_by_category(metrics: Iterable[NormalizedMetric]) -> Dict[str, List[NormalizedMetric]]:
    grouped: Dict[str, List[NormalizedMetric]] = defaultdict(list)
    for m in metrics:
        grouped[m.category].append(m)
    return dict(grouped)


def aggregate_categories(
    metrics: Iterable[NormalizedMetric],
    categories: Sequence[str],
) -> Tuple[Dict[str, CategoryScore], List[str]]:
    """
    Score every defined category.

    Returns:
        (present, absent): scores keyed by category for categories with at
        least one metric, and the ordered list of absent categories
    """
    grouped = group_by_category(metrics)
    present: Dict[str, CategoryScore] = {}
    absent: List[str] = []
    for category in categories:
        cs = aggregate_category(category, grouped.get(category, []))
        if cs is None:
            absent.append(category)
        else:
            present[category] = cs
    return present, absent
