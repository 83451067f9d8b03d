"""Tests for metric normalization and raw metric ingestion."""

from datetime import timedelta

import pytest

from entity_risk_engine import Metric, MetricConfigurationError, metrics_from_raw, normalize
from entity_risk_engine.constants import HIGHER_IS_BETTER, LOWER_IS_BETTER
from entity_risk_engine.normalization import normalize_metric, normalize_metrics


class TestNormalize:

    def test_value_at_or_below_min_scores_zero(self):
        assert normalize(300, 300, 850) == 0.0
        assert normalize(100, 300, 850) == 0.0

    def test_value_at_or_above_max_scores_one(self):
        assert normalize(850, 300, 850) == 1.0
        assert normalize(900, 300, 850) == 1.0

    def test_linear_inside_range(self):
        assert normalize(750, 300, 850) == pytest.approx(450 / 550)

    def test_monotonic_non_decreasing(self):
        values = [-1, 0, 0.1, 0.5, 0.9, 1, 2]
        scores = [normalize(v, 0, 1) for v in values]
        assert scores == sorted(scores)

    @pytest.mark.parametrize("value", [-5, 0, 0.3, 1.2, 2, 7])
    def test_orientation_exactly_inverts(self, value):
        higher = normalize(value, 0, 2, HIGHER_IS_BETTER)
        lower = normalize(value, 0, 2, LOWER_IS_BETTER)
        assert lower == pytest.approx(1 - higher)

    def test_lower_is_better_low_value_is_healthy(self):
        assert normalize(0.0, 0.0, 2.0, LOWER_IS_BETTER) == 1.0

    @pytest.mark.parametrize("lo,hi", [(1, 1), (2, 1)])
    def test_invalid_range_raises(self, lo, hi):
        with pytest.raises(MetricConfigurationError):
            normalize(0.5, lo, hi)

    def test_unknown_orientation_raises(self):
        with pytest.raises(MetricConfigurationError):
            normalize(0.5, 0, 1, "sideways")


class TestNormalizeMetrics:

    def test_misconfigured_metric_is_excluded_not_defaulted(self, as_of):
        metrics = [
            Metric("financial", "credit_score", 750, 300, 850, last_updated=as_of),
            Metric("financial", "broken", 1, 5, 5, last_updated=as_of),
        ]
        normalized, excluded = normalize_metrics(metrics)

        assert [nm.name for nm in normalized] == ["credit_score"]
        assert len(excluded) == 1
        assert excluded[0].startswith("financial.broken")

    def test_non_positive_weight_is_rejected(self):
        with pytest.raises(MetricConfigurationError):
            normalize_metric(Metric("market", "demand", 0.5, 0, 1, weight=0))

    def test_duplicate_metric_keeps_newest(self, as_of):
        older = Metric("market", "demand", 0.2, 0, 1, last_updated=as_of - timedelta(days=3))
        newer = Metric("market", "demand", 0.9, 0, 1, last_updated=as_of)
        normalized, _ = normalize_metrics([newer, older])

        assert len(normalized) == 1
        assert normalized[0].score == pytest.approx(0.9)


class TestMetricsFromRaw:

    def test_catalog_supplies_range_and_orientation(self, as_of):
        metrics = metrics_from_raw("financial", {"credit_score": 750, "debt_to_equity": 0.5}, as_of)
        by_name = {m.name: m for m in metrics}

        assert by_name["credit_score"].min_value == 300.0
        assert by_name["credit_score"].max_value == 850.0
        assert by_name["debt_to_equity"].orientation == LOWER_IS_BETTER
        assert normalize_metric(by_name["debt_to_equity"]).score == pytest.approx(0.75)

    def test_unknown_and_missing_values_are_skipped(self):
        metrics = metrics_from_raw("financial", {"credit_score": None, "made_up": 3, "liquidity_ratio": "n/a"})
        assert metrics == []

    def test_unknown_category_returns_nothing(self):
        assert metrics_from_raw("weather", {"rain": 1.0}) == []
