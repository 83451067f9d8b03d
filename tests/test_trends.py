"""Tests for trend history and classification."""

from datetime import datetime, timedelta, timezone

import pytest

from entity_risk_engine import InMemoryTrendStore, RiskEngineConfig, TrendPoint, TrendTracker
from entity_risk_engine.storage import TrendStore
from entity_risk_engine.trends import regression_slope


class TestAppendPoint:

    def test_history_is_ordered_regardless_of_arrival(self, history_factory):
        tracker = TrendTracker()
        points = history_factory("E1", [0.5, 0.6, 0.7])
        for p in (points[2], points[0], points[1]):
            tracker.append_point("E1", p)

        assert [p.overall_score for p in tracker.history("E1")] == [0.5, 0.6, 0.7]

    def test_duplicate_timestamp_replaces(self, history_factory, as_of):
        tracker = TrendTracker()
        for p in history_factory("E1", [0.5, 0.6]):
            tracker.append_point("E1", p)
        tracker.append_point("E1", TrendPoint("E1", as_of, 0.9))

        history = tracker.history("E1")
        assert len(history) == 2
        assert history[0].overall_score == 0.9

    def test_duplicate_latest_timestamp_replaces(self, as_of):
        tracker = TrendTracker()
        tracker.append_point("E1", TrendPoint("E1", as_of, 0.5))
        tracker.append_point("E1", TrendPoint("E1", as_of, 0.4))
        assert [p.overall_score for p in tracker.history("E1")] == [0.4]

    def test_entities_are_partitioned(self, history_factory):
        tracker = TrendTracker()
        for p in history_factory("E1", [0.5, 0.6]) + history_factory("E2", [0.1]):
            tracker.append_point(p.entity_id, p)

        assert len(tracker.history("E1")) == 2
        assert len(tracker.history("E2")) == 1
        assert tracker.history("E3") == []

    def test_wrong_entity_rejected(self, as_of):
        with pytest.raises(ValueError):
            TrendTracker().append_point("E1", TrendPoint("E2", as_of, 0.5))

    def test_window(self, history_factory):
        tracker = TrendTracker()
        for p in history_factory("E1", [0.1, 0.2, 0.3, 0.4]):
            tracker.append_point("E1", p)
        assert [p.overall_score for p in tracker.history("E1", window=2)] == [0.3, 0.4]

    def test_injected_store_is_used(self, as_of):
        store = InMemoryTrendStore()
        assert isinstance(store, TrendStore)
        TrendTracker(store).append_point("E1", TrendPoint("E1", as_of, 0.5))
        assert store.entity_ids() == ["E1"]

    def test_naive_and_aware_timestamps_mix(self, as_of):
        tracker = TrendTracker()
        tracker.append_point("E1", TrendPoint("E1", as_of, 0.5))
        tracker.append_point("E1", TrendPoint("E1", datetime(2024, 7, 30), 0.6))
        tracker.append_point("E1", TrendPoint("E1", datetime(2024, 7, 15, 2, tzinfo=timezone(timedelta(hours=2))), 0.55))

        history = tracker.history("E1")
        assert [p.overall_score for p in history] == [0.5, 0.55, 0.6]
        assert all(p.timestamp.utcoffset() == timedelta(0) for p in history)

    def test_log_record_format(self, as_of):
        record = TrendPoint("E1", as_of, 0.5, {"financial": 0.6}).to_log_record()
        assert record == {
            "entity_id": "E1",
            "timestamp": as_of.isoformat(),
            "overall_score": 0.5,
            "category_scores": {"financial": 0.6},
        }


class TestClassify:

    def _tracker(self, history_factory, scores):
        tracker = TrendTracker()
        for p in history_factory("E1", scores):
            tracker.append_point("E1", p)
        return tracker

    def test_improving(self, history_factory):
        assert self._tracker(history_factory, [0.50, 0.52, 0.54, 0.56]).classify("E1") == "improving"

    def test_declining(self, history_factory):
        assert self._tracker(history_factory, [0.60, 0.57, 0.54, 0.51]).classify("E1") == "declining"

    def test_noise_inside_dead_zone_is_stable(self, history_factory):
        assert self._tracker(history_factory, [0.600, 0.602, 0.599, 0.601]).classify("E1") == "stable"

    def test_single_point_is_stable(self, history_factory):
        assert self._tracker(history_factory, [0.6]).classify("E1") == "stable"

    def test_window_uses_recent_points_only(self, history_factory):
        tracker = self._tracker(history_factory, [0.9, 0.8, 0.7, 0.6, 0.62, 0.64, 0.66])
        assert tracker.classify("E1", window=4) == "improving"
        assert tracker.classify("E1", window=7) == "declining"

    def test_zero_window_rejected(self, history_factory):
        tracker = self._tracker(history_factory, [0.50, 0.52, 0.54])
        with pytest.raises(ValueError):
            tracker.classify("E1", window=0)

    def test_dead_zone_is_configurable(self, history_factory):
        config = RiskEngineConfig.from_dict({"trend_dead_zone": 0.05})
        tracker = TrendTracker(config=config)
        for p in history_factory("E1", [0.50, 0.52, 0.54, 0.56]):
            tracker.append_point("E1", p)
        assert tracker.classify("E1") == "stable"

    def test_regression_slope(self):
        assert regression_slope([0.1, 0.2, 0.3]) == pytest.approx(0.1)
        assert regression_slope([0.5, 0.5]) == 0.0
        assert regression_slope([]) == 0.0
