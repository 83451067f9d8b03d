"""Tests for deterministic stress testing."""

import pytest

from entity_risk_engine import (
    InsufficientDataError,
    RiskConfigurationError,
    RiskProfile,
    ScenarioLibrary,
    StressScenario,
    run_stress_tests,
)


class TestRunStressTests:

    def test_one_result_per_scenario(self, profile_factory, config):
        results = run_stress_tests(profile_factory("E1", 0.8), config=config)

        assert [r.scenario for r in results] == config.scenario_library.names()
        assert all(r.library_version == "2024.1" for r in results)

    def test_loss_scales_with_impact_mitigation_and_exposure(self, profile_factory):
        results = run_stress_tests(profile_factory("E1", 0.8), exposure=1000.0)
        recession = next(r for r in results if r.scenario == "Economic Recession")

        assert recession.mitigation_score == pytest.approx(0.8)
        assert recession.estimated_loss == pytest.approx(0.25 * 0.2 * 1000.0)
        assert recession.recovery_days == pytest.approx(180 / 0.8)

    def test_deterministic(self, profile_factory):
        profile = profile_factory("E1", 0.55, {"compliance": 0.4})
        assert run_stress_tests(profile) == run_stress_tests(profile)

    def test_neutral_probability_without_driver_categories(self, profile_factory):
        results = run_stress_tests(profile_factory("E1", 0.8))
        recession = next(r for r in results if r.scenario == "Economic Recession")
        assert recession.probability == pytest.approx(0.15 * 1.5)

    def test_healthy_drivers_keep_base_probability(self, profile_factory):
        profile = profile_factory("E1", 0.8, {"compliance": 1.0, "geopolitical": 1.0})
        recession = run_stress_tests(profile)[0]
        assert recession.probability == pytest.approx(0.15)

    def test_weak_drivers_raise_probability(self, profile_factory):
        weak = profile_factory("E1", 0.8, {"compliance": 0.2, "geopolitical": 0.2})
        strong = profile_factory("E2", 0.8, {"compliance": 0.9, "geopolitical": 0.9})
        for w, s in zip(run_stress_tests(weak), run_stress_tests(strong)):
            assert w.probability > s.probability

    def test_probability_capped_at_one(self, profile_factory):
        library = ScenarioLibrary("test", (StressScenario("Shock", 0.8, 0.5, 30),))
        profile = profile_factory("E1", 0.5, {"compliance": 0.0, "geopolitical": 0.0})
        assert run_stress_tests(profile, library)[0].probability == 1.0

    def test_zero_mitigation_uses_floor(self, profile_factory):
        library = ScenarioLibrary("test", (StressScenario("Shock", 0.1, 0.5, 30),))
        result = run_stress_tests(profile_factory("E1", 0.0), library)[0]

        assert result.recovery_days == pytest.approx(30 / 0.05)
        assert result.estimated_loss == pytest.approx(0.5)

    def test_unscored_profile_raises(self, as_of):
        with pytest.raises(InsufficientDataError):
            run_stress_tests(RiskProfile.unscored("E1", as_of))

    def test_negative_exposure_raises(self, profile_factory):
        with pytest.raises(ValueError):
            run_stress_tests(profile_factory("E1", 0.8), exposure=-1.0)


class TestScenarioLibrary:

    def test_duplicate_names_rejected(self):
        s = StressScenario("Shock", 0.1, 0.2, 10)
        with pytest.raises(RiskConfigurationError):
            ScenarioLibrary("v1", (s, s))

    def test_invalid_probability_rejected(self):
        with pytest.raises(RiskConfigurationError):
            StressScenario("Shock", 1.5, 0.2, 10)

    def test_from_dict(self):
        library = ScenarioLibrary.from_dict(
            {"version": "v2", "scenarios": [{"name": "A", "base_probability": 0.1, "base_impact": 0.2, "base_recovery_days": 5}]}
        )
        assert library.version == "v2"
        assert library.names() == ["A"]
