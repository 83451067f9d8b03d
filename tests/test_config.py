"""Tests for the configuration surface."""

import dataclasses

import pytest

from entity_risk_engine import RiskConfigurationError, RiskEngineConfig, configure
from entity_risk_engine import config as config_module


class TestRiskEngineConfig:

    def test_defaults(self, config):
        assert config.category_weights["financial"] == 0.25
        assert sum(config.category_weights.values()) == pytest.approx(1.0)
        assert config.tier_thresholds == {"low": 0.8, "medium": 0.6, "high": 0.4}
        assert config.alert_hysteresis_cycles == 3
        assert config.min_var_points == 8
        assert config.scenario_library.version == "2024.1"
        assert len(config.scenario_library.scenarios) == 4

    def test_from_dict_overlays_defaults(self):
        config = RiskEngineConfig.from_dict({"alert_hysteresis_cycles": 5, "category_weights": {"cyber": 1}})

        assert config.alert_hysteresis_cycles == 5
        assert config.categories == ("cyber",)
        assert config.min_var_points == 8

    def test_unknown_key_rejected(self):
        with pytest.raises(RiskConfigurationError):
            RiskEngineConfig.from_dict({"not_a_setting": 1})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"tier_thresholds": {"low": 0.5, "medium": 0.6, "high": 0.4}},
            {"category_weights": {"financial": -1}},
            {"category_weights": {"financial": 0.0}},
            {"alert_hysteresis_cycles": 0},
            {"min_var_points": 1},
            {"degraded_score": 1.5},
        ],
    )
    def test_invalid_settings_rejected(self, overrides):
        with pytest.raises(RiskConfigurationError):
            RiskEngineConfig.from_dict(overrides)

    def test_scenario_library_from_mapping(self):
        config = RiskEngineConfig.from_dict(
            {
                "scenario_library": {
                    "version": "custom-1",
                    "scenarios": [
                        {"name": "Flood", "base_probability": 0.05, "base_impact": 0.4, "base_recovery_days": 120}
                    ],
                }
            }
        )
        assert config.scenario_library.names() == ["Flood"]

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "risk.yaml"
        path.write_text("trend_window: 4\ntrend_dead_zone: 0.01\n")
        config = RiskEngineConfig.from_yaml(path)

        assert config.trend_window == 4
        assert config.trend_dead_zone == 0.01

    def test_from_yaml_requires_mapping(self, tmp_path):
        path = tmp_path / "risk.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(RiskConfigurationError):
            RiskEngineConfig.from_yaml(path)

    def test_to_dict_round_trips(self, config):
        assert RiskEngineConfig.from_dict(config.to_dict()) == config

    def test_config_is_immutable(self, config):
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.alert_hysteresis_cycles = 10


class TestConfigure:

    def test_unknown_key_raises(self):
        with pytest.raises(KeyError):
            configure(NOT_A_KEY=1)

    def test_override_changes_defaults(self):
        original = config_module.RECOMMENDATION_THRESHOLD
        try:
            configure(RECOMMENDATION_THRESHOLD=0.7)
            assert RiskEngineConfig.default().recommendation_threshold == 0.7
        finally:
            configure(RECOMMENDATION_THRESHOLD=original)
