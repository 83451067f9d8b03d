"""Tests for portfolio aggregation."""

import math

import numpy as np
import pandas as pd
import pytest

from entity_risk_engine import (
    PortfolioConfigurationError,
    RiskProfile,
    compute_portfolio_risk,
    estimate_correlation_matrix,
    run_stress_tests,
)
from entity_risk_engine.portfolio import compute_concentration_index, normalize_weights


CORR_3 = [
    [1.0, 0.3, 0.1],
    [0.3, 1.0, 0.2],
    [0.1, 0.2, 1.0],
]


@pytest.fixture
def three_profiles(profile_factory):
    return [profile_factory("A", 0.85), profile_factory("B", 0.65), profile_factory("C", 0.45)]


@pytest.fixture
def three_vols():
    return {"A": 0.05, "B": 0.10, "C": 0.20}


class TestPortfolioProperties:

    def test_single_entity(self, profile_factory):
        result = compute_portfolio_risk([profile_factory("A", 0.7)], [500.0], [[1.0]], volatilities={"A": 0.1})

        assert result.diversification_benefit == 0.0
        assert result.concentration_index == 1.0
        assert result.portfolio_volatility == pytest.approx(0.1)
        assert result.contributions[0].contribution == pytest.approx(1.0)
        assert result.total_exposure == 500.0

    def test_perfect_correlation_has_no_diversification(self, three_profiles, three_vols):
        ones = np.ones((3, 3))
        result = compute_portfolio_risk(three_profiles, [1, 2, 3], ones, volatilities=three_vols)

        weights = np.array([1, 2, 3]) / 6
        assert result.diversification_benefit == 0.0
        assert result.portfolio_volatility == pytest.approx(float(np.dot(weights, [0.05, 0.10, 0.20])))

    def test_contributions_sum_to_one(self, three_profiles, three_vols):
        result = compute_portfolio_risk(three_profiles, [0.5, 0.3, 0.2], CORR_3, volatilities=three_vols)
        assert sum(c.contribution for c in result.contributions) == pytest.approx(1.0)

    def test_uncorrelated_equal_entities(self, profile_factory):
        profiles = [profile_factory("A", 0.8), profile_factory("B", 0.8)]
        result = compute_portfolio_risk(profiles, [1, 1], np.eye(2), volatilities={"A": 0.1, "B": 0.1})

        assert result.portfolio_volatility == pytest.approx(0.1 / math.sqrt(2))
        assert result.diversification_benefit == pytest.approx(1 - 1 / math.sqrt(2))
        assert result.concentration_index == pytest.approx(0.0)
        assert result.herfindahl == pytest.approx(0.5)
        assert [c.contribution for c in result.contributions] == pytest.approx([0.5, 0.5])

    def test_overall_risk_is_exposure_weighted(self, three_profiles, three_vols):
        result = compute_portfolio_risk(three_profiles, [0.5, 0.3, 0.2], CORR_3, volatilities=three_vols)
        assert result.overall_risk == pytest.approx(0.5 * 0.15 + 0.3 * 0.35 + 0.2 * 0.55)

    def test_exposures_are_normalized(self, three_profiles, three_vols):
        result = compute_portfolio_risk(three_profiles, {"A": 50, "B": 30, "C": 20}, CORR_3, volatilities=three_vols)

        assert result.total_exposure == pytest.approx(100.0)
        assert [c.exposure for c in result.contributions] == pytest.approx([0.5, 0.3, 0.2])

    def test_zero_volatility_falls_back_to_weights(self, profile_factory):
        profiles = [profile_factory("A", 0.8), profile_factory("B", 0.6)]
        result = compute_portfolio_risk(profiles, [3, 1], np.eye(2), volatilities={"A": 0.0, "B": 0.0})

        assert result.portfolio_volatility == 0.0
        assert [c.contribution for c in result.contributions] == pytest.approx([0.75, 0.25])

    def test_missing_volatility_uses_fallback(self, profile_factory, config):
        result = compute_portfolio_risk([profile_factory("A", 0.8)], [1], [[1.0]])
        assert result.portfolio_volatility == pytest.approx(config.fallback_volatility)

    def test_concentration_index_bounds(self):
        assert compute_concentration_index(np.array([1.0])) == 1.0
        assert compute_concentration_index(np.array([0.25] * 4)) == pytest.approx(0.0)
        assert compute_concentration_index(np.array([1.0, 0.0, 0.0])) == pytest.approx(1.0)


class TestScenarioAnalysis:

    def test_scenario_losses_are_exposure_weighted(self, three_profiles, three_vols, config):
        result = compute_portfolio_risk(three_profiles, [50, 30, 20], CORR_3, volatilities=three_vols)
        recession = next(s for s in result.scenario_analysis if s.scenario == "Economic Recession")

        losses = [0.25 * (1 - 0.85), 0.25 * (1 - 0.65), 0.25 * (1 - 0.45)]
        rate = 0.5 * losses[0] + 0.3 * losses[1] + 0.2 * losses[2]
        assert recession.expected_loss_rate == pytest.approx(rate)
        assert recession.expected_loss == pytest.approx(rate * 100)
        assert recession.worst_case_loss == pytest.approx(max(losses) * 100)
        assert len(result.scenario_analysis) == len(config.scenario_library.scenarios)

    def test_supplied_stress_results_are_used(self, three_profiles, three_vols):
        stress = {p.entity_id: run_stress_tests(p) for p in three_profiles}
        computed = compute_portfolio_risk(three_profiles, [1, 1, 1], CORR_3, volatilities=three_vols)
        supplied = compute_portfolio_risk(
            three_profiles, [1, 1, 1], CORR_3, volatilities=three_vols, stress_results=stress
        )
        assert supplied.scenario_analysis == computed.scenario_analysis

    def test_mismatched_scenarios_rejected(self, three_profiles, three_vols):
        stress = {p.entity_id: run_stress_tests(p) for p in three_profiles}
        stress["C"] = stress["C"][:1]
        with pytest.raises(PortfolioConfigurationError):
            compute_portfolio_risk(three_profiles, [1, 1, 1], CORR_3, volatilities=three_vols, stress_results=stress)


class TestDegradedEntities:

    def test_unscored_entity_is_penalized_and_flagged(self, profile_factory, as_of, config):
        profiles = [
            profile_factory("A", 0.8),
            RiskProfile.unscored("B", as_of, degraded=True, degraded_reason="deadline exceeded"),
        ]
        result = compute_portfolio_risk(profiles, [1, 1], np.eye(2), volatilities={"A": 0.1, "B": 0.1})

        assert result.degraded
        assert result.degraded_entities == ("B",)
        b = result.contribution_for("B")
        assert b.degraded
        assert b.score == pytest.approx(config.degraded_score)
        assert result.entity_ids == ("A", "B")


class TestValidation:

    @pytest.mark.parametrize(
        "matrix",
        [
            [[1.0, 0.3], [0.2, 1.0]],
            [[0.9, 0.3], [0.3, 1.0]],
            [[1.0, 1.2], [1.2, 1.0]],
            [[1.0, 0.3, 0.0], [0.3, 1.0, 0.0], [0.0, 0.0, 1.0]],
            [[1.0, float("nan")], [float("nan"), 1.0]],
        ],
        ids=["asymmetric", "diagonal", "out_of_range", "wrong_dimension", "nan"],
    )
    def test_malformed_matrix_aborts(self, profile_factory, matrix):
        profiles = [profile_factory("A", 0.8), profile_factory("B", 0.6)]
        with pytest.raises(PortfolioConfigurationError):
            compute_portfolio_risk(profiles, [1, 1], matrix)

    def test_not_positive_semidefinite_aborts(self, three_profiles, three_vols):
        matrix = [[1.0, -0.9, -0.9], [-0.9, 1.0, -0.9], [-0.9, -0.9, 1.0]]
        with pytest.raises(PortfolioConfigurationError):
            compute_portfolio_risk(three_profiles, [1, 1, 1], matrix, volatilities={k: 0.1 for k in three_vols})

    @pytest.mark.parametrize("exposures", [[1, -1], [0, 0], [1], {"A": 1}])
    def test_bad_exposures_abort(self, profile_factory, exposures):
        profiles = [profile_factory("A", 0.8), profile_factory("B", 0.6)]
        with pytest.raises(PortfolioConfigurationError):
            compute_portfolio_risk(profiles, exposures, np.eye(2))

    def test_empty_portfolio_aborts(self):
        with pytest.raises(PortfolioConfigurationError):
            compute_portfolio_risk([], [], [])

    def test_duplicate_entities_abort(self, profile_factory):
        profiles = [profile_factory("A", 0.8), profile_factory("A", 0.6)]
        with pytest.raises(PortfolioConfigurationError):
            compute_portfolio_risk(profiles, [1, 1], np.eye(2))

    def test_dataframe_matrix_is_aligned_by_label(self, profile_factory):
        profiles = [profile_factory("A", 0.8), profile_factory("B", 0.6)]
        frame = pd.DataFrame([[1.0, 0.4], [0.4, 1.0]], index=["B", "A"], columns=["B", "A"])
        result = compute_portfolio_risk(profiles, [1, 1], frame, volatilities={"A": 0.1, "B": 0.1})
        assert result.correlation_matrix == ((1.0, 0.4), (0.4, 1.0))

    def test_normalize_weights_rejects_zero_sum(self):
        with pytest.raises(PortfolioConfigurationError):
            normalize_weights([0.0, 0.0])


class TestRecommendations:

    def test_monitor_always_present(self, profile_factory):
        profiles = [profile_factory("A", 0.8), profile_factory("B", 0.8)]
        result = compute_portfolio_risk(profiles, [1, 1], np.eye(2), volatilities={"A": 0.1, "B": 0.1})
        types = [r.type for r in result.recommendations]

        assert "monitor" in types
        assert "reduce_exposure" not in types

    def test_concentrated_correlated_portfolio(self, profile_factory):
        profiles = [profile_factory("A", 0.8), profile_factory("B", 0.8)]
        matrix = [[1.0, 0.95], [0.95, 1.0]]
        result = compute_portfolio_risk(profiles, [9, 1], matrix, volatilities={"A": 0.1, "B": 0.1})
        types = {r.type for r in result.recommendations}

        assert {"diversify", "reduce_exposure", "hedge", "monitor"} <= types


class TestEstimateCorrelation:

    def test_co_moving_entities(self, history_factory):
        histories = {
            "A": history_factory("A", [0.5, 0.6, 0.55, 0.7, 0.65]),
            "B": history_factory("B", [0.3, 0.4, 0.35, 0.5, 0.45]),
            "C": history_factory("C", [0.5, 0.5, 0.5, 0.5, 0.5]),
        }
        corr = estimate_correlation_matrix(histories)

        assert corr.loc["A", "B"] == pytest.approx(1.0)
        assert corr.loc["A", "C"] == 0.0
        assert np.allclose(np.diag(corr.to_numpy()), 1.0)
        assert np.allclose(corr.to_numpy(), corr.to_numpy().T)

    def test_insufficient_overlap_is_zero(self, history_factory):
        histories = {"A": history_factory("A", [0.5, 0.6]), "B": history_factory("B", [0.3, 0.4])}
        corr = estimate_correlation_matrix(histories)
        assert corr.loc["A", "B"] == 0.0
        assert corr.loc["A", "A"] == 1.0

    def test_estimate_feeds_aggregation(self, history_factory, profile_factory):
        histories = {
            "A": history_factory("A", [0.5, 0.6, 0.55, 0.7, 0.65]),
            "B": history_factory("B", [0.3, 0.35, 0.45, 0.4, 0.5]),
        }
        corr = estimate_correlation_matrix(histories)
        profiles = [profile_factory("A", 0.65), profile_factory("B", 0.5)]
        result = compute_portfolio_risk(profiles, [1, 1], corr, volatilities={"A": 0.05, "B": 0.05})
        assert 0.0 <= result.diversification_benefit <= 1.0
