#!/usr/bin/env python3
# coding: utf-8

"""
Deterministic stress testing of one entity against a versioned scenario library.

Called by:
- ``engine.RiskEngine.run_stress_tests``.
- ``portfolio.compute_portfolio_risk`` when no per-entity results are supplied.

Contract notes:
- Mitigation is the entity's composite score: healthier entities absorb
  stress better.
- ``estimated_loss = base_impact * (1 - mitigation) * exposure``.
- Probability is the scenario's base probability scaled by a bounded
  multiplier ``1 + max_uplift * (1 - driver_score)`` where ``driver_score``
  is the mean of the entity's compliance/geopolitical category scores
  (neutral midpoint when neither is present); capped at 1.0.
- ``recovery_days = base_recovery_days / max(mitigation, min_mitigation)``.
"""

from typing import List, Optional

from entity_risk_engine._logging import log_errors, log_operation
from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.data_objects import RiskProfile, ScenarioLibrary, StressResult, StressScenario
from entity_risk_engine.exceptions import InsufficientDataError


def driver_score(profile: RiskProfile, config: RiskEngineConfig) -> float:
    """Mean score of the probability-driving categories present on the profile."""
    scores = [
        profile.category_score(category)
        for category in config.stress_driver_categories
        if profile.category_score(category) is not None
    ]
    if not scores:
        return config.neutral_driver_score
    return sum(scores) / len(scores)


def probability_multiplier(profile: RiskProfile, config: RiskEngineConfig) -> float:
    return 1.0 + config.max_probability_uplift * (1.0 - driver_score(profile, config))


def evaluate_scenario(
    profile: RiskProfile,
    scenario: StressScenario,
    exposure: float,
    config: RiskEngineConfig,
    library_version: str,
) -> StressResult:
    mitigation = float(profile.overall_score)
    probability = min(1.0, scenario.base_probability * probability_multiplier(profile, config))
    return StressResult(
        entity_id=profile.entity_id,
        scenario=scenario.name,
        probability=probability,
        impact=scenario.base_impact,
        mitigation_score=mitigation,
        estimated_loss=scenario.base_impact * (1.0 - mitigation) * exposure,
        recovery_days=scenario.base_recovery_days / max(mitigation, config.min_mitigation),
        library_version=library_version,
    )


@log_errors("medium")
@log_operation("run_stress_tests")
def run_stress_tests(
    profile: RiskProfile,
    scenario_library: Optional[ScenarioLibrary] = None,
    exposure: float = 1.0,
    config: Optional[RiskEngineConfig] = None,
) -> List[StressResult]:
    """
    Evaluate ``profile`` against every scenario in the library.

    Parameters
    ----------
    profile : RiskProfile
        A scored profile.
    scenario_library : ScenarioLibrary, optional
        Defaults to ``config.scenario_library``.
    exposure : float
        Monetary or fractional exposure the loss is scaled by (1.0 gives
        loss as a fraction of exposure).

    Raises
    ------
    InsufficientDataError
        The profile is unscored.
    ValueError
        Negative exposure.
    """
    config = config or RiskEngineConfig.default()
    library = scenario_library or config.scenario_library
    if not profile.is_scored:
        raise InsufficientDataError(
            f"Cannot stress test unscored entity {profile.entity_id}", entity_id=profile.entity_id
        )
    if exposure < 0:
        raise ValueError(f"exposure must be non-negative, got {exposure}")

    return [
        evaluate_scenario(profile, scenario, exposure, config, library.version)
        for scenario in library.scenarios
    ]
