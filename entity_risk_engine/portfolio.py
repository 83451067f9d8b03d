# File: portfolio.py
"""
Portfolio risk aggregation across many scored entities.

Combines per-entity composite scores, exposure weights, per-entity score
volatility and a correlation matrix into a portfolio-level view:

- **Portfolio volatility**: ``sigma_p = sqrt(w^T Σ w)`` with ``Σ = D R D``
  (``D`` = diag of entity volatilities, ``R`` = correlation matrix)
- **Diversification benefit**: ``1 - sigma_p / sum(w_i * sigma_i)``, in [0, 1]
- **Concentration**: Herfindahl ``sum(w_i^2)`` rescaled to [0, 1]
  (1 = everything in one entity)
- **Risk contributions**: Euler shares ``w_i (Σ w)_i / sigma_p^2`` summing to 1
- **Scenario analysis**: exposure-weighted stress losses per scenario

Aggregation is a barrier step: it runs on whatever profiles the caller
hands over. Unscored or degraded profiles are kept, scored with the
configured penalized score and listed in ``degraded_entities``; they are
never dropped silently. The correlation matrix is a required external
input (see ``estimate_correlation_matrix`` for a historical estimate) and
any malformation aborts the whole call.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, UTC
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from entity_risk_engine._logging import log_errors, log_operation, log_timing
from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.constants import STATUS_SCORED
from entity_risk_engine.data_objects import (
    EntityRiskContribution,
    PortfolioRecommendation,
    PortfolioRisk,
    RiskProfile,
    ScenarioLoss,
    StressResult,
    TailRiskMetrics,
    TrendPoint,
)
from entity_risk_engine.exceptions import PortfolioConfigurationError
from entity_risk_engine.stress_testing import run_stress_tests
from entity_risk_engine.tail_risk import score_series

logger = logging.getLogger(__name__)

_EPS = 1e-12
_SYMMETRY_TOL = 1e-9

MatrixLike = Union[Sequence[Sequence[float]], np.ndarray, pd.DataFrame]


def normalize_weights(exposures: Sequence[float]) -> np.ndarray:
    """
    Normalize non-negative exposures to weights summing to 1.

    Raises:
        PortfolioConfigurationError: negative, non-finite or all-zero exposures
    """
    e = np.asarray(exposures, dtype=float)
    if not np.all(np.isfinite(e)):
        raise PortfolioConfigurationError("Exposures must be finite")
    if np.any(e < 0):
        raise PortfolioConfigurationError("Exposures must be non-negative")
    total = float(e.sum())
    if total <= 0:
        raise PortfolioConfigurationError("Sum of exposures is zero, cannot normalize.")
    return e / total


def validate_correlation_matrix(matrix: MatrixLike, entity_ids: Sequence[str]) -> np.ndarray:
    """
    Check shape, symmetry, unit diagonal and [-1, 1] bounds.

    A DataFrame is aligned to ``entity_ids`` by label first.

    Raises:
        PortfolioConfigurationError: on any violation
    """
    n = len(entity_ids)
    if isinstance(matrix, pd.DataFrame):
        labels = set(entity_ids)
        if set(matrix.index) != labels or set(matrix.columns) != labels:
            raise PortfolioConfigurationError("Correlation matrix labels do not match portfolio entities")
        matrix = matrix.loc[list(entity_ids), list(entity_ids)].to_numpy(dtype=float)

    try:
        R = np.asarray(matrix, dtype=float)
    except (TypeError, ValueError) as exc:
        raise PortfolioConfigurationError(f"Correlation matrix is not numeric: {exc}") from exc

    if R.shape != (n, n):
        raise PortfolioConfigurationError(f"Correlation matrix shape {R.shape} does not match {n} entities")
    if not np.all(np.isfinite(R)):
        raise PortfolioConfigurationError("Correlation matrix contains non-finite values")
    if not np.allclose(R, R.T, atol=_SYMMETRY_TOL, rtol=0.0):
        raise PortfolioConfigurationError("Correlation matrix is not symmetric")
    if not np.all(np.abs(np.diag(R) - 1.0) <= _EPS):
        raise PortfolioConfigurationError("Correlation matrix diagonal must be exactly 1")
    if np.any(R < -1.0) or np.any(R > 1.0):
        raise PortfolioConfigurationError("Correlation matrix entries must lie in [-1, 1]")
    return R


def compute_covariance_matrix(volatilities: Sequence[float], correlation: np.ndarray) -> np.ndarray:
    """Σ_ij = ρ_ij σ_i σ_j."""
    sigma = np.asarray(volatilities, dtype=float)
    return correlation * np.outer(sigma, sigma)


def compute_portfolio_volatility(weights: np.ndarray, cov_matrix: np.ndarray) -> float:
    """
    Compute portfolio volatility = sqrt(w^T Σ w).

    Raises:
        PortfolioConfigurationError: negative variance (matrix not positive semi-definite)
    """
    var_p = float(weights.T.dot(cov_matrix).dot(weights))
    if var_p < -_SYMMETRY_TOL:
        raise PortfolioConfigurationError(
            "Portfolio variance is negative; correlation matrix is not positive semi-definite"
        )
    return float(np.sqrt(max(var_p, 0.0)))


def compute_risk_contributions(weights: np.ndarray, cov_matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Euler decomposition of portfolio variance.

    Returns:
        (contributions, marginal_risk): ``w_i (Σ w)_i / σ_p²`` (sums to 1) and
        ``(Σ w)_i / σ_p``. With zero portfolio variance the contributions fall
        back to the exposure weights and marginal risk is zero.
    """
    sigma_w = cov_matrix.dot(weights)
    var_p = float(weights.dot(sigma_w))
    if var_p <= _EPS:
        return weights.copy(), np.zeros_like(weights)
    return weights * sigma_w / var_p, sigma_w / np.sqrt(var_p)


def compute_herfindahl(weights: np.ndarray) -> float:
    """
    Compute the Herfindahl index = sum(w_i^2).
    Indicates concentration (1/N = evenly spread, 1 = single entity).
    """
    return float(np.sum(weights ** 2))


def compute_concentration_index(weights: np.ndarray) -> float:
    """Herfindahl rescaled to [0, 1]: 0 = equal weights, 1 = single-entity concentration."""
    n = len(weights)
    if n == 1:
        return 1.0
    h = compute_herfindahl(weights)
    return float(min(1.0, max(0.0, (h - 1.0 / n) / (1.0 - 1.0 / n))))


def compute_diversification_benefit(weights: np.ndarray, volatilities: Sequence[float], portfolio_volatility: float) -> float:
    if len(weights) == 1:
        return 0.0
    weighted_sum = float(np.dot(weights, np.asarray(volatilities, dtype=float)))
    if weighted_sum <= _EPS:
        return 0.0
    benefit = 1.0 - portfolio_volatility / weighted_sum
    if benefit < 1e-9:
        return 0.0
    return float(min(1.0, benefit))


def estimate_correlation_matrix(
    histories: Mapping[str, Sequence[TrendPoint]],
    min_overlap: Optional[int] = None,
    config: Optional[RiskEngineConfig] = None,
) -> pd.DataFrame:
    """
    Correlation of period-over-period score deltas across entities.

    Pairs with fewer than ``min_overlap`` overlapping deltas (or a flat
    series) get correlation 0; the diagonal is 1.
    """
    config = config or RiskEngineConfig.default()
    min_overlap = min_overlap if min_overlap is not None else config.min_correlation_overlap
    entity_ids = list(histories.keys())
    if not entity_ids:
        return pd.DataFrame()

    series = {eid: score_series(histories[eid]) for eid in entity_ids}
    deltas = pd.DataFrame({eid: s.diff() for eid, s in series.items() if len(s) > 1})
    corr = deltas.corr(min_periods=max(2, min_overlap)).reindex(index=entity_ids, columns=entity_ids)
    corr = corr.fillna(0.0).clip(-1.0, 1.0)
    values = corr.to_numpy(dtype=float, copy=True)
    np.fill_diagonal(values, 1.0)
    return pd.DataFrame(values, index=entity_ids, columns=entity_ids)


def _resolve_exposures(entity_ids: Sequence[str], exposures: Union[Mapping[str, float], Sequence[float]]) -> List[float]:
    if isinstance(exposures, Mapping):
        missing = [eid for eid in entity_ids if eid not in exposures]
        if missing:
            raise PortfolioConfigurationError(f"Missing exposures for: {', '.join(missing)}")
        extra = set(exposures) - set(entity_ids)
        if extra:
            raise PortfolioConfigurationError(f"Exposures given for unknown entities: {', '.join(sorted(extra))}")
        return [float(exposures[eid]) for eid in entity_ids]
    values = list(exposures)
    if len(values) != len(entity_ids):
        raise PortfolioConfigurationError(f"{len(values)} exposures given for {len(entity_ids)} entities")
    return [float(v) for v in values]


def _resolve_volatility(
    entity_id: str,
    volatilities: Optional[Mapping[str, Union[float, TailRiskMetrics]]],
    config: RiskEngineConfig,
) -> float:
    value = volatilities.get(entity_id) if volatilities else None
    if isinstance(value, TailRiskMetrics):
        value = value.volatility
    if value is None:
        logger.warning("No volatility for %s; using fallback %.4f", entity_id, config.fallback_volatility)
        return config.fallback_volatility
    value = float(value)
    if not np.isfinite(value) or value < 0:
        raise PortfolioConfigurationError(f"Volatility for {entity_id} must be finite and non-negative")
    return value


def _proxy_profile(profile: RiskProfile, config: RiskEngineConfig) -> RiskProfile:
    """Scored stand-in for a degraded/unscored profile, using the penalized score."""
    if profile.is_scored and not profile.degraded:
        return profile
    return dataclasses.replace(
        profile,
        overall_score=config.degraded_score,
        status=STATUS_SCORED,
        degraded=True,
    )


def analyze_scenarios(
    entity_ids: Sequence[str],
    weights: np.ndarray,
    total_exposure: float,
    stress_results: Mapping[str, Sequence[StressResult]],
) -> List[ScenarioLoss]:
    """
    Per-scenario portfolio losses from per-entity stress results at unit exposure.

    ``expected_loss_rate = sum(w_i * loss_i)``; ``worst_case_loss`` assumes
    every unit of exposure behaves like the worst-hit entity.
    """
    if not entity_ids:
        return []
    by_entity: Dict[str, Dict[str, StressResult]] = {}
    for eid in entity_ids:
        results = stress_results.get(eid)
        if results is None:
            raise PortfolioConfigurationError(f"Missing stress results for {eid}")
        by_entity[eid] = {r.scenario: r for r in results}

    scenario_names = [r.scenario for r in stress_results[entity_ids[0]]]
    for eid in entity_ids:
        if set(by_entity[eid]) != set(scenario_names):
            raise PortfolioConfigurationError(f"Stress results for {eid} cover a different scenario set")

    analysis: List[ScenarioLoss] = []
    for name in scenario_names:
        losses = np.array([by_entity[eid][name].estimated_loss for eid in entity_ids], dtype=float)
        probs = np.array([by_entity[eid][name].probability for eid in entity_ids], dtype=float)
        rate = float(np.dot(weights, losses))
        analysis.append(
            ScenarioLoss(
                scenario=name,
                probability_of_loss=float(np.dot(weights, probs)),
                expected_loss_rate=rate,
                expected_loss=rate * total_exposure,
                worst_case_loss=float(losses.max()) * total_exposure,
                entity_losses={eid: float(loss) for eid, loss in zip(entity_ids, losses)},
            )
        )
    return analysis


def generate_portfolio_recommendations(
    diversification_benefit: float,
    concentration_index: float,
    average_correlation: float,
    config: RiskEngineConfig,
) -> List[PortfolioRecommendation]:
    recommendations: List[PortfolioRecommendation] = []

    if diversification_benefit < config.diversification_warning:
        recommendations.append(
            PortfolioRecommendation(
                type="diversify",
                priority="high",
                description="Increase diversification across regions and specializations",
                expected_benefit="Lower portfolio volatility through less correlated exposure",
                implementation=(
                    "Identify entities in underrepresented regions",
                    "Develop relationships with entities in different specializations",
                    "Gradually shift volume to new entities",
                ),
            )
        )

    if concentration_index > config.concentration_warning:
        recommendations.append(
            PortfolioRecommendation(
                type="reduce_exposure",
                priority="high",
                description="Reduce concentration in the largest exposures",
                expected_benefit="Smaller loss from any single entity failure",
                implementation=(
                    "Identify over-concentrated positions",
                    "Develop alternative entities",
                    "Gradually reduce exposure to high-concentration areas",
                ),
            )
        )

    if average_correlation > config.correlation_warning:
        recommendations.append(
            PortfolioRecommendation(
                type="hedge",
                priority="medium",
                description="Hedge risks shared by highly correlated entities",
                expected_benefit="Reduced co-movement of entity risk",
                implementation=(
                    "Identify correlated risk factors",
                    "Put contractual or financial hedges in place",
                    "Diversify across uncorrelated entities",
                ),
            )
        )

    recommendations.append(
        PortfolioRecommendation(
            type="monitor",
            priority="medium",
            description="Continuously monitor portfolio risk and alerts",
            expected_benefit="Early detection of risk changes",
            implementation=(
                "Track entity score trends each assessment cycle",
                "Review active alerts and their hysteresis state",
                "Re-run portfolio aggregation after material changes",
            ),
        )
    )
    return recommendations


def _average_off_diagonal(R: np.ndarray) -> float:
    n = R.shape[0]
    if n < 2:
        return 0.0
    mask = ~np.eye(n, dtype=bool)
    return float(R[mask].mean())


@log_errors("medium")
@log_operation("compute_portfolio_risk")
@log_timing(1.0)
def compute_portfolio_risk(
    profiles: Sequence[RiskProfile],
    exposures: Union[Mapping[str, float], Sequence[float]],
    correlation_matrix: MatrixLike,
    volatilities: Optional[Mapping[str, Union[float, TailRiskMetrics]]] = None,
    stress_results: Optional[Mapping[str, Sequence[StressResult]]] = None,
    config: Optional[RiskEngineConfig] = None,
    as_of: Optional[datetime] = None,
) -> PortfolioRisk:
    """
    Aggregate N entities into a ``PortfolioRisk``.

    Parameters
    ----------
    profiles : Sequence[RiskProfile]
        One profile per entity, in correlation-matrix order. Unscored or
        degraded profiles are substituted with ``config.degraded_score``.
    exposures : Mapping[str, float] | Sequence[float]
        Non-negative exposures; normalized to weights summing to 1. Their
        raw sum is reported as ``total_exposure``.
    correlation_matrix : array-like | pd.DataFrame
        N x N, symmetric, unit diagonal, entries in [-1, 1].
    volatilities : Mapping[str, float | TailRiskMetrics], optional
        Per-entity score volatility; missing entries use
        ``config.fallback_volatility``.
    stress_results : Mapping[str, Sequence[StressResult]], optional
        Per-entity stress results computed at unit exposure. Computed from
        the profiles and ``config.scenario_library`` when omitted.

    Raises
    ------
    PortfolioConfigurationError
        Empty portfolio, duplicate entities, bad exposures or malformed
        correlation matrix. No partial result is returned.
    """
    config = config or RiskEngineConfig.default()
    as_of = as_of or datetime.now(UTC)

    if not profiles:
        raise PortfolioConfigurationError("Portfolio must contain at least one entity")
    entity_ids = [p.entity_id for p in profiles]
    if len(set(entity_ids)) != len(entity_ids):
        raise PortfolioConfigurationError("Duplicate entity ids in portfolio")

    raw_exposures = _resolve_exposures(entity_ids, exposures)
    weights = normalize_weights(raw_exposures)
    total_exposure = float(sum(raw_exposures))
    R = validate_correlation_matrix(correlation_matrix, entity_ids)

    effective = [_proxy_profile(p, config) for p in profiles]
    degraded_entities = tuple(p.entity_id for p in effective if p.degraded)
    if degraded_entities:
        logger.warning(
            "Portfolio aggregated with degraded entities (penalized score %.2f): %s",
            config.degraded_score,
            ", ".join(degraded_entities),
        )

    scores = np.array([float(p.overall_score) for p in effective], dtype=float)
    sigma = [_resolve_volatility(eid, volatilities, config) for eid in entity_ids]

    cov = compute_covariance_matrix(sigma, R)
    sigma_p = compute_portfolio_volatility(weights, cov)
    contributions, marginal = compute_risk_contributions(weights, cov)
    diversification = compute_diversification_benefit(weights, sigma, sigma_p)
    concentration = compute_concentration_index(weights)

    if stress_results is None:
        stress_results = {p.entity_id: run_stress_tests(p, config.scenario_library, 1.0, config) for p in effective}
    scenarios = analyze_scenarios(entity_ids, weights, total_exposure, stress_results)

    return PortfolioRisk(
        entity_ids=tuple(entity_ids),
        total_exposure=total_exposure,
        overall_risk=float(np.dot(weights, 1.0 - scores)),
        portfolio_volatility=sigma_p,
        diversification_benefit=diversification,
        concentration_index=concentration,
        herfindahl=compute_herfindahl(weights),
        correlation_matrix=tuple(tuple(float(x) for x in row) for row in R),
        contributions=tuple(
            EntityRiskContribution(
                entity_id=eid,
                exposure=float(weights[i]),
                score=float(scores[i]),
                volatility=float(sigma[i]),
                contribution=float(contributions[i]),
                marginal_risk=float(marginal[i]),
                degraded=eid in degraded_entities,
            )
            for i, eid in enumerate(entity_ids)
        ),
        scenario_analysis=tuple(scenarios),
        recommendations=tuple(
            generate_portfolio_recommendations(diversification, concentration, _average_off_diagonal(R), config)
        ),
        timestamp=as_of,
        degraded=bool(degraded_entities),
        degraded_entities=degraded_entities,
    )
