"""Tail-risk estimation from an entity's score history.

Called by:
- ``engine.RiskEngine.compute_tail_risk``.
- Portfolio callers that need per-entity volatility for the covariance step.

Contract notes:
- Input is an ordered ``TrendPoint`` history for one entity; the series is
  the overall score, and statistics are computed on period-over-period
  score deltas.
- Volatility needs at least ``min_volatility_points`` points; fewer raises
  ``InsufficientHistoryError`` instead of inventing a number.
- VaR/ES need ``min_var_points``; below that they are ``None`` and the
  reason is reported in ``warnings``.
- VaR at confidence ``c`` is parametric: ``VaR_score = mean_score - z(c) * vol``,
  reported in loss space as ``1 - VaR_score``.
- Expected Shortfall is empirical: the mean of the observed score declines
  at or beyond the VaR decline ``z(c) * vol``, subtracted from the mean score
  and reported in the same loss space. With no observation that deep it
  equals VaR, so ES is never below VaR at the same level.
- Max drawdown is the largest peak-to-trough fall of the score, in score points.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd
import statsmodels.api as sm
from scipy import stats

from entity_risk_engine._logging import log_errors, log_timing
from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.constants import ES_CONFIDENCE_LEVELS, VAR_CONFIDENCE_LEVELS, confidence_key
from entity_risk_engine.data_objects import TailRiskMetrics, TrendPoint
from entity_risk_engine.exceptions import InsufficientHistoryError

logger = logging.getLogger(__name__)

_EPS = 1e-12


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def score_series(history: Sequence[TrendPoint]) -> pd.Series:
    """Overall-score series indexed by timestamp, sorted, one value per timestamp."""
    if not history:
        return pd.Series(dtype=float)
    ordered = sorted(history, key=lambda p: p.timestamp)
    series = pd.Series(
        [float(p.overall_score) for p in ordered],
        index=pd.DatetimeIndex([pd.Timestamp(p.timestamp) for p in ordered]),
        name="overall_score",
    )
    return series[~series.index.duplicated(keep="last")]


def compute_max_drawdown(series: pd.Series) -> float:
    """Largest peak-to-trough decline of the series (non-negative)."""
    if series.empty:
        return 0.0
    drawdown = series.cummax() - series
    return float(drawdown.max())


def _var_decline(volatility: float, confidence: float) -> float:
    return float(stats.norm.ppf(confidence)) * volatility


def parametric_var(mean_score: float, volatility: float, confidence: float) -> float:
    return 1.0 - _clamp01(mean_score - _var_decline(volatility, confidence))


def empirical_expected_shortfall(mean_score: float, deltas: pd.Series, volatility: float, confidence: float) -> float:
    """Mean observed decline at or beyond the VaR decline; VaR itself when none reaches it."""
    var_decline = _var_decline(volatility, confidence)
    losses = (-deltas).to_numpy(dtype=float)
    tail = losses[losses >= var_decline]
    tail_decline = float(tail.mean()) if tail.size else var_decline
    return 1.0 - _clamp01(mean_score - tail_decline)


def estimate_beta(deltas: pd.Series, benchmark: pd.Series, min_observations: int) -> tuple[Optional[float], Optional[str]]:
    """OLS slope of entity score deltas on benchmark score deltas, aligned by timestamp."""
    bench_deltas = benchmark.sort_index().diff().dropna()
    aligned = pd.concat([deltas.rename("entity"), bench_deltas.rename("benchmark")], axis=1, join="inner").dropna()
    if len(aligned) < min_observations:
        return None, (
            f"Insufficient overlap with benchmark for beta "
            f"({len(aligned)} < {min_observations} observations); beta not computed"
        )
    if float(aligned["benchmark"].std(ddof=0)) <= _EPS:
        return None, "Benchmark score deltas have zero variance; beta not computed"

    X = sm.add_constant(aligned["benchmark"].to_numpy(dtype=float))
    model = sm.OLS(aligned["entity"].to_numpy(dtype=float), X).fit()
    return float(model.params[1]), None


@log_errors("medium")
@log_timing(1.0)
def compute_tail_risk(
    history: Sequence[TrendPoint],
    config: Optional[RiskEngineConfig] = None,
    entity_id: Optional[str] = None,
    window: Optional[int] = None,
    benchmark: Optional[Union[Sequence[TrendPoint], pd.Series]] = None,
) -> TailRiskMetrics:
    """
    Derive volatility, drawdown, VaR and Expected Shortfall from score history.

    Parameters
    ----------
    history : Sequence[TrendPoint]
        Score history for one entity (any order; sorted internally).
    config : RiskEngineConfig, optional
    entity_id : str, optional
        Defaults to the entity of the first point.
    window : int, optional
        Use only the last ``window`` points (defaults to ``config.history_window``,
        ``None`` meaning the full history).
    benchmark : Sequence[TrendPoint] | pd.Series, optional
        Reference score series for the beta-like sensitivity.

    Raises
    ------
    InsufficientHistoryError
        Fewer points than ``config.min_volatility_points``.
    """
    config = config or RiskEngineConfig.default()
    entity_id = entity_id or (history[0].entity_id if history else "unknown")
    window = window if window is not None else config.history_window

    series = score_series(history)
    if window is not None:
        series = series.iloc[-window:]

    n = len(series)
    if n < config.min_volatility_points:
        raise InsufficientHistoryError(
            f"{entity_id}: {n} trend points available, {config.min_volatility_points} required for volatility",
            entity_id=entity_id,
            available=n,
            required=config.min_volatility_points,
        )

    deltas = series.diff().dropna()
    volatility = float(deltas.std(ddof=0))
    mean_delta = float(deltas.mean())
    mean_score = float(series.mean())
    warnings: List[str] = []

    value_at_risk: Dict[str, Optional[float]] = {confidence_key(c): None for c in VAR_CONFIDENCE_LEVELS}
    expected_shortfall: Dict[str, Optional[float]] = {confidence_key(c): None for c in ES_CONFIDENCE_LEVELS}
    var_reliable = n >= config.min_var_points
    if var_reliable:
        for c in VAR_CONFIDENCE_LEVELS:
            value_at_risk[confidence_key(c)] = parametric_var(mean_score, volatility, c)
        for c in ES_CONFIDENCE_LEVELS:
            expected_shortfall[confidence_key(c)] = empirical_expected_shortfall(mean_score, deltas, volatility, c)
    else:
        warnings.append(
            f"Insufficient history for VaR/ES ({n} points < {config.min_var_points} required); "
            "value_at_risk/expected_shortfall not computed"
        )

    beta = None
    if benchmark is not None:
        bench = benchmark if isinstance(benchmark, pd.Series) else score_series(benchmark)
        beta, beta_warning = estimate_beta(deltas, bench, config.min_beta_observations)
        if beta_warning:
            warnings.append(beta_warning)

    for message in warnings:
        logger.warning("%s: %s", entity_id, message)

    return TailRiskMetrics(
        entity_id=entity_id,
        observations=n,
        volatility=volatility,
        max_drawdown=compute_max_drawdown(series),
        mean_delta=mean_delta,
        value_at_risk=value_at_risk,
        expected_shortfall=expected_shortfall,
        beta=beta,
        risk_adjusted_trend=mean_delta / volatility if volatility > _EPS else None,
        var_reliable=var_reliable,
        warnings=tuple(warnings),
    )
