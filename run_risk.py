#!/usr/bin/env python3
# coding: utf-8

# File: run_risk.py

"""
Entity Risk CLI & API Interface Module

DUAL-MODE functions over ``entity_risk_engine``:

    function_name(entities_yaml, *, return_data: bool = False)

CLI Mode (default, return_data=False):
    - Prints a formatted report to stdout
    - Example: python run_risk.py --entities entities.yaml --portfolio

API Mode (return_data=True):
    - Returns a JSON-safe dictionary with the same analysis

Entities file layout (YAML):

    as_of: 2024-06-30T00:00:00Z          # optional, defaults to now
    entities:
      SUP-001:
        exposure: 1000000                # used by --portfolio
        last_updated: 2024-06-28         # optional metric freshness
        metrics:
          financial: {credit_score: 750, liquidity_ratio: 1.8}
          operational:
            delivery_reliability: 0.95
            custom_kpi: {value: 4.2, min: 0, max: 5, weight: 1, orientation: higher_is_better}
        history:                         # optional prior assessments
          - {timestamp: 2024-01-31, overall_score: 0.71}
    correlation:                         # optional N x N, entity order as above
      - [1.0, 0.3]
      - [0.3, 1.0]
"""

import argparse
import json
import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd
import yaml
from dotenv import load_dotenv

from entity_risk_engine import (
    InsufficientHistory,
    Metric,
    PortfolioRisk,
    RiskEngine,
    RiskEngineConfig,
    RiskProfile,
    TailRiskMetrics,
    TrendPoint,
    metrics_from_raw,
)
from entity_risk_engine._logging import log_errors, log_operation, log_timing
from entity_risk_engine._vendor import make_json_safe
from entity_risk_engine.constants import HIGHER_IS_BETTER, get_category_display_name

load_dotenv()

logger = logging.getLogger("entity_risk_engine.cli")


# ============================================================================
# Input loading
# ============================================================================

def _parse_timestamp(value: Any) -> datetime:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.to_pydatetime()


def load_entities_file(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, Mapping) or not isinstance(data.get("entities"), Mapping):
        raise ValueError(f"{path}: expected a top-level 'entities' mapping")
    return dict(data)


def build_metrics(
    metric_spec: Mapping[str, Mapping[str, Any]],
    config: RiskEngineConfig,
    last_updated: Optional[datetime] = None,
) -> List[Metric]:
    """
    Turn ``{category: {name: value | {value, min, max, ...}}}`` into metrics.

    Plain values are resolved against the metric catalog; mappings carry
    their own range so categories outside the catalog can be scored too.
    """
    metrics: List[Metric] = []
    for category, values in (metric_spec or {}).items():
        plain = {name: v for name, v in values.items() if not isinstance(v, Mapping)}
        metrics.extend(metrics_from_raw(category, plain, last_updated, config.metric_catalog))
        for name, spec in values.items():
            if not isinstance(spec, Mapping):
                continue
            metrics.append(
                Metric(
                    category=category,
                    name=name,
                    value=spec.get("value"),
                    min_value=spec.get("min"),
                    max_value=spec.get("max"),
                    weight=spec.get("weight", 1.0),
                    orientation=spec.get("orientation", HIGHER_IS_BETTER),
                    last_updated=_parse_timestamp(spec["last_updated"]) if spec.get("last_updated") else last_updated,
                )
            )
    return metrics


def _load_config(config_yaml: Optional[str]) -> RiskEngineConfig:
    return RiskEngineConfig.from_yaml(config_yaml) if config_yaml else RiskEngineConfig.default()


def _assess_all(engine: RiskEngine, data: Mapping[str, Any]) -> Dict[str, RiskProfile]:
    as_of = _parse_timestamp(data["as_of"]) if data.get("as_of") else datetime.now(UTC)
    profiles: Dict[str, RiskProfile] = {}
    for entity_id, spec in data["entities"].items():
        entity_id = str(entity_id)
        spec = spec or {}
        for h in spec.get("history") or []:
            engine.append_trend_point(
                entity_id,
                TrendPoint(
                    entity_id=entity_id,
                    timestamp=_parse_timestamp(h["timestamp"]),
                    overall_score=float(h["overall_score"]),
                    category_scores={k: float(v) for k, v in (h.get("category_scores") or {}).items()},
                ),
            )
        last_updated = _parse_timestamp(spec["last_updated"]) if spec.get("last_updated") else as_of
        metrics = build_metrics(spec.get("metrics") or {}, engine.config, last_updated)
        profiles[entity_id] = engine.assess_entity(entity_id, metrics, as_of=as_of)
    return profiles


# ============================================================================
# Text reports
# ============================================================================

def format_profile_report(
    profile: RiskProfile,
    trend: str,
    tail: Union[TailRiskMetrics, InsufficientHistory],
    stress: List[Any],
    alerts: List[Any],
) -> str:
    lines = [f"=== {profile.entity_id} ==="]
    if not profile.is_scored:
        lines.append("Status: UNSCORED (no risk category present, confidence 0.00)")
        return "\n".join(lines)

    coverage_note = " (partial coverage)" if profile.partial_coverage else ""
    lines.append(
        f"Overall score: {profile.overall_score:.3f}  Tier: {profile.risk_tier.upper()}  "
        f"Confidence: {profile.confidence:.2f}  Coverage: {profile.coverage:.0%}{coverage_note}"
    )
    lines.append(f"Trend: {trend}")
    for category, cs in profile.category_scores.items():
        lines.append(f"  {get_category_display_name(category):<26} {cs.score:6.3f}  ({cs.metric_count} metrics)")
    if profile.missing_categories:
        lines.append(f"  Missing: {', '.join(profile.missing_categories)}")
    if profile.excluded_metrics:
        lines.append(f"  Excluded: {'; '.join(profile.excluded_metrics)}")

    if isinstance(tail, TailRiskMetrics):
        var95 = tail.value_at_risk.get("95")
        var_text = f"{var95:.3f}" if var95 is not None else "n/a"
        lines.append(f"Tail risk: vol {tail.volatility:.4f}  max drawdown {tail.max_drawdown:.3f}  VaR95 {var_text}")
    else:
        lines.append(f"Tail risk: insufficient history ({tail.available}/{tail.required} points)")

    lines.append("Stress tests:")
    for r in stress:
        lines.append(
            f"  {r.scenario:<26} p={r.probability:.2f}  loss={r.estimated_loss:.3f}  recovery={r.recovery_days:.0f}d"
        )

    active = [a for a in alerts if a.is_active]
    if active:
        lines.append("Active alerts:")
        for a in active:
            lines.append(f"  [{a.severity.upper()}] {a.title}: {a.description}")

    lines.append("Recommendations:")
    for rec in profile.recommendations:
        lines.append(f"  - {rec}")
    return "\n".join(lines)


def format_portfolio_report(portfolio: PortfolioRisk) -> str:
    lines = ["=== PORTFOLIO ==="]
    if portfolio.degraded:
        lines.append(f"DEGRADED: penalized scores used for {', '.join(portfolio.degraded_entities)}")
    lines.append(f"Total exposure:          {portfolio.total_exposure:,.2f}")
    lines.append(f"Overall risk:            {portfolio.overall_risk:.3f}")
    lines.append(f"Portfolio volatility:    {portfolio.portfolio_volatility:.4f}")
    lines.append(f"Diversification benefit: {portfolio.diversification_benefit:.1%}")
    lines.append(f"Concentration index:     {portfolio.concentration_index:.3f}")
    lines.append("Risk contributions:")
    for c in portfolio.contributions:
        flag = " (degraded)" if c.degraded else ""
        lines.append(f"  {c.entity_id:<16} weight {c.exposure:6.1%}  contribution {c.contribution:6.1%}{flag}")
    lines.append("Scenario losses:")
    for s in portfolio.scenario_analysis:
        lines.append(
            f"  {s.scenario:<26} expected {s.expected_loss:,.2f}  worst case {s.worst_case_loss:,.2f}"
        )
    lines.append("Recommendations:")
    for r in portfolio.recommendations:
        lines.append(f"  [{r.priority}] {r.type}: {r.description}")
    return "\n".join(lines)


# ============================================================================
# Dual-mode entry points
# ============================================================================

@log_errors("high")
@log_operation("run_entities")
@log_timing(3.0)
def run_entities(
    entities_yaml: str,
    config_yaml: Optional[str] = None,
    *,
    return_data: bool = False,
    engine: Optional[RiskEngine] = None,
) -> Optional[Dict[str, Any]]:
    """
    Score every entity in the file, then stress test, tail-risk and alert each.

    Returns the structured result when ``return_data`` is True; otherwise
    prints the text report.
    """
    data = load_entities_file(entities_yaml)
    engine = engine or RiskEngine(_load_config(config_yaml))
    profiles = _assess_all(engine, data)

    results: Dict[str, Any] = {}
    reports: List[str] = []
    for entity_id, profile in profiles.items():
        trend = engine.classify_trend(entity_id)
        tail = engine.compute_tail_risk(entity_id)
        stress = engine.run_stress_tests(profile) if profile.is_scored else []
        alerts = engine.alert_store.get_alerts(entity_id)
        results[entity_id] = {
            "profile": profile,
            "trend": trend,
            "tail_risk": tail,
            "stress_tests": stress,
            "alerts": alerts,
        }
        reports.append(format_profile_report(profile, trend, tail, stress, alerts))

    if return_data:
        return make_json_safe({"entities": results, "formatted_report": "\n\n".join(reports)})
    print("\n\n".join(reports))
    return None


@log_errors("high")
@log_operation("run_portfolio")
@log_timing(3.0)
def run_portfolio(
    entities_yaml: str,
    config_yaml: Optional[str] = None,
    *,
    return_data: bool = False,
    engine: Optional[RiskEngine] = None,
) -> Optional[Dict[str, Any]]:
    """
    Aggregate every entity in the file into a portfolio view.

    Exposures come from each entity's ``exposure`` (default 1.0). The
    correlation matrix comes from the file when given, otherwise it is
    estimated from the entities' score histories.
    """
    data = load_entities_file(entities_yaml)
    engine = engine or RiskEngine(_load_config(config_yaml))
    profiles = _assess_all(engine, data)

    entity_ids = list(profiles)
    exposures = {eid: float((data["entities"][eid] or {}).get("exposure", 1.0)) for eid in entity_ids}
    correlation = data.get("correlation")
    if correlation is None:
        correlation = engine.estimate_correlation_matrix(entity_ids)

    portfolio = engine.compute_portfolio_risk(list(profiles.values()), exposures, correlation)
    report = format_portfolio_report(portfolio)

    if return_data:
        return make_json_safe({"portfolio": portfolio, "formatted_report": report})
    print(report)
    return None


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Entity risk scoring and portfolio aggregation")
    parser.add_argument("--entities", type=str, required=True, help="Path to YAML entities file")
    parser.add_argument("--portfolio", action="store_true", help="Aggregate the entities into a portfolio")
    parser.add_argument("--config", type=str, help="Path to YAML engine configuration overrides")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of the text report")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    runner = run_portfolio if args.portfolio else run_entities
    if args.json:
        result = runner(args.entities, args.config, return_data=True)
        result.pop("formatted_report", None)
        print(json.dumps(result, indent=2))
    else:
        runner(args.entities, args.config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
