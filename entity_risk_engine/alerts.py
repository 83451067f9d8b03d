"""
Alert generation with hysteresis.

Applies thresholds to a fresh ``RiskProfile`` and reconciles the result
with the entity's existing alerts. This is the "what needs attention"
layer on top of scoring:
  - risk_score.py: "what the score is"
  - alerts.py: "which thresholds it breaches, and for how long"

Rules:
- Composite score below a tier threshold raises a severity-matched alert
  (extreme -> critical, high -> high, medium -> medium; low raises none).
- Each category scoring below ``category_alert_threshold`` raises a
  category-typed alert (financial -> "credit", others by category name),
  critical when below ``category_critical_threshold``. A category keeps a
  single open alert whose severity follows the score between cycles.
- An active alert is only deactivated after ``alert_hysteresis_cycles``
  consecutive assessments at or above its threshold; any new breach resets
  the count. Alerts are never removed from the returned set.
"""

from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from entity_risk_engine._logging import log_critical_alert, log_operation
from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.constants import (
    COMPOSITE_ALERT,
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
    SEVERITY_ORDER,
    TIER_HIGH,
    TIER_LOW,
    TIER_MEDIUM,
    TIER_TO_SEVERITY,
    get_category_alert_type,
    get_category_display_name,
)
from entity_risk_engine.data_objects import Alert, RiskProfile


def composite_thresholds(config: RiskEngineConfig) -> Dict[str, float]:
    """Severity -> score threshold below which the composite alert fires."""
    tiers = config.tier_thresholds
    return {
        SEVERITY_CRITICAL: float(tiers[TIER_HIGH]),
        SEVERITY_HIGH: float(tiers[TIER_MEDIUM]),
        SEVERITY_MEDIUM: float(tiers[TIER_LOW]),
    }


def _alert_id(entity_id: str, alert_type: str, severity: str, profile: RiskProfile) -> str:
    return f"{entity_id}:{alert_type}:{severity}:{profile.timestamp.isoformat()}"


def _category_for_alert_type(alert_type: str, config: RiskEngineConfig) -> Optional[str]:
    for category in config.categories:
        if get_category_alert_type(category) == alert_type:
            return category
    return None


def _composite_breach(profile: RiskProfile, config: RiskEngineConfig) -> Optional[Alert]:
    severity = TIER_TO_SEVERITY.get(profile.risk_tier)
    if severity is None:
        return None
    threshold = composite_thresholds(config)[severity]
    score = float(profile.overall_score)
    return Alert(
        alert_id=_alert_id(profile.entity_id, COMPOSITE_ALERT, severity, profile),
        entity_id=profile.entity_id,
        alert_type=COMPOSITE_ALERT,
        severity=severity,
        title=f"{profile.risk_tier.title()} risk entity detected",
        description=(
            f"Overall risk score {score:.3f} is below the {severity} threshold {threshold:.2f}"
        ),
        threshold=threshold,
        triggering_score=score,
        created_at=profile.timestamp,
        recommendations=tuple(profile.recommendations),
        last_evaluated_at=profile.timestamp,
    )


def _category_breaches(profile: RiskProfile, config: RiskEngineConfig) -> List[Alert]:
    breaches: List[Alert] = []
    for category, category_score in profile.category_scores.items():
        score = float(category_score.score)
        if score >= config.category_alert_threshold:
            continue
        severity = SEVERITY_CRITICAL if score < config.category_critical_threshold else SEVERITY_HIGH
        alert_type = get_category_alert_type(category)
        display = get_category_display_name(category)
        breaches.append(
            Alert(
                alert_id=_alert_id(profile.entity_id, alert_type, severity, profile),
                entity_id=profile.entity_id,
                alert_type=alert_type,
                severity=severity,
                title=f"{display} below threshold",
                description=(
                    f"{display} score {score:.3f} is below {config.category_alert_threshold:.2f}"
                ),
                threshold=float(config.category_alert_threshold),
                triggering_score=score,
                created_at=profile.timestamp,
                recommendations=(
                    f"Address {display} concerns through targeted improvement programs",
                    "Implement enhanced monitoring",
                ),
                last_evaluated_at=profile.timestamp,
            )
        )
    return breaches


def _current_score(alert: Alert, profile: RiskProfile, config: RiskEngineConfig) -> Optional[float]:
    if alert.alert_type == COMPOSITE_ALERT:
        return float(profile.overall_score)
    category = _category_for_alert_type(alert.alert_type, config)
    if category is None:
        return None
    return profile.category_score(category)


def _reassess(alert: Alert, profile: RiskProfile, config: RiskEngineConfig) -> Alert:
    """Advance the hysteresis state of one active alert."""
    score = _current_score(alert, profile, config)
    if score is None:
        # No reading for this factor this cycle: neither a breach nor a recovery.
        return alert

    if score < alert.threshold:
        return replace(alert, consecutive_recoveries=0, last_evaluated_at=profile.timestamp)

    recoveries = alert.consecutive_recoveries + 1
    if recoveries >= config.alert_hysteresis_cycles:
        return replace(
            alert,
            is_active=False,
            consecutive_recoveries=recoveries,
            last_evaluated_at=profile.timestamp,
            deactivated_at=profile.timestamp,
        )
    return replace(alert, consecutive_recoveries=recoveries, last_evaluated_at=profile.timestamp)


def _sort_alerts(alerts: List[Alert]) -> List[Alert]:
    """Active first, then by severity (critical > high > medium > low), then oldest first."""
    return sorted(
        alerts,
        key=lambda a: (not a.is_active, SEVERITY_ORDER.get(a.severity, len(SEVERITY_ORDER)), a.created_at),
    )


def _match_key(alert: Alert) -> Tuple[str, str, str]:
    """Composite alerts are tracked per severity band, category alerts per category."""
    if alert.alert_type == COMPOSITE_ALERT:
        return alert.key
    return (alert.entity_id, alert.alert_type, "")


def _log_critical(alert: Alert) -> None:
    log_critical_alert(
        alert.alert_type,
        alert.severity,
        f"{alert.entity_id}: {alert.title}",
        action="Review entity exposure",
        details={"score": alert.triggering_score, "threshold": alert.threshold},
    )


@log_operation("evaluate_alerts")
def evaluate_alerts(
    profile: RiskProfile,
    active_alerts: Sequence[Alert],
    config: Optional[RiskEngineConfig] = None,
) -> List[Alert]:
    """
    Reconcile an entity's alerts with a fresh assessment.

    Args:
        profile: The latest ``RiskProfile`` for the entity.
        active_alerts: The entity's current alerts (inactive ones are carried
            through unchanged).
        config: Thresholds and hysteresis settings.

    Returns:
        The updated alert set: every input alert (possibly deactivated) plus
        any newly raised ones, ordered active-first by severity. An unscored
        profile carries no evidence either way, so the alerts come back
        unchanged.
    """
    config = config or RiskEngineConfig.default()
    alerts = list(active_alerts)
    for alert in alerts:
        if alert.entity_id != profile.entity_id:
            raise ValueError(f"Alert {alert.alert_id} belongs to {alert.entity_id}, not {profile.entity_id}")
    if not profile.is_scored:
        return _sort_alerts(alerts)

    updated: List[Alert] = [
        _reassess(alert, profile, config) if alert.is_active else alert for alert in alerts
    ]
    open_alerts = {_match_key(a): i for i, a in enumerate(updated) if a.is_active}

    breaches: List[Alert] = []
    composite = _composite_breach(profile, config)
    if composite is not None:
        breaches.append(composite)
    breaches.extend(_category_breaches(profile, config))

    for breach in breaches:
        idx = open_alerts.get(_match_key(breach))
        if idx is not None:
            current = updated[idx]
            if current.severity != breach.severity:
                # Category alerts move between high and critical in place.
                updated[idx] = replace(
                    current,
                    severity=breach.severity,
                    description=breach.description,
                    triggering_score=breach.triggering_score,
                )
                if breach.severity == SEVERITY_CRITICAL:
                    _log_critical(breach)
            continue
        open_alerts[_match_key(breach)] = len(updated)
        updated.append(breach)
        if breach.severity == SEVERITY_CRITICAL:
            _log_critical(breach)

    return _sort_alerts(updated)
