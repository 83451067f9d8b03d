"""
Multi-entity scoring against an injected metric source.

Scoring is pure and stateless per entity, so entities are fetched and
scored on independent worker threads. The metric source is the only slow
part: a fetch that fails, misses the caller's deadline or is cancelled
before it starts yields an unscored, ``degraded`` profile for that entity.
Every requested entity appears in the result; none is silently dropped.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, UTC
from typing import Dict, Iterable, Optional, Protocol, Sequence, runtime_checkable

from entity_risk_engine._logging import log_critical_alert, log_timing, risk_logger
from entity_risk_engine.config import RiskEngineConfig
from entity_risk_engine.data_objects import BatchResult, Metric, RiskProfile
from entity_risk_engine.exceptions import InsufficientDataError
from entity_risk_engine.risk_score import compute_entity_risk


@runtime_checkable
class MetricSource(Protocol):
    """Data-ingestion collaborator supplying raw metrics for one entity.

    May be slow or raise; an incomplete category set is normal.
    """

    def fetch_metrics(self, entity_id: str) -> Sequence[Metric]: ...


class StaticMetricSource:
    """In-memory metric source keyed by entity id (tests, CLI, replay)."""

    def __init__(self, metrics_by_entity: Dict[str, Sequence[Metric]]):
        self._metrics = {k: list(v) for k, v in metrics_by_entity.items()}

    def fetch_metrics(self, entity_id: str) -> Sequence[Metric]:
        if entity_id not in self._metrics:
            raise KeyError(f"No metrics for entity {entity_id}")
        return list(self._metrics[entity_id])


class _Cancelled(Exception):
    pass


def score_or_unscored(
    entity_id: str,
    metrics: Iterable[Metric],
    config: RiskEngineConfig,
    as_of: datetime,
) -> RiskProfile:
    """``compute_entity_risk``, turning "no category present" into an unscored profile."""
    metrics = list(metrics)
    try:
        return compute_entity_risk(entity_id, metrics, config=config, as_of=as_of)
    except InsufficientDataError:
        categories = set(config.categories)
        return RiskProfile.unscored(
            entity_id,
            as_of,
            missing_categories=config.categories,
            excluded_metrics=tuple(
                f"{m.category}.{m.name}" for m in metrics if m.category not in categories
            ),
        )


def _degraded(entity_id: str, as_of: datetime, config: RiskEngineConfig, reason: str) -> RiskProfile:
    log_critical_alert(
        "entity_data_unavailable",
        "medium",
        f"ENTITY DEGRADED: Entity={entity_id}, Reason={reason}",
        "Check metric source availability",
    )
    return RiskProfile.unscored(
        entity_id,
        as_of,
        missing_categories=config.categories,
        degraded=True,
        degraded_reason=reason,
    )


@log_timing(5.0)
def score_entities(
    entity_ids: Sequence[str],
    source: MetricSource,
    config: Optional[RiskEngineConfig] = None,
    deadline: Optional[float] = None,
    max_workers: int = 8,
    cancel_event: Optional[threading.Event] = None,
    as_of: Optional[datetime] = None,
) -> BatchResult:
    """
    Fetch and score many entities in parallel.

    Parameters
    ----------
    entity_ids : Sequence[str]
        Entities to score; duplicates are scored once.
    source : MetricSource
        Injected data source; called once per entity from a worker thread.
    deadline : float, optional
        Seconds to wait for the whole batch. Entities still outstanding are
        returned as degraded ("deadline exceeded").
    cancel_event : threading.Event, optional
        When set, entities whose fetch has not started yet are returned as
        degraded ("cancelled"). A fetch already running is not interrupted.

    Returns
    -------
    BatchResult
        One profile per requested entity, in request order.
    """
    config = config or RiskEngineConfig.default()
    as_of = as_of or datetime.now(UTC)
    ordered = list(dict.fromkeys(entity_ids))
    if not ordered:
        return BatchResult(profiles={})

    def _fetch_and_score(entity_id: str) -> RiskProfile:
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()
        metrics = source.fetch_metrics(entity_id)
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()
        return score_or_unscored(entity_id, metrics, config, as_of)

    profiles: Dict[str, RiskProfile] = {}
    ex = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(ordered))))
    try:
        futures: Dict[Future, str] = {ex.submit(_fetch_and_score, eid): eid for eid in ordered}
        done, pending = wait(futures, timeout=deadline)

        for fut in done:
            eid = futures[fut]
            try:
                profiles[eid] = fut.result()
            except _Cancelled:
                profiles[eid] = _degraded(eid, as_of, config, "cancelled")
            except Exception as e:
                profiles[eid] = _degraded(eid, as_of, config, f"fetch failed: {type(e).__name__}: {e}")

        for fut in pending:
            fut.cancel()
            profiles[futures[fut]] = _degraded(futures[fut], as_of, config, "deadline exceeded")
    finally:
        ex.shutdown(wait=False, cancel_futures=True)

    degraded = tuple(eid for eid in ordered if profiles[eid].degraded)
    if degraded:
        risk_logger.warning("Batch scored %d entities, %d degraded: %s", len(ordered), len(degraded), ", ".join(degraded))
    return BatchResult(profiles={eid: profiles[eid] for eid in ordered}, degraded=degraded)
