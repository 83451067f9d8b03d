"""Storage protocols and in-memory backends for trend history and alerts.

Scoring logic only talks to these protocols, so a durable backend can be
swapped in without touching it. Each entity's history has a single logical
writer at a time (partitioned by entity id), so the in-memory stores keep
one independent list per entity and take no locks.
"""

from __future__ import annotations

from typing import Dict, List, Protocol, Sequence, runtime_checkable

from entity_risk_engine.data_objects import Alert, TrendPoint


@runtime_checkable
class TrendStore(Protocol):
    def get(self, entity_id: str) -> List[TrendPoint]: ...
    def put(self, entity_id: str, points: Sequence[TrendPoint]) -> None: ...
    def append(self, point: TrendPoint) -> None: ...


@runtime_checkable
class AlertStore(Protocol):
    def get_alerts(self, entity_id: str) -> List[Alert]: ...
    def put_alerts(self, entity_id: str, alerts: Sequence[Alert]) -> None: ...


class InMemoryTrendStore:
    """Per-entity trend lists held in process memory."""

    def __init__(self) -> None:
        self._points: Dict[str, List[TrendPoint]] = {}

    def get(self, entity_id: str) -> List[TrendPoint]:
        return list(self._points.get(entity_id, ()))

    def put(self, entity_id: str, points: Sequence[TrendPoint]) -> None:
        self._points[entity_id] = list(points)

    def append(self, point: TrendPoint) -> None:
        self._points.setdefault(point.entity_id, []).append(point)

    def entity_ids(self) -> List[str]:
        return sorted(self._points)


class InMemoryAlertStore:
    """Per-entity alert log; alerts are replaced by updated copies, never removed."""

    def __init__(self) -> None:
        self._alerts: Dict[str, List[Alert]] = {}

    def get_alerts(self, entity_id: str) -> List[Alert]:
        return list(self._alerts.get(entity_id, ()))

    def put_alerts(self, entity_id: str, alerts: Sequence[Alert]) -> None:
        self._alerts[entity_id] = list(alerts)
