"""Logging helpers and instrumentation decorators for entity_risk_engine."""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable


risk_logger = logging.getLogger("entity_risk_engine")

_SEVERITY_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}


def log_operation(name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Log start and completion of an engine operation at debug level."""

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            risk_logger.debug("[%s] start", name)
            result = fn(*args, **kwargs)
            risk_logger.debug("[%s] done", name)
            return result

        return wrapper

    return deco


def log_timing(threshold: float = 0.0) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Warn when the wrapped call takes longer than ``threshold`` seconds."""

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - t0
                if elapsed > threshold:
                    risk_logger.warning("slow_operation: %s took %.3fs (threshold %.3fs)", fn.__qualname__, elapsed, threshold)

        return wrapper

    return deco


def log_errors(severity: str = "medium") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Log exceptions escaping the wrapped call, then re-raise them."""
    level = _SEVERITY_LEVELS.get(severity, logging.WARNING)

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                risk_logger.log(level, "%s failed [%s]: %s: %s", fn.__qualname__, severity, type(exc).__name__, exc)
                raise

        return wrapper

    return deco


def log_critical_alert(
    alert_type: str,
    severity: str,
    message: str,
    action: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    risk_logger.warning(
        "critical_alert: type=%s severity=%s message=%s action=%s details=%s",
        alert_type,
        severity,
        message,
        action or "-",
        details or {},
    )
