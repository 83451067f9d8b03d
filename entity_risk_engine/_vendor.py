"""Small serialization/coercion helpers shared by result objects."""

from __future__ import annotations

import dataclasses
import math
from datetime import datetime
from typing import Any, Mapping

import numpy as np
import pandas as pd


def make_json_safe(obj: Any) -> Any:
    """Recursively convert values into JSON-serializable forms."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        to_dict = getattr(obj, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        return make_json_safe(dataclasses.asdict(obj))

    if isinstance(obj, Mapping):
        out = {}
        for key, value in obj.items():
            if isinstance(key, (pd.Timestamp, datetime)):
                safe_key = key.isoformat()
            elif isinstance(key, (int, float, str, bool, type(None))):
                safe_key = key
            else:
                safe_key = str(key)
            out[safe_key] = make_json_safe(value)
        return out

    if isinstance(obj, (list, tuple, set, frozenset)):
        return [make_json_safe(item) for item in obj]

    if isinstance(obj, pd.DataFrame):
        return make_json_safe(obj.to_dict("records"))

    if isinstance(obj, pd.Series):
        return {str(k): make_json_safe(v) for k, v in obj.to_dict().items()}

    if isinstance(obj, np.ndarray):
        return make_json_safe(obj.tolist())

    if isinstance(obj, np.integer):
        return int(obj)

    if isinstance(obj, np.floating):
        return _finite_or_none(float(obj))

    if isinstance(obj, np.bool_):
        return bool(obj)

    if isinstance(obj, (pd.Timestamp, datetime)):
        return obj.isoformat()

    if isinstance(obj, float):
        return _finite_or_none(obj)

    if isinstance(obj, (int, str, bool, type(None))):
        return obj

    return str(obj)


def _finite_or_none(value: float) -> float | None:
    return value if math.isfinite(value) else None


def _to_float(value: Any) -> float | None:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None
