"""Convert numpy / pydantic / datetime values into JSON-safe Python types."""

from __future__ import annotations

import math
from datetime import date, datetime
from enum import Enum
from typing import Any

import numpy as np
from pydantic import BaseModel


def to_serializable(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_serializable(v) for v in obj]
    if isinstance(obj, BaseModel):
        return to_serializable(obj.model_dump())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, np.ndarray):
        return to_serializable(obj.tolist())
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        value = float(obj)
        # JSON has no NaN/Infinity
        return value if math.isfinite(value) else None
    return obj
