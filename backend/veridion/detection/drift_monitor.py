"""Drift Monitor — rolling drift history per AI system and feature.

Each call to `record()` stores one drift result. The monitor reports:
  - trend of drift_score over the most recent window (least-squares slope)
  - cumulative drift: the summed scores of the most recent checks
  - whether the latest check escalated into a worse severity band

Slow-burn drift, where each check stays below the alarm threshold, is caught by
the cumulative ratio. The alarm fires on either the current or cumulative threshold.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple

import numpy as np

from .drift_engine import SEVERITY_ORDER

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────
HISTORY_LIMIT = 500
TREND_WINDOW = 10
TREND_SLOPE_EPSILON = 0.005
CUMULATIVE_WINDOW = 5   # this many threshold-steps of accumulated drift = full alarm


class DriftMonitor:
    """Keeps drift checks in bounded deques keyed by (system_id, feature)."""

    def __init__(self, alarm_threshold: float = 0.20, history_limit: int = HISTORY_LIMIT):
        self.alarm_threshold = max(alarm_threshold, 1e-9)
        self.history_limit = history_limit
        self._history: Dict[Tuple[str, str], Deque[Dict[str, Any]]] = {}

    def record(self, system_id: str, result: Dict[str, Any],
               feature: Optional[str] = None,
               timestamp: Optional[str] = None) -> Dict[str, Any]:
        """Store one drift result and return the updated status for that key."""
        feature = feature or result.get("feature_name") or result.get("drift_type", "feature")
        key = (system_id, feature)
        history = self._history.setdefault(key, deque(maxlen=self.history_limit))

        previous = history[-1] if history else None
        entry = {
            "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
            "drift_score": float(result.get("drift_score", 0.0)),
            "severity": result.get("severity", "none"),
            "drift_type": result.get("drift_type"),
        }
        history.append(entry)

        status = self.status(system_id, feature)
        if previous is not None and status["escalated"]:
            logger.warning(
                "Drift escalated for %s/%s: %s -> %s",
                system_id, feature, previous["severity"], entry["severity"],
            )
        return status

    def status(self, system_id: str, feature: str) -> Dict[str, Any]:
        history = self._history.get((system_id, feature))
        if not history:
            return {
                "system_id": system_id, "feature": feature, "n_checks": 0,
                "latest_score": 0.0, "latest_severity": "none", "trend": "stable",
                "slope": 0.0, "cumulative_drift": 0.0, "suspicion_score": 0.0,
                "escalated": False, "alarm": False,
            }

        scores = np.array([h["drift_score"] for h in history], dtype=float)
        latest = history[-1]
        slope = self._slope(scores[-TREND_WINDOW:])
        if slope > TREND_SLOPE_EPSILON:
            trend = "increasing"
        elif slope < -TREND_SLOPE_EPSILON:
            trend = "decreasing"
        else:
            trend = "stable"

        cumulative = float(scores[-TREND_WINDOW:].sum())
        escalated = False
        if len(history) > 1:
            prev_sev = history[-2]["severity"]
            escalated = SEVERITY_ORDER.index(latest["severity"]) > SEVERITY_ORDER.index(prev_sev)

        current_ratio = latest["drift_score"] / self.alarm_threshold
        cumulative_ratio = cumulative / (self.alarm_threshold * CUMULATIVE_WINDOW)
        alarm = (latest["drift_score"] > self.alarm_threshold or
                 cumulative > self.alarm_threshold * CUMULATIVE_WINDOW)

        return {
            "system_id": system_id,
            "feature": feature,
            "n_checks": len(history),
            "latest_score": round(latest["drift_score"], 4),
            "latest_severity": latest["severity"],
            "trend": trend,
            "slope": round(slope, 5),
            "cumulative_drift": round(cumulative, 4),
            "suspicion_score": float(min(1.0, max(current_ratio, cumulative_ratio))),
            "escalated": escalated,
            "alarm": alarm,
        }

    def timeline(self, system_id: str, feature: str) -> List[Dict[str, Any]]:
        """Drift scores over time, for charting."""
        history = self._history.get((system_id, feature), ())
        return [
            {**h, "alarm": h["drift_score"] > self.alarm_threshold}
            for h in history
        ]

    def systems(self) -> List[str]:
        return sorted({k[0] for k in self._history})

    def features(self, system_id: str) -> List[str]:
        return sorted(f for s, f in self._history if s == system_id)

    @staticmethod
    def _slope(values: np.ndarray) -> float:
        if len(values) < 2:
            return 0.0
        x = np.arange(len(values), dtype=float)
        slope, _intercept = np.polyfit(x, values, 1)
        return float(slope)
