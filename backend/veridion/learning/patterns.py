"""
Incident Pattern Recognition Engine
===================================

Rule-based pattern mining over resolved operational incidents (DORA Art. 13):

  RECURRING   same category/type repeating at a regular interval
  SEASONAL    weekly or daily peaks in incident occurrence
  CASCADE     bursts of incidents within a 60-minute chain touching several systems
  CORRELATED  systems whose incident sets overlap (Jaccard similarity)

Monthly incident counts are also screened for spikes.
"""

from __future__ import annotations

import logging
import math
import itertools
import re
import threading
import time
import uuid
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from veridion.models.incident_model import PATTERN_TYPES, Incident

logger = logging.getLogger(__name__)

# ── Thresholds ────────────────────────────────────────────────────────────────
MODEL_VERSION = "1.0.0"
ANALYZED_STATUSES = ("RESOLVED", "CLOSED")
SEVERITY_LEVELS = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

RECURRING_MAX_CV = 0.5
RECURRING_MAX_INTERVAL_DAYS = 60
TEMPORAL_MIN_INCIDENTS = 10
PEAK_DAY_RATIO = 1.5
PEAK_HOUR_RATIO = 2.0
PEAK_MIN_COUNT = 3
MAX_PEAK_DAYS = 3
MAX_PEAK_HOURS = 6
CASCADE_WINDOW_MINUTES = 60
CASCADE_MIN_SYSTEMS = 2
CORRELATION_MIN_JACCARD = 0.3
CORRELATION_TOP_N = 5
ANOMALY_MIN_MONTHS = 3
TOP_PATTERNS = 10
COMMON_ROOT_CAUSES = 3

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
_NON_TOKEN = re.compile(r"[^a-z0-9\s]")


def _as_utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def _day_of_week(dt: datetime) -> int:
    """0 = Sunday .. 6 = Saturday."""
    return (dt.weekday() + 1) % 7


def tokenize(text: str) -> List[str]:
    cleaned = _NON_TOKEN.sub("", (text or "").lower())
    return [t for t in cleaned.split() if len(t) > 2]


def week_of_year(dt: datetime) -> int:
    start = datetime(dt.year, 1, 1, tzinfo=dt.tzinfo)
    days = (dt - start).total_seconds() / 86400.0
    return math.ceil((days + _day_of_week(start) + 1) / 7)


def group_consecutive_hours(hours: Iterable[int]) -> str:
    """[1, 2, 3, 9] -> '1:00-3:00, 9:00'"""
    ordered = sorted(hours)
    if not ordered:
        return ""
    ranges = []
    start = end = ordered[0]
    for h in ordered[1:]:
        if h == end + 1:
            end = h
            continue
        ranges.append(f"{start}:00" if start == end else f"{start}:00-{end}:00")
        start = end = h
    ranges.append(f"{start}:00" if start == end else f"{start}:00-{end}:00")
    return ", ".join(ranges)


class PatternRecognitionEngine:
    """
    Usage
    -----
    engine = PatternRecognitionEngine(store=ResultStore(), evidence=EvidenceRecorder())
    result = engine.analyze_patterns(incidents)
    """

    def __init__(self, similarity_threshold: float = 0.7, min_pattern_incidents: int = 3,
                 analysis_window_days: int = 365, store=None, evidence=None):
        self.similarity_threshold = similarity_threshold
        self.min_pattern_incidents = min_pattern_incidents
        self.analysis_window_days = analysis_window_days
        self.store = store
        self.evidence = evidence
        # store-less runs number patterns locally; stored ones take the next free
        # sequence at insert time
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    # ── Entry point ───────────────────────────────────────────────────────────
    def analyze_patterns(self, incidents: Sequence[Incident],
                         now: Optional[datetime] = None) -> Dict[str, Any]:
        t0 = time.time()
        analysis_id = f"analysis-{uuid.uuid4().hex[:12]}"
        range_end = _as_utc(now) if now else datetime.now(timezone.utc)
        range_start = range_end - timedelta(days=self.analysis_window_days)

        selected = sorted(
            (i for i in incidents
             if (i.status or "").upper() in ANALYZED_STATUSES
             and range_start <= _as_utc(i.occurred_at) <= range_end),
            key=lambda i: _as_utc(i.occurred_at),
        )
        logger.info("Analyzing %d of %d incidents (window %d days)",
                    len(selected), len(incidents), self.analysis_window_days)

        features = [self.extract_features(i) for i in selected]

        patterns: List[Dict[str, Any]] = []
        patterns += self.detect_recurring_patterns(selected)
        patterns += self.detect_temporal_patterns(selected, features)
        patterns += self.detect_cascade_patterns(selected)
        patterns += self.detect_correlated_patterns(selected)
        anomalies = self.detect_anomalies(selected)

        n_new, n_updated = 0, 0
        stored: List[Dict[str, Any]] = []
        claimed: set = set()
        with self._lock:
            for pattern in patterns:
                saved, created = self._upsert(pattern, claimed)
                claimed.add(saved["id"])
                stored.append(saved)
                if created:
                    n_new += 1
                else:
                    n_updated += 1

        if self.evidence is not None:
            self.evidence.record(
                "INCIDENT.PATTERN.ANALYSIS_COMPLETED",
                severity="INFO",
                metadata={
                    "analysis_id": analysis_id,
                    "incidents_analyzed": len(selected),
                    "patterns_found": len(stored),
                    "new_patterns": n_new,
                    "updated_patterns": n_updated,
                    "anomalies_detected": len(anomalies),
                },
            )

        by_type = {t: 0 for t in PATTERN_TYPES}
        for p in stored:
            by_type[p["type"]] += 1

        top = sorted(stored, key=lambda p: len(p["related_incidents"]), reverse=True)[:TOP_PATTERNS]
        elapsed_ms = int((time.time() - t0) * 1000)
        logger.info("Pattern analysis %s completed in %d ms: %d patterns, %d anomalies",
                    analysis_id, elapsed_ms, len(stored), len(anomalies))

        return {
            "analysis_id": analysis_id,
            "analyzed_at": datetime.now(timezone.utc).isoformat(),
            "incidents_analyzed": len(selected),
            "time_range_start": range_start.isoformat(),
            "time_range_end": range_end.isoformat(),
            "patterns_found": {"new": n_new, "updated": n_updated, "total": len(stored)},
            "patterns_by_type": by_type,
            "top_patterns": [
                {
                    "pattern_id": p["pattern_id"],
                    "name": p["name"],
                    "type": p["type"],
                    "incident_count": len(p["related_incidents"]),
                    "confidence": p["confidence_score"],
                }
                for p in top
            ],
            "recommendations_generated": 0,
            "anomalies": anomalies,
            "model_version": MODEL_VERSION,
            "processing_time_ms": elapsed_ms,
            "patterns": stored,
        }

    # ── Features ──────────────────────────────────────────────────────────────
    def extract_features(self, incident: Incident) -> Dict[str, Any]:
        at = _as_utc(incident.occurred_at)
        return {
            "incident_id": incident.id,
            "day_of_week": _day_of_week(at),
            "hour_of_day": at.hour,
            "month_of_year": at.month,
            "week_of_year": week_of_year(at),
            "category": incident.category or "",
            "severity": incident.severity or "",
            "type": incident.type or "",
            "duration_minutes": incident.duration_minutes or 0,
            "affected_users": incident.affected_users or 0,
            "affected_systems": list(incident.affected_systems),
            "affected_services": list(incident.affected_services),
            "title_tokens": tokenize(incident.title),
            "description_tokens": tokenize(incident.description),
            "root_cause_tokens": tokenize(incident.root_causes[0] if incident.root_causes else ""),
        }

    # ── Detectors ─────────────────────────────────────────────────────────────
    def detect_recurring_patterns(self, incidents: Sequence[Incident]) -> List[Dict[str, Any]]:
        groups: Dict[tuple, List[Incident]] = defaultdict(list)
        for inc in incidents:
            groups[(inc.category or "UNKNOWN", inc.type or "UNKNOWN")].append(inc)

        patterns = []
        for (category, inc_type), group in groups.items():
            if len(group) < self.min_pattern_incidents:
                continue
            times = [_as_utc(i.occurred_at) for i in group]
            intervals = np.array([
                (b - a).total_seconds() / 86400.0 for a, b in zip(times, times[1:])
            ])
            if intervals.size == 0:
                continue

            avg = float(intervals.mean())
            std = float(intervals.std())
            cv = std / avg if avg > 0 else 1.0
            if cv < RECURRING_MAX_CV and avg < RECURRING_MAX_INTERVAL_DAYS:
                patterns.append(self._build_pattern(
                    "RECURRING",
                    name=f"Recurring {category} - {inc_type}",
                    description=(f"Pattern of {inc_type} incidents in {category} category "
                                 f"occurring approximately every {round(avg)} days"),
                    incidents=group,
                    confidence=min(100, round((1 - cv) * 100)),
                    avg_interval=avg,
                ))
        return patterns

    def detect_temporal_patterns(self, incidents: Sequence[Incident],
                                 features: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        n = len(incidents)
        if n < TEMPORAL_MIN_INCIDENTS:
            return []
        patterns = []

        day_counts = Counter(f["day_of_week"] for f in features)
        avg_per_day = n / 7
        peak_days = [
            (day, day_counts[day], day_counts[day] / avg_per_day)
            for day in range(7)
            if day_counts[day] / avg_per_day > PEAK_DAY_RATIO and day_counts[day] >= PEAK_MIN_COUNT
        ]
        if 0 < len(peak_days) <= MAX_PEAK_DAYS:
            names = ", ".join(DAY_NAMES[d] for d, _, _ in peak_days)
            days = {d for d, _, _ in peak_days}
            first_ratio = peak_days[0][2]
            patterns.append(self._build_pattern(
                "SEASONAL",
                name=f"Weekly Peak Pattern ({names})",
                description=f"Incidents are {round(first_ratio * 100 - 100)}% more likely to occur on {names}",
                incidents=[i for i, f in zip(incidents, features) if f["day_of_week"] in days],
                confidence=min(100, round(first_ratio * 50)),
                time_patterns={"day_of_week": sorted(days)},
            ))

        hour_counts = Counter(f["hour_of_day"] for f in features)
        avg_per_hour = n / 24
        peak_hours = [
            (hour, hour_counts[hour], hour_counts[hour] / avg_per_hour)
            for hour in range(24)
            if hour_counts[hour] / avg_per_hour > PEAK_HOUR_RATIO and hour_counts[hour] >= PEAK_MIN_COUNT
        ]
        if 0 < len(peak_hours) <= MAX_PEAK_HOURS:
            hours = {h for h, _, _ in peak_hours}
            ranges = group_consecutive_hours(hours)
            patterns.append(self._build_pattern(
                "SEASONAL",
                name=f"Daily Peak Pattern ({ranges})",
                description=f"Incidents are significantly more likely during {ranges}",
                incidents=[i for i, f in zip(incidents, features) if f["hour_of_day"] in hours],
                confidence=min(100, round(peak_hours[0][2] * 30)),
                time_patterns={"hour_of_day": sorted(hours)},
            ))
        return patterns

    def detect_cascade_patterns(self, incidents: Sequence[Incident]) -> List[Dict[str, Any]]:
        if len(incidents) < self.min_pattern_incidents:
            return []

        window = timedelta(minutes=CASCADE_WINDOW_MINUTES)
        chains: List[List[Incident]] = []
        current: List[Incident] = []
        for inc in incidents:
            if current and _as_utc(inc.occurred_at) - _as_utc(current[-1].occurred_at) > window:
                if len(current) >= self.min_pattern_incidents:
                    chains.append(current)
                current = []
            current.append(inc)
        if len(current) >= self.min_pattern_incidents:
            chains.append(current)

        patterns = []
        for chain in chains:
            systems = {s for inc in chain for s in inc.affected_systems}
            if len(systems) < CASCADE_MIN_SYSTEMS:
                continue
            patterns.append(self._build_pattern(
                "CASCADE",
                name=f"Cascade Pattern from {chain[0].category or 'Unknown'}",
                description=(f"{len(chain)} incidents cascading within {CASCADE_WINDOW_MINUTES} "
                             f"minutes, affecting {len(systems)} systems"),
                incidents=chain,
                confidence=min(100, len(chain) * 20),
            ))
        return patterns

    def detect_correlated_patterns(self, incidents: Sequence[Incident]) -> List[Dict[str, Any]]:
        if len(incidents) < self.min_pattern_incidents:
            return []

        by_system: Dict[str, set] = {}
        for inc in incidents:
            for system in inc.affected_systems:
                by_system.setdefault(system, set()).add(inc.id)

        systems = list(by_system)
        pairs = []
        for i, a in enumerate(systems):
            for b in systems[i + 1:]:
                shared = by_system[a] & by_system[b]
                union = by_system[a] | by_system[b]
                similarity = len(shared) / len(union) if union else 0.0
                if similarity > CORRELATION_MIN_JACCARD and len(shared) >= self.min_pattern_incidents:
                    pairs.append((a, b, similarity, shared))

        pairs.sort(key=lambda p: p[2], reverse=True)
        patterns = []
        for a, b, similarity, shared in pairs[:CORRELATION_TOP_N]:
            patterns.append(self._build_pattern(
                "CORRELATED",
                name=f"Correlated Systems: {a} & {b}",
                description=f"{a} and {b} have {round(similarity * 100)}% incident correlation",
                incidents=[inc for inc in incidents if inc.id in shared],
                confidence=round(similarity * 100),
            ))
        return patterns

    def detect_anomalies(self, incidents: Sequence[Incident]) -> List[Dict[str, str]]:
        if len(incidents) < TEMPORAL_MIN_INCIDENTS:
            return []
        monthly = Counter(_as_utc(i.occurred_at).strftime("%Y-%m") for i in incidents)
        if len(monthly) < ANOMALY_MIN_MONTHS:
            return []

        counts = np.array(list(monthly.values()), dtype=float)
        mean, std = float(counts.mean()), float(counts.std())
        anomalies = []
        for month, count in monthly.items():
            if count > mean + 2 * std:
                anomalies.append({
                    "type": "SPIKE",
                    "description": (f"Unusual spike in incidents during {month} "
                                    f"({count} vs average {round(mean)})"),
                    "severity": "HIGH" if count > mean + 3 * std else "MEDIUM",
                })
        return anomalies

    # ── Pattern records ───────────────────────────────────────────────────────
    def _build_pattern(self, pattern_type: str, name: str, description: str,
                       incidents: Sequence[Incident], confidence: float,
                       avg_interval: float = 0.0,
                       time_patterns: Optional[Dict[str, List[int]]] = None) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        pattern_id = None if self.store is not None else f"PAT-{now.year}-{next(self._seq):04d}"

        total_downtime = sum(i.duration_minutes or 0 for i in incidents)
        total_users = sum(i.affected_users or 0 for i in incidents)

        # dict.fromkeys keeps first-seen order
        categories = list(dict.fromkeys(i.category for i in incidents if i.category))
        systems = list(dict.fromkeys(s for i in incidents for s in i.affected_systems))
        services = list(dict.fromkeys(s for i in incidents for s in i.affected_services))
        root_causes = Counter(rc for i in incidents for rc in i.root_causes)

        severity_idx = [
            SEVERITY_LEVELS.index(s) if s in SEVERITY_LEVELS else 1
            for s in ((i.severity or "MEDIUM").upper() for i in incidents)
        ]
        typical = SEVERITY_LEVELS[int(round(float(np.mean(severity_idx))))] if severity_idx else "MEDIUM"

        return {
            "id": f"pattern-{uuid.uuid4()}",
            "pattern_id": pattern_id,
            "name": name,
            "description": description,
            "type": pattern_type,
            "confidence": "HIGH" if confidence >= 80 else "MEDIUM" if confidence >= 50 else "LOW",
            "confidence_score": confidence,
            "detection_method": "RULE_BASED",
            "characteristics": {
                "frequency": f"{len(incidents)} occurrences",
                "average_interval": avg_interval,
                "typical_duration": total_downtime / len(incidents) if incidents else 0.0,
                "typical_severity": typical,
                "affected_categories": categories,
                "affected_systems": systems,
                "affected_services": services,
                "common_root_causes": [rc for rc, _ in root_causes.most_common(COMMON_ROOT_CAUSES)],
                "time_patterns": time_patterns,
            },
            "related_incidents": [
                {
                    "incident_id": i.id,
                    "occurred_at": _as_utc(i.occurred_at).isoformat(),
                    "severity": i.severity or "MEDIUM",
                    "match_score": 100,
                }
                for i in incidents
            ],
            "cumulative_impact": {
                "total_incidents": len(incidents),
                "total_downtime_minutes": total_downtime,
                "affected_users": total_users,
            },
            "risk_implications": {
                "risk_score_contribution": confidence * 0.1,
                "linked_asset_ids": [],
            },
            "status": "ACTIVE",
            "first_detected_at": now.isoformat(),
            "last_occurrence_at": (_as_utc(incidents[-1].occurred_at).isoformat()
                                   if incidents else now.isoformat()),
            "last_analyzed_at": now.isoformat(),
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }

    def _upsert(self, pattern: Dict[str, Any], claimed: set):
        """Returns (stored_pattern, created). Rows already matched in this run are skipped."""
        if self.store is None:
            return pattern, True

        with self.store.locked():
            existing = self.store.find_pattern(
                pattern["type"], pattern["characteristics"]["affected_categories"], exclude=claimed
            )
            if existing is None:
                year = datetime.now(timezone.utc).year
                pattern["pattern_id"] = f"PAT-{year}-{self.store.next_sequence('PAT', year):04d}"
                self.store.insert_pattern(pattern)

        if existing is None:
            if self.evidence is not None:
                self.evidence.record(
                    "INCIDENT.PATTERN.DETECTED",
                    severity="HIGH" if pattern["confidence"] == "HIGH" else "MEDIUM",
                    metadata={
                        "pattern_id": pattern["pattern_id"],
                        "pattern_name": pattern["name"],
                        "pattern_type": pattern["type"],
                        "confidence": pattern["confidence_score"],
                        "incident_count": len(pattern["related_incidents"]),
                    },
                )
            return pattern, True

        for key in ("related_incidents", "cumulative_impact", "confidence_score",
                    "confidence", "last_occurrence_at", "last_analyzed_at"):
            existing[key] = pattern[key]
        existing["updated_at"] = datetime.now(timezone.utc).isoformat()
        self.store.update_pattern(existing)
        return existing, False


def create_pattern_recognition_engine(store=None, evidence=None, **overrides) -> PatternRecognitionEngine:
    return PatternRecognitionEngine(store=store, evidence=evidence, **overrides)
