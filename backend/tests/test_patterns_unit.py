import concurrent.futures
from datetime import datetime, timedelta, timezone

from veridion.core.evidence import EvidenceRecorder
from veridion.demo.data_generator import generate_incident_history
from veridion.learning.patterns import (
    PatternRecognitionEngine,
    group_consecutive_hours,
    tokenize,
    week_of_year,
)
from veridion.models.database import ResultStore
from veridion.models.incident_model import Incident

NOW = datetime(2025, 6, 18, 12, 0, tzinfo=timezone.utc)


def _incident(n: int, at: datetime, category: str = "NETWORK", inc_type: str = "OUTAGE",
              systems=("auth-service",), severity: str = "HIGH", **extra) -> Incident:
    return Incident(
        id=f"INC-{n:04d}", occurred_at=at, category=category, type=inc_type,
        severity=severity, affected_systems=list(systems), duration_minutes=30,
        affected_users=100, **extra,
    )


def test_tokenize_drops_punctuation_and_short_words() -> None:
    assert tokenize("Server-01 DOWN!! at db") == ["server01", "down"]
    assert tokenize("") == []


def test_group_consecutive_hours() -> None:
    assert group_consecutive_hours([9, 1, 2, 3]) == "1:00-3:00, 9:00"
    assert group_consecutive_hours([]) == ""


def test_week_of_year_starts_at_one() -> None:
    assert week_of_year(datetime(2025, 1, 1, tzinfo=timezone.utc)) == 1


def test_extract_features_uses_sunday_based_weekday_in_utc() -> None:
    engine = PatternRecognitionEngine()
    # 23:30 at UTC-02:00 is Monday 01:30 UTC
    at = datetime(2025, 1, 5, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    features = engine.extract_features(
        _incident(1, at, title="Disk full on db-01", root_causes=["Log rotation disabled"])
    )
    assert features["day_of_week"] == 1
    assert features["hour_of_day"] == 1
    assert features["title_tokens"] == ["disk", "full", "db01"]
    assert features["root_cause_tokens"] == ["log", "rotation", "disabled"]


def test_recurring_pattern_from_weekly_outages() -> None:
    start = datetime(2025, 3, 3, 9, tzinfo=timezone.utc)
    incidents = [_incident(i, start + timedelta(days=7 * i)) for i in range(4)]
    (pattern,) = PatternRecognitionEngine().detect_recurring_patterns(incidents)

    assert pattern["type"] == "RECURRING"
    assert pattern["name"] == "Recurring NETWORK - OUTAGE"
    assert pattern["description"].endswith("occurring approximately every 7 days")
    assert pattern["confidence_score"] == 100
    assert pattern["confidence"] == "HIGH"
    assert pattern["characteristics"]["average_interval"] == 7.0
    assert pattern["cumulative_impact"] == {
        "total_incidents": 4, "total_downtime_minutes": 120, "affected_users": 400,
    }
    assert pattern["pattern_id"].endswith("-0001")


def test_irregular_or_small_groups_are_not_recurring() -> None:
    engine = PatternRecognitionEngine()
    start = datetime(2025, 3, 3, tzinfo=timezone.utc)
    irregular = [_incident(i, start + timedelta(days=d)) for i, d in enumerate((0, 1, 30, 31))]
    assert engine.detect_recurring_patterns(irregular) == []
    assert engine.detect_recurring_patterns(irregular[:2]) == []


def test_temporal_patterns_find_weekly_and_daily_peaks() -> None:
    engine = PatternRecognitionEngine()
    start = datetime(2025, 1, 6, 9, tzinfo=timezone.utc)
    categories = ["NETWORK", "DATABASE", "APPLICATION"]
    incidents = [
        _incident(i, start + timedelta(weeks=i), category=categories[i % 3])
        for i in range(12)
    ]
    features = [engine.extract_features(i) for i in incidents]
    weekly, daily = engine.detect_temporal_patterns(incidents, features)

    assert weekly["name"] == "Weekly Peak Pattern (Monday)"
    assert weekly["characteristics"]["time_patterns"] == {"day_of_week": [1]}
    assert weekly["confidence_score"] == 100
    assert daily["name"] == "Daily Peak Pattern (9:00)"
    assert daily["characteristics"]["time_patterns"] == {"hour_of_day": [9]}
    assert len(daily["related_incidents"]) == 12


def test_temporal_patterns_need_ten_incidents() -> None:
    engine = PatternRecognitionEngine()
    start = datetime(2025, 1, 6, 9, tzinfo=timezone.utc)
    incidents = [_incident(i, start + timedelta(weeks=i)) for i in range(9)]
    assert engine.detect_temporal_patterns(incidents, [engine.extract_features(i) for i in incidents]) == []


def test_cascade_within_sixty_minutes_across_systems() -> None:
    start = datetime(2025, 5, 1, 14, 5, tzinfo=timezone.utc)
    incidents = [
        _incident(i, start + timedelta(minutes=20 * i), category="DATABASE", systems=[s])
        for i, s in enumerate(("payments-api", "ledger-db", "core-banking"))
    ]
    incidents.append(_incident(9, start + timedelta(hours=5), category="DATABASE"))
    (pattern,) = PatternRecognitionEngine().detect_cascade_patterns(incidents)

    assert pattern["name"] == "Cascade Pattern from DATABASE"
    assert pattern["description"] == "3 incidents cascading within 60 minutes, affecting 3 systems"
    assert pattern["confidence_score"] == 60
    assert [r["incident_id"] for r in pattern["related_incidents"]] == ["INC-0000", "INC-0001", "INC-0002"]


def test_cascade_on_single_system_is_ignored() -> None:
    start = datetime(2025, 5, 1, 14, tzinfo=timezone.utc)
    incidents = [_incident(i, start + timedelta(minutes=10 * i)) for i in range(3)]
    assert PatternRecognitionEngine().detect_cascade_patterns(incidents) == []


def test_correlated_systems_by_shared_incidents() -> None:
    start = datetime(2025, 2, 1, tzinfo=timezone.utc)
    incidents = [
        _incident(i, start + timedelta(days=10 * i), category=c, systems=["x", "y"])
        for i, c in enumerate(("NETWORK", "DATABASE", "APPLICATION"))
    ]
    (pattern,) = PatternRecognitionEngine().detect_correlated_patterns(incidents)
    assert pattern["name"] == "Correlated Systems: x & y"
    assert pattern["description"] == "x and y have 100% incident correlation"
    assert pattern["confidence_score"] == 100
    assert pattern["characteristics"]["affected_categories"] == ["NETWORK", "DATABASE", "APPLICATION"]


def test_monthly_spike_is_reported_as_anomaly() -> None:
    incidents = [
        _incident(m, datetime(2025, m, 10, tzinfo=timezone.utc), category="APPLICATION")
        for m in range(1, 7)
    ]
    incidents += [
        _incident(100 + d, datetime(2025, 7, d + 1, tzinfo=timezone.utc)) for d in range(10)
    ]
    anomalies = PatternRecognitionEngine().detect_anomalies(incidents)
    assert anomalies == [{
        "type": "SPIKE",
        "description": "Unusual spike in incidents during 2025-07 (10 vs average 2)",
        "severity": "MEDIUM",
    }]


def test_typical_severity_is_rounded_mean_level() -> None:
    start = datetime(2025, 3, 3, tzinfo=timezone.utc)
    incidents = [
        _incident(i, start + timedelta(days=7 * i), severity=s)
        for i, s in enumerate(("LOW", "CRITICAL", "MEDIUM"))
    ]
    (pattern,) = PatternRecognitionEngine().detect_recurring_patterns(incidents)
    assert pattern["characteristics"]["typical_severity"] == "MEDIUM"


def test_analyze_patterns_persists_and_updates_on_rerun() -> None:
    store = ResultStore()
    evidence = EvidenceRecorder(store)
    engine = PatternRecognitionEngine(store=store, evidence=evidence)
    incidents = [Incident(**i) for i in generate_incident_history(now=NOW)]

    first = engine.analyze_patterns(incidents, now=NOW)
    names = {p["name"] for p in first["patterns"]}
    assert "Recurring NETWORK - OUTAGE" in names
    assert "Cascade Pattern from DATABASE" in names
    assert "Correlated Systems: payments-api & ledger-db" in names
    assert first["incidents_analyzed"] == len(incidents) - 3
    assert first["patterns_found"]["new"] == first["patterns_found"]["total"] > 0
    assert first["patterns_by_type"]["RECURRING"] >= 1
    assert len(store.list_patterns()) == first["patterns_found"]["total"]

    second = engine.analyze_patterns(incidents, now=NOW)
    assert second["patterns_found"]["new"] == 0
    assert second["patterns_found"]["updated"] == first["patterns_found"]["total"]
    assert len(store.list_patterns()) == first["patterns_found"]["total"]

    detected = evidence.events("INCIDENT.PATTERN.DETECTED")
    completed = evidence.events("INCIDENT.PATTERN.ANALYSIS_COMPLETED")
    assert len(detected) == first["patterns_found"]["total"]
    assert len(completed) == 2
    assert completed[0]["regulatory_tags"] == ["DORA"]


def test_analyze_patterns_skips_open_and_out_of_window_incidents() -> None:
    engine = PatternRecognitionEngine(analysis_window_days=30)
    incidents = [
        _incident(1, NOW - timedelta(days=5)),
        _incident(2, NOW - timedelta(days=60)),
        _incident(3, NOW - timedelta(days=1), status="OPEN"),
        _incident(4, (NOW - timedelta(days=2)).replace(tzinfo=None), status="closed"),
    ]
    result = engine.analyze_patterns(incidents, now=NOW)
    assert result["incidents_analyzed"] == 2
    assert result["patterns"] == []
    assert result["model_version"] == "1.0.0"


def test_stored_pattern_ids_stay_unique_across_reruns_and_engines() -> None:
    store = ResultStore()
    year = datetime.now(timezone.utc).year
    start = NOW - timedelta(days=60)

    def weekly(category: str, first_id: int):
        return [_incident(first_id + i, start + timedelta(days=7 * i), category=category) for i in range(4)]

    first = PatternRecognitionEngine(store=store)
    first.analyze_patterns(weekly("NETWORK", 0), now=NOW)
    rerun = first.analyze_patterns(weekly("NETWORK", 0), now=NOW)
    assert rerun["patterns_found"] == {"new": 0, "updated": 1, "total": 1}
    first.analyze_patterns(weekly("DATABASE", 10), now=NOW)

    (numbered,) = first.detect_recurring_patterns(weekly("SECURITY", 20))
    assert numbered["pattern_id"] is None
    numbered["pattern_id"] = f"PAT-{year}-0007"
    store.insert_pattern(numbered)

    second = PatternRecognitionEngine(store=store)
    (created,) = second.analyze_patterns(weekly("APPLICATION", 30), now=NOW)["patterns"]
    assert created["pattern_id"] == f"PAT-{year}-0008"

    ids = [p["pattern_id"] for p in store.list_patterns()]
    assert len(ids) == len(set(ids))
    assert sorted(ids) == [f"PAT-{year}-{n:04d}" for n in (1, 2, 7, 8)]


def test_concurrent_analyses_on_one_store_do_not_collide() -> None:
    store = ResultStore()
    engines = [PatternRecognitionEngine(store=store) for _ in range(2)]
    start = NOW - timedelta(days=60)
    categories = ["NETWORK", "DATABASE", "SECURITY", "APPLICATION", "STORAGE", "IDENTITY"]

    def _analyze(n):
        incidents = [
            _incident(10 * n + i, start + timedelta(days=7 * i), category=categories[n]) for i in range(4)
        ]
        return engines[n % 2].analyze_patterns(incidents, now=NOW)

    with concurrent.futures.ThreadPoolExecutor(max_workers=3) as pool:
        results = list(pool.map(_analyze, range(len(categories))))

    assert all(r["patterns_found"]["new"] == 1 for r in results)
    ids = [p["pattern_id"] for p in store.list_patterns()]
    assert len(ids) == len(categories)
    assert len(set(ids)) == len(ids)
