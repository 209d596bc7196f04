import concurrent.futures
from datetime import datetime, timezone

import pytest

from veridion.core.errors import InvalidTransitionError, NotFoundError
from veridion.core.evidence import EvidenceRecorder
from veridion.learning.recommendations import RecommendationGenerator
from veridion.models.database import ResultStore
from veridion.models.incident_model import RootCause, RootCauseAnalysis


def _pattern(pattern_type: str = "RECURRING", confidence: float = 100, n_incidents: int = 12,
             status: str = "ACTIVE", **characteristics) -> dict:
    chars = {
        "affected_systems": ["auth-service"],
        "affected_categories": ["NETWORK"],
        "average_interval": 7.0,
        "typical_duration": 42.4,
        "time_patterns": None,
        **characteristics,
    }
    return {
        "id": "pattern-1",
        "pattern_id": "PAT-2025-0001",
        "type": pattern_type,
        "status": status,
        "confidence_score": confidence,
        "characteristics": chars,
        "related_incidents": [{"incident_id": f"INC-{i}"} for i in range(n_incidents)],
    }


def test_recurring_pattern_yields_monitoring_and_runbook() -> None:
    recs = RecommendationGenerator().generate_from_patterns([_pattern()])
    assert [r["title"] for r in recs] == [
        "Implement automated monitoring for NETWORK incidents",
        "Establish runbook for NETWORK incident response",
    ]
    assert [r["type"] for r in recs] == ["PREVENTIVE", "PROCESS_IMPROVEMENT"]
    assert [r["priority"] for r in recs] == ["CRITICAL", "CRITICAL"]
    assert [r["impact_prediction"]["incident_reduction"] for r in recs] == [30, 20]
    assert recs[0]["rationale"] == (
        "Pattern analysis shows 12 recurring NETWORK incidents with average interval of 7 days."
    )
    assert recs[0]["source_type"] == "PATTERN"
    assert recs[0]["source_id"] == "pattern-1"
    assert recs[0]["impact_prediction"]["affected_patterns"] == ["PAT-2025-0001"]
    assert recs[0]["status"] == "PROPOSED"
    assert recs[0]["generated_by"] == "RULE_ENGINE"


def test_low_confidence_and_inactive_patterns_are_skipped() -> None:
    generator = RecommendationGenerator()
    assert generator.generate_from_patterns([_pattern(confidence=40)]) == []
    assert generator.generate_from_patterns([_pattern(status="RESOLVED")]) == []


def test_cascade_and_seasonal_templates_fill_placeholders() -> None:
    generator = RecommendationGenerator()
    cascade = generator.generate_from_patterns([
        _pattern("CASCADE", confidence=60, n_incidents=3,
                 affected_systems=["payments-api", "ledger-db", "core-banking"]),
    ])
    assert cascade[0]["title"] == "Implement circuit breaker for payments-api, ledger-db, core-banking"
    assert cascade[0]["rationale"] == "Cascade pattern detected affecting 3 systems within 42 minutes."
    assert cascade[0]["priority"] == "MEDIUM"

    seasonal = generator.generate_from_patterns([
        _pattern("SEASONAL", confidence=100, time_patterns={"day_of_week": [1]}),
    ])
    assert "(Mon)" in seasonal[0]["description"]
    assert seasonal[1]["rationale"] == "Pattern analysis identifies Mon as high-incident periods."


def test_root_cause_analysis_recommendations() -> None:
    rca = RootCauseAnalysis(
        id="rca-1",
        incident_id="INC-0001",
        root_causes=[
            RootCause(category="HUMAN_ERROR", description="Operator skipped failover checklist",
                      confidence=40, is_primary=True),
            RootCause(category="VENDOR_ISSUE", description="CDN provider outage", confidence=80),
            RootCause(category="CAPACITY_ISSUE", description="Connection pool", confidence=60),
            RootCause(category="UNKNOWN", is_primary=True),
        ],
    )
    recs = RecommendationGenerator().generate_from_root_cause(rca)
    assert [r["title"] for r in recs] == [
        "Conduct training on Operator skipped failover checklist",
        "Implement pre-change checklist for Operator skipped failover checklist",
        "Escalate recurring issues to Vendor",
        "Implement vendor monitoring for Vendor",
    ]
    assert recs[0]["impact_prediction"]["incident_reduction"] == 10
    assert recs[2]["impact_prediction"]["incident_reduction"] == 20
    assert {r["source_type"] for r in recs} == {"ROOT_CAUSE"}
    assert {r["source_id"] for r in recs} == {"rca-1"}
    assert {r["priority"] for r in recs} == {"LOW"}


@pytest.mark.parametrize("count,confidence,expected", [
    (10, 80, "CRITICAL"),
    (5, 70, "HIGH"),
    (3, 50, "MEDIUM"),
    (2, 90, "LOW"),
    (3, None, "MEDIUM"),
    (12, 0, "MEDIUM"),
])
def test_calculate_priority(count, confidence, expected) -> None:
    assert RecommendationGenerator.calculate_priority(count, confidence) == expected


def test_interpolate_keeps_zero_and_names_missing_values() -> None:
    text = RecommendationGenerator.interpolate(
        "{count} incidents on {systems} for {vendor}", {"count": 0, "systems": "", "vendor": None}
    )
    assert text == "0 incidents on systems for vendor"


def test_format_time_pattern() -> None:
    fmt = RecommendationGenerator.format_time_pattern
    assert fmt(None) == "various times"
    assert fmt({"day_of_week": [1, 5], "hour_of_day": [17, 9]}) == "Mon, Fri at 9:00-17:00"
    assert fmt({"hour_of_day": [14]}) == "14:00-14:00"


def test_recommendation_ids_continue_from_highest_stored_sequence() -> None:
    store = ResultStore()
    year = datetime.now(timezone.utc).year
    first = RecommendationGenerator(store)
    saved = first.save_recommendations(first.generate_from_patterns([_pattern()]))
    assert [r["recommendation_id"] for r in saved] == [f"REC-{year}-0001", f"REC-{year}-0002"]

    # skipped duplicates are never numbered
    (unsaved, _) = first.generate_from_patterns([_pattern()])
    assert unsaved["recommendation_id"] is None
    assert first.save_recommendations([unsaved]) == []

    numbered = first.generate_from_patterns([_pattern("CASCADE", 90, 4)])[0]
    numbered["recommendation_id"] = f"REC-{year}-0009"
    store.insert_recommendation(numbered)

    second = RecommendationGenerator(store)
    second.save_recommendations(second.generate_from_patterns([_pattern("CORRELATED", 90, 4)]))

    ids = sorted(r["recommendation_id"] for r in store.list_recommendations())
    assert ids == [f"REC-{year}-{n:04d}" for n in (1, 2, 9, 10, 11)]


def test_recommendations_without_store_are_numbered_locally() -> None:
    generator = RecommendationGenerator()
    recs = generator.generate_from_patterns([_pattern()])
    year = datetime.now(timezone.utc).year
    assert [r["recommendation_id"] for r in recs] == [f"REC-{year}-0001", f"REC-{year}-0002"]
    assert generator.save_recommendations(recs) == recs


def test_concurrent_saves_never_reuse_an_id() -> None:
    store = ResultStore()
    generators = [RecommendationGenerator(store) for _ in range(4)]
    patterns = [_pattern(affected_categories=[f"CAT{i}"]) for i in range(8)]

    def _save(i):
        gen = generators[i % len(generators)]
        return gen.save_recommendations(gen.generate_from_patterns([patterns[i]]))

    with concurrent.futures.ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(_save, range(len(patterns))))

    ids = [r["recommendation_id"] for r in store.list_recommendations()]
    assert len(ids) == 16
    assert len(set(ids)) == 16


def test_save_skips_open_duplicates_and_records_evidence() -> None:
    store = ResultStore()
    evidence = EvidenceRecorder(store)
    generator = RecommendationGenerator(store, evidence)

    saved = generator.save_recommendations(generator.generate_from_patterns([_pattern()]))
    assert len(saved) == 2
    assert generator.save_recommendations(generator.generate_from_patterns([_pattern()])) == []
    assert len(store.list_recommendations()) == 2

    events = evidence.events("INCIDENT.RECOMMENDATION.GENERATED")
    assert len(events) == 2
    assert {e["severity"] for e in events} == {"HIGH"}
    assert {e["metadata"]["priority"] for e in events} == {"CRITICAL"}


def test_status_lifecycle() -> None:
    store = ResultStore()
    generator = RecommendationGenerator(store)
    monitoring, runbook = generator.save_recommendations(generator.generate_from_patterns([_pattern()]))

    approved = generator.transition_status(monitoring["id"], "approved", "risk-officer")
    assert approved["status"] == "APPROVED"
    assert approved["approved_by"] == "risk-officer"
    assert [h["status"] for h in approved["status_history"]] == ["PROPOSED", "APPROVED"]

    with pytest.raises(InvalidTransitionError) as exc:
        generator.transition_status(monitoring["id"], "VERIFIED", "risk-officer")
    assert str(exc.value) == "Cannot move recommendation from APPROVED to VERIFIED"

    for status in ("IN_PROGRESS", "IMPLEMENTED", "VERIFIED"):
        rec = generator.transition_status(monitoring["id"], status, "ops")
    assert rec["verified_by"] == "ops"
    assert rec["implemented_by"] == "ops"

    rejected = generator.transition_status(runbook["id"], "REJECTED", "cto", reason="Already covered")
    assert rejected["rejection_reason"] == "Already covered"
    assert rejected["status_history"][-1]["reason"] == "Already covered"

    # neither title is open any more, so both can be proposed again
    assert len(generator.save_recommendations(generator.generate_from_patterns([_pattern()]))) == 2
    assert len(store.list_recommendations(status="PROPOSED")) == 2


def test_status_change_errors() -> None:
    store = ResultStore()
    generator = RecommendationGenerator(store)
    (rec, _) = generator.save_recommendations(generator.generate_from_patterns([_pattern()]))

    with pytest.raises(NotFoundError):
        generator.transition_status("rec-missing", "APPROVED", "x")
    with pytest.raises(ValueError):
        generator.transition_status(rec["id"], "DONE", "x")
    with pytest.raises(NotFoundError):
        RecommendationGenerator().transition_status(rec["id"], "APPROVED", "x")
