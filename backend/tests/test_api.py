import pickle
import uuid
from datetime import datetime, timezone

import numpy as np
from fastapi.testclient import TestClient
from sklearn.linear_model import LogisticRegression

from veridion.demo.data_generator import generate_drift_scenario, generate_incident_history
from veridion.main import app

API = "/api/v1"
NOW = datetime(2025, 6, 18, 12, 0, tzinfo=timezone.utc)


def _model_and_csv(n_rows: int = 30):
    rng = np.random.default_rng(3)
    X = rng.normal(size=(n_rows, 3))
    y = (X[:, 0] > 0).astype(int)
    model = LogisticRegression().fit(X, y)
    lines = ["f1,f2,f3,label"] + [
        f"{a:.5f},{b:.5f},{c:.5f},{t}" for (a, b, c), t in zip(X, y)
    ]
    return pickle.dumps(model), ("\n".join(lines) + "\n").encode()


def test_health_and_root() -> None:
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": "1.0.0", "platform": "Veridion Insights"}
    assert client.get("/").json()["docs"] == "/docs"


def test_data_drift_is_monitored_and_stored() -> None:
    client = TestClient(app)
    system_id = f"credit-{uuid.uuid4().hex[:6]}"
    rng = np.random.default_rng(0)
    baseline = rng.normal(0, 1, 200).tolist()

    for shift in (0.0, 1.5):
        response = client.post(f"{API}/drift/data", json={
            "baseline_data": baseline,
            "current_data": (np.asarray(baseline) + shift).tolist(),
            "feature_name": "income",
            "system_id": system_id,
        })
        assert response.status_code == 200
    body = response.json()
    assert body["feature_name"] == "income"
    assert body["severity"] == "critical"
    assert body["monitor"]["n_checks"] == 2
    assert body["monitor"]["escalated"] is True

    status = client.get(f"{API}/drift/monitor/{system_id}").json()
    assert [f["feature"] for f in status["features"]] == ["income"]
    assert status["features"][0]["alarm"] is True

    timeline = client.get(f"{API}/drift/monitor/{system_id}/income/timeline").json()["timeline"]
    assert [t["alarm"] for t in timeline] == [False, True]

    history = client.get(f"{API}/drift/history", params={"limit": 100}).json()["results"]
    assert any(r["label"] == "income" for r in history)


def test_concept_prediction_and_categorical_drift() -> None:
    client = TestClient(app)
    rng = np.random.default_rng(1)

    series = np.concatenate([rng.normal(0.3, 0.05, 150), rng.normal(0.7, 0.05, 150)])
    concept = client.post(f"{API}/drift/concept", json={"predictions": series.tolist(), "window_size": 100})
    assert concept.status_code == 200
    assert concept.json()["drift_type"] == "concept_drift"
    assert concept.json()["severity"] == "critical"

    prediction = client.post(f"{API}/drift/prediction", json={
        "baseline_predictions": rng.beta(2, 5, 150).tolist(),
        "current_predictions": rng.beta(2, 5, 150).tolist(),
    })
    assert prediction.status_code == 200
    assert prediction.json()["detection_method"] == "ks_test_with_ci_analysis"

    categorical = client.post(f"{API}/drift/categorical", json={
        "baseline_categories": ["a"] * 80 + ["b"] * 40,
        "current_categories": ["a"] * 40 + ["b"] * 40 + ["c"] * 40,
        "feature_name": "segment",
    })
    assert categorical.status_code == 200
    assert categorical.json()["metadata"]["categories"] == ["a", "b", "c"]
    assert categorical.json()["feature_name"] == "segment"


def test_dataset_drift_on_generated_scenario() -> None:
    client = TestClient(app)
    scenario = generate_drift_scenario(n_samples=200, shift=0.8, seed=11)
    system_id = f"scorecard-{uuid.uuid4().hex[:6]}"
    response = client.post(f"{API}/drift/dataset", json={
        "baseline_data": {f["feature_name"]: f["baseline_data"] for f in scenario["features"]},
        "current_data": {f["feature_name"]: f["current_data"] for f in scenario["features"]},
        "feature_types": {f["feature_name"]: f["feature_type"] for f in scenario["features"]},
        "system_id": system_id,
    })
    assert response.status_code == 200
    body = response.json()
    assert len(body["feature_results"]) == 6
    assert len(body["monitor"]) == 6
    assert body["max_severity"] == "critical"

    features = client.get(f"{API}/drift/monitor/{system_id}").json()["features"]
    assert sorted(f["feature"] for f in features) == sorted(
        f["feature_name"] for f in scenario["features"]
    )


def test_quick_robustness_assessment_round_trip() -> None:
    client = TestClient(app)
    model_bytes, csv_bytes = _model_and_csv()
    response = client.post(
        f"{API}/robustness/assess",
        params={"seed": 7},
        files={
            "model_file": ("scorer.pkl", model_bytes, "application/octet-stream"),
            "dataset_file": ("eval.csv", csv_bytes, "text/csv"),
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "quick"
    assert body["model_metadata"]["model_type"] == "LogisticRegression"
    assert body["dataset"]["feature_names"] == ["f1", "f2", "f3"]
    assert body["dataset"]["label_column"] == "label"
    assert 0.0 <= body["score"] <= 1.0
    assert [r["test_type"] for r in body["detailed_results"]["edge_cases"]] == [
        "missing_data", "extreme_values", "outliers", "edge_combinations",
    ]

    stored = client.get(f"{API}/robustness/{body['analysis_id']}")
    assert stored.status_code == 200
    assert stored.json()["score"] == body["score"]
    history = client.get(f"{API}/robustness/history").json()["results"]
    assert any(r["id"] == body["analysis_id"] for r in history)


def test_full_robustness_assessment_includes_stress_tests() -> None:
    client = TestClient(app)
    model_bytes, csv_bytes = _model_and_csv(n_rows=12)
    response = client.post(
        f"{API}/robustness/assess",
        params={"mode": "full", "seed": 1},
        files={
            "model_file": ("scorer.pkl", model_bytes, "application/octet-stream"),
            "dataset_file": ("eval.csv", csv_bytes, "text/csv"),
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert [r["test_type"] for r in body["detailed_results"]["stress_tests"]] == [
        "concurrency_1", "concurrency_5", "concurrency_10", "concurrency_20", "concurrency_50",
    ]
    assert [a["attack_type"] for a in body["detailed_results"]["adversarial"]] == ["FGSM", "PGD"]
    assert 0.0 <= body["overall_robustness_score"] <= 1.0


def test_incident_learning_workflow() -> None:
    client = TestClient(app)
    incidents = generate_incident_history(now=NOW)
    response = client.post(f"{API}/incidents/learning/analyze", json={
        "incidents": incidents, "now": NOW.isoformat(),
    })
    assert response.status_code == 200
    body = response.json()
    assert body["incidents_analyzed"] == len(incidents) - 3
    assert body["patterns_found"]["total"] > 0
    assert isinstance(body["recommendations_generated"], int)
    assert "patterns" in body

    recurring = client.get(f"{API}/incidents/learning/patterns", params={"type": "recurring"}).json()
    assert recurring["total"] >= 1
    assert all(p["type"] == "RECURRING" for p in recurring["patterns"])

    proposed = client.get(
        f"{API}/incidents/learning/recommendations", params={"status": "proposed"}
    ).json()["recommendations"]
    assert proposed
    rec_id = proposed[0]["id"]
    assert client.get(f"{API}/incidents/learning/recommendations/{rec_id}").json()["id"] == rec_id

    approved = client.put(f"{API}/incidents/learning/recommendations/{rec_id}", json={
        "status": "APPROVED", "changed_by": "head-of-ops",
    })
    assert approved.status_code == 200
    assert approved.json()["approved_by"] == "head-of-ops"


def test_root_cause_recommendations_are_saved_once() -> None:
    client = TestClient(app)
    area = f"payments batch job {uuid.uuid4().hex[:6]}"
    rca = {
        "id": f"rca-{uuid.uuid4().hex[:6]}",
        "incident_id": "INC-0001",
        "root_causes": [{"category": "CONFIGURATION_ERROR", "description": area,
                         "confidence": 90, "is_primary": True},
                        {"category": "HUMAN_ERROR", "description": area, "confidence": 75}],
    }
    first = client.post(f"{API}/incidents/learning/root-cause", json=rca)
    assert first.status_code == 200
    assert first.json()["generated"] == 4
    assert first.json()["saved"] >= 2
    assert {r["source_id"] for r in first.json()["recommendations"]} == {rca["id"]}

    second = client.post(f"{API}/incidents/learning/root-cause", json=rca).json()
    assert second["generated"] == 4
    assert second["saved"] == 0


def test_evidence_log_and_stats() -> None:
    client = TestClient(app)
    client.post(f"{API}/incidents/learning/analyze", json={
        "incidents": generate_incident_history(now=NOW, n_noise=5),
        "now": NOW.isoformat(),
        "generate_recommendations": False,
    })
    events = client.get(f"{API}/evidence/events", params={
        "event_type": "INCIDENT.PATTERN.ANALYSIS_COMPLETED", "limit": 5,
    }).json()
    assert 1 <= events["total"] <= 5
    assert events["events"][0]["articles"] == ["Art.13"]

    stats = client.get(f"{API}/evidence/stats").json()
    assert stats["evidence_events"] >= 1
    assert stats["patterns"] >= 1
    assert stats["analyses"]["patterns"] >= 1
