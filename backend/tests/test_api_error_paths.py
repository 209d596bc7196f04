import pickle
import uuid

import numpy as np
from fastapi.testclient import TestClient
from sklearn.tree import DecisionTreeClassifier

from veridion.api import dependencies as deps
from veridion.main import app

API = "/api/v1"


def _csv_bytes(n_cols: int, n_rows: int = 10) -> bytes:
    header = ",".join(f"f{i}" for i in range(n_cols)) + ",label"
    rows = [",".join(str(r + c) for c in range(n_cols)) + f",{r % 2}" for r in range(n_rows)]
    return ("\n".join([header] + rows) + "\n").encode()


def _model_bytes(n_features: int) -> bytes:
    X = np.arange(20 * n_features, dtype=float).reshape(20, n_features)
    return pickle.dumps(DecisionTreeClassifier(random_state=0).fit(X, np.arange(20) % 2))


def _assess(client, model=("m.pkl", b"x"), dataset=("d.csv", b"x"), **params):
    return client.post(
        f"{API}/robustness/assess",
        params=params,
        files={"model_file": model, "dataset_file": dataset},
    )


def test_unknown_drift_config_key_returns_422() -> None:
    client = TestClient(app)
    response = client.post(f"{API}/drift/data", json={
        "baseline_data": [1.0, 2.0], "current_data": [1.0, 2.0], "config": {"window": 3},
    })
    assert response.status_code == 422
    assert "Unknown drift config keys" in response.json()["detail"]


def test_concept_window_must_be_positive() -> None:
    client = TestClient(app)
    response = client.post(f"{API}/drift/concept", json={"predictions": [0.1] * 10, "window_size": 0})
    assert response.status_code == 422


def test_dataset_with_unknown_feature_type_returns_422() -> None:
    client = TestClient(app)
    response = client.post(f"{API}/drift/dataset", json={
        "baseline_data": {"note": ["a"]}, "current_data": {"note": ["b"]},
        "feature_types": {"note": "text"},
    })
    assert response.status_code == 422
    assert "Unknown feature type 'text'" in response.json()["detail"]


def test_dataset_engine_failure_returns_500(monkeypatch) -> None:
    def boom(*args):
        raise RuntimeError("scipy unavailable")

    monkeypatch.setattr("veridion.api.routes.drift.run_comprehensive_drift_analysis", boom)
    client = TestClient(app)
    response = client.post(f"{API}/drift/dataset", json={
        "baseline_data": {}, "current_data": {}, "feature_types": {},
    })
    assert response.status_code == 500
    assert response.json()["detail"] == "Dataset drift error: scipy unavailable"


def test_monitor_without_history_returns_404() -> None:
    client = TestClient(app)
    assert client.get(f"{API}/drift/monitor/never-seen").status_code == 404
    assert client.get(f"{API}/drift/monitor/never-seen/income/timeline").status_code == 404


def test_robustness_rejects_wrong_extensions_and_mode() -> None:
    client = TestClient(app)
    response = _assess(client, model=("model.joblib", b"x"))
    assert response.status_code == 400
    assert "Only .pkl" in response.json()["detail"]

    response = _assess(client, dataset=("data.xlsx", b"x"))
    assert response.status_code == 400
    assert response.json()["detail"] == "Dataset must be a .csv file."

    assert _assess(client, mode="exhaustive").status_code == 422


def test_robustness_invalid_pickle_returns_422() -> None:
    client = TestClient(app)
    response = _assess(client, model=("m.pkl", b"not a pickle"), dataset=("d.csv", _csv_bytes(2)))
    assert response.status_code == 422
    assert "Cannot unpickle model" in response.json()["detail"]


def test_robustness_feature_count_mismatch_returns_422() -> None:
    client = TestClient(app)
    response = _assess(
        client, model=("tree.pkl", _model_bytes(3)), dataset=("d.csv", _csv_bytes(2)),
    )
    assert response.status_code == 422
    assert response.json()["detail"] == (
        "Model expects 3 features but the dataset has 2 numeric feature columns"
    )


def test_robustness_unexpected_failure_returns_500(monkeypatch) -> None:
    def broken_ingest(data, filename):
        raise RuntimeError("disk full")

    monkeypatch.setattr(deps.csv_engine, "ingest", broken_ingest)
    client = TestClient(app)
    response = _assess(client, model=("tree.pkl", _model_bytes(2)), dataset=("d.csv", b"a\n1\n"))
    assert response.status_code == 500
    assert response.json()["detail"] == "Robustness assessment error: disk full"


def test_unknown_robustness_result_returns_404() -> None:
    client = TestClient(app)
    assert client.get(f"{API}/robustness/rob-does-not-exist").status_code == 404


def test_robustness_lookup_ignores_other_result_kinds() -> None:
    drift_id = f"drift-{uuid.uuid4().hex[:8]}"
    deps.store.save_result({"analysis_id": drift_id, "overall_drift_score": 0.4}, kind="drift")
    client = TestClient(app)
    assert client.get(f"{API}/robustness/{drift_id}").status_code == 404


def test_recommendation_status_errors() -> None:
    client = TestClient(app)
    missing = client.put(f"{API}/incidents/learning/recommendations/rec-missing",
                         json={"status": "APPROVED", "changed_by": "x"})
    assert missing.status_code == 404
    assert client.get(f"{API}/incidents/learning/recommendations/rec-missing").status_code == 404

    saved = client.post(f"{API}/incidents/learning/root-cause", json={
        "id": "rca-errors",
        "incident_id": "INC-0002",
        "root_causes": [{"category": "PROCESS_GAP", "is_primary": True,
                         "description": f"change approval {uuid.uuid4().hex[:6]}"}],
    }).json()["recommendations"]
    rec_id = saved[0]["id"]

    skipped = client.put(f"{API}/incidents/learning/recommendations/{rec_id}",
                         json={"status": "VERIFIED", "changed_by": "x"})
    assert skipped.status_code == 409
    assert skipped.json()["detail"] == "Cannot move recommendation from PROPOSED to VERIFIED"

    unknown = client.put(f"{API}/incidents/learning/recommendations/{rec_id}",
                         json={"status": "DONE", "changed_by": "x"})
    assert unknown.status_code == 422
    assert "Unknown recommendation status" in unknown.json()["detail"]


def test_pattern_analysis_failure_returns_500(monkeypatch) -> None:
    def broken(incidents, now=None):
        raise RuntimeError("store locked")

    monkeypatch.setattr(deps.pattern_engine, "analyze_patterns", broken)
    client = TestClient(app)
    response = client.post(f"{API}/incidents/learning/analyze", json={"incidents": []})
    assert response.status_code == 500
    assert response.json()["detail"] == "Pattern analysis error: store locked"


def test_invalid_incident_payload_returns_422() -> None:
    client = TestClient(app)
    response = client.post(f"{API}/incidents/learning/analyze",
                           json={"incidents": [{"id": "INC-1", "occurred_at": "yesterday"}]})
    assert response.status_code == 422


def test_evidence_limit_is_bounded() -> None:
    client = TestClient(app)
    assert client.get(f"{API}/evidence/events", params={"limit": 0}).status_code == 422
    assert client.get(f"{API}/evidence/events", params={"limit": 5000}).status_code == 422
