"""
Veridion Insights
Synthetic Data Generator — drift scenarios and incident histories for demos and tests
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import numpy as np

# ── Feature names (credit scoring domain) ─────────────────────────────────────
NUMERIC_FEATURES = ["income", "loan_amount", "credit_utilisation", "account_age_months"]
CATEGORICAL_FEATURES = ["employment_type", "region"]

EMPLOYMENT_TYPES = ["salaried", "self_employed", "contractor", "retired"]
REGIONS = ["north", "south", "east", "west"]

SYSTEMS = ["payments-api", "ledger-db", "core-banking", "auth-service", "reporting"]
CATEGORIES = ["NETWORK", "DATABASE", "APPLICATION", "SECURITY", "THIRD_PARTY"]
SEVERITIES = ["LOW", "MEDIUM", "HIGH", "CRITICAL"]


def generate_drift_scenario(n_samples: int = 500, shift: float = 0.5,
                            seed: int = 42) -> Dict[str, Any]:
    """
    Baseline and current samples per feature. `shift` moves the current
    numeric means by that many standard deviations and skews categories.
    """
    rng = np.random.default_rng(seed)
    loc = np.array([52_000, 15_000, 0.35, 60])
    scale = np.array([12_000, 5_000, 0.1, 24])

    baseline = rng.normal(loc, scale, size=(n_samples, len(loc)))
    current = rng.normal(loc + shift * scale, scale, size=(n_samples, len(loc)))

    base_probs = np.array([0.55, 0.2, 0.15, 0.1])
    curr_probs = base_probs + shift * np.array([-0.3, 0.1, 0.15, 0.05])
    curr_probs = np.clip(curr_probs, 0.01, None)
    curr_probs = curr_probs / curr_probs.sum()

    features = []
    for j, name in enumerate(NUMERIC_FEATURES):
        features.append({
            "feature_name": name,
            "feature_type": "numeric",
            "baseline_data": baseline[:, j].tolist(),
            "current_data": current[:, j].tolist(),
        })
    features.append({
        "feature_name": "employment_type",
        "feature_type": "categorical",
        "baseline_data": rng.choice(EMPLOYMENT_TYPES, n_samples, p=base_probs).tolist(),
        "current_data": rng.choice(EMPLOYMENT_TYPES, n_samples, p=curr_probs).tolist(),
    })
    features.append({
        "feature_name": "region",
        "feature_type": "categorical",
        "baseline_data": rng.choice(REGIONS, n_samples).tolist(),
        "current_data": rng.choice(REGIONS, n_samples).tolist(),
    })

    base_scores = 1 / (1 + np.exp(-rng.normal(-1.0, 1.0, n_samples)))
    curr_scores = 1 / (1 + np.exp(-rng.normal(-1.0 + shift, 1.0, n_samples)))
    return {
        "features": features,
        "baseline_predictions": base_scores.tolist(),
        "current_predictions": curr_scores.tolist(),
    }


def generate_incident_history(now: Optional[datetime] = None, n_noise: int = 20,
                              seed: int = 7) -> List[Dict[str, Any]]:
    """
    Incident records containing:
      - a weekly NETWORK/OUTAGE incident every Monday at 09:00 (recurring + seasonal)
      - a three-incident cascade across payments-api, ledger-db and core-banking
      - payments-api and ledger-db failing together (correlated)
      - scattered background incidents and a few still-open ones
    """
    rng = np.random.default_rng(seed)
    now = now or datetime.now(timezone.utc)
    incidents: List[Dict[str, Any]] = []

    def _add(occurred_at, category, inc_type, systems, severity="MEDIUM",
             status="RESOLVED", root_causes=None, title=None):
        duration = int(rng.integers(15, 240))
        incidents.append({
            "id": f"INC-{len(incidents) + 1:04d}",
            "occurred_at": occurred_at.isoformat(),
            "resolved_at": (occurred_at + timedelta(minutes=duration)).isoformat(),
            "title": title or f"{category.title()} {inc_type.lower()} on {', '.join(systems) or 'n/a'}",
            "description": f"{inc_type} affecting {len(systems)} system(s)",
            "category": category,
            "type": inc_type,
            "severity": severity,
            "status": status,
            "duration_minutes": duration,
            "affected_users": int(rng.integers(10, 5_000)),
            "affected_systems": list(systems),
            "affected_services": [f"{s}-svc" for s in systems[:1]],
            "root_causes": root_causes or [],
        })

    # Monday 09:00 UTC, twelve weeks back
    days_since_monday = now.weekday()
    last_monday = (now - timedelta(days=days_since_monday + 7)).replace(
        hour=9, minute=0, second=0, microsecond=0)
    for week in range(12):
        _add(last_monday - timedelta(weeks=week), "NETWORK", "OUTAGE", ["auth-service"],
             severity="HIGH", root_causes=["Expired TLS certificate on load balancer"])

    # Cascade, 20 minutes apart
    start = (now - timedelta(days=40)).replace(hour=14, minute=5, second=0, microsecond=0)
    chain = [["payments-api", "ledger-db"], ["ledger-db", "payments-api"],
             ["core-banking", "payments-api", "ledger-db"]]
    for k, systems in enumerate(chain):
        _add(start + timedelta(minutes=20 * k), "DATABASE", "DEGRADATION", systems,
             severity="CRITICAL", root_causes=["Connection pool exhaustion"])

    # Background noise, spaced more than an hour apart and away from the chains above
    for _ in range(n_noise):
        at = now - timedelta(days=float(rng.uniform(50, 300)),
                             hours=float(rng.integers(0, 24)))
        _add(at, str(rng.choice(CATEGORIES[2:])), "INCIDENT",
             [str(rng.choice(SYSTEMS[3:]))], severity=str(rng.choice(SEVERITIES[:3])))

    for k in range(3):
        _add(now - timedelta(days=2, hours=k * 3), "APPLICATION", "ERROR", ["reporting"],
             status="OPEN")

    return incidents
