"""
Drift Detection Engine
======================

Detects data drift, concept drift and prediction drift for monitored AI
systems (AI Act Art. 15 accuracy & robustness obligations).

  data_drift        KS test on numeric features, chi-square + PSI on
                    categorical features
  concept_drift     Mann-Whitney U between the two halves of a prediction
                    series
  prediction_drift  KS test combined with confidence-interval overlap

Every detector returns the same result dict so callers can aggregate across
features without special-casing the method that produced it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from veridion.core.config import settings
from .statistics import (
    binned_psi,
    chi_square_test,
    confidence_interval,
    create_contingency_table,
    distribution_stats,
    histogram_summary,
    kolmogorov_smirnov_test,
    mann_whitney_u_test,
    population_stability_index,
)

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────
SEVERITY_ORDER = ["none", "low", "medium", "high", "critical"]
DEFAULT_THRESHOLDS = {"low": 0.05, "medium": 0.10, "high": 0.20, "critical": 0.30}
CONCEPT_STD_EPSILON = 1e-6


@dataclass(frozen=True)
class DriftDetectionConfig:
    baseline_window_days: int = 30
    comparison_window_days: int = 7
    significance_level: float = settings.drift_significance_level
    min_sample_size: int = settings.drift_min_sample_size
    drift_thresholds: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "DriftDetectionConfig":
        """Merge a partial override mapping onto the defaults."""
        base = cls()
        if not overrides:
            return base
        overrides = dict(overrides)
        thresholds = dict(base.drift_thresholds)
        thresholds.update(overrides.pop("drift_thresholds", None) or {})
        unknown = set(overrides) - {
            "baseline_window_days", "comparison_window_days",
            "significance_level", "min_sample_size",
        }
        if unknown:
            raise ValueError(f"Unknown drift config keys: {sorted(unknown)}")
        return replace(base, drift_thresholds=thresholds, **overrides)

    def __post_init__(self):
        levels = [self.drift_thresholds.get(k) for k in ("low", "medium", "high", "critical")]
        if any(v is None for v in levels):
            raise ValueError("drift_thresholds must define low, medium, high and critical")
        if any(b < a for a, b in zip(levels, levels[1:])):
            raise ValueError("drift_thresholds must be non-decreasing from low to critical")
        if not 0.0 < self.significance_level < 1.0:
            raise ValueError("significance_level must be in (0, 1)")
        if self.min_sample_size < 1:
            raise ValueError("min_sample_size must be >= 1")


class DriftDetectionEngine:
    """
    Usage
    -----
    engine = DriftDetectionEngine({"min_sample_size": 50})
    result = engine.detect_data_drift(train_col, prod_col, "transaction_amount")
    if result["severity"] in ("high", "critical"):
        ...
    """

    def __init__(self, config: Optional[Mapping[str, Any] | DriftDetectionConfig] = None):
        if isinstance(config, DriftDetectionConfig):
            self.config = config
        else:
            self.config = DriftDetectionConfig.from_overrides(config)

    # ──────────────────────────────────────────────────────────────────────────
    # DATA DRIFT (numeric)
    # ──────────────────────────────────────────────────────────────────────────
    def detect_data_drift(self, baseline_data: Sequence[float],
                          current_data: Sequence[float],
                          feature_name: str = "feature") -> Dict[str, Any]:
        baseline = np.asarray(baseline_data, dtype=float)
        current = np.asarray(current_data, dtype=float)

        if baseline.size < self.config.min_sample_size or current.size < self.config.min_sample_size:
            return self._insufficient_result(
                "data_drift",
                "Collect more data for reliable drift detection",
                {
                    "baseline_size": int(baseline.size),
                    "current_size": int(current.size),
                    "min_required": self.config.min_sample_size,
                },
            )

        ks = kolmogorov_smirnov_test(baseline, current, alpha=self.config.significance_level)
        base_stats = distribution_stats(baseline)
        curr_stats = distribution_stats(current)

        drift_score = min(ks["statistic"], 1.0)
        severity = self.calculate_severity(drift_score)
        mean_diff = abs(curr_stats["mean"] - base_stats["mean"])

        recommendations = self._data_drift_recommendations(
            severity, ks["is_significant"], mean_diff, feature_name
        )
        if severity != "none":
            logger.info("Data drift on %s: score=%.3f severity=%s", feature_name, drift_score, severity)

        return {
            "drift_type": "data_drift",
            "drift_score": float(drift_score),
            "severity": severity,
            "confidence": 1.0 - ks["p_value"],
            "statistical_significance": ks["p_value"],
            "affected_features": [feature_name] if ks["is_significant"] else [],
            "detection_method": "kolmogorov_smirnov",
            "baseline_stats": {
                "mean": base_stats["mean"],
                "std": base_stats["std"],
                "distribution": histogram_summary(baseline),
            },
            "current_stats": {
                "mean": curr_stats["mean"],
                "std": curr_stats["std"],
                "distribution": histogram_summary(current),
            },
            "recommendations": recommendations,
            "metadata": {
                "ks_statistic": ks["statistic"],
                "effect_size": ks["effect_size"],
                "psi": binned_psi(baseline, current),
                "baseline_size": int(baseline.size),
                "current_size": int(current.size),
            },
        }

    # ──────────────────────────────────────────────────────────────────────────
    # CONCEPT DRIFT (split prediction series)
    # ──────────────────────────────────────────────────────────────────────────
    def detect_concept_drift(self, predictions: Sequence[float],
                             window_size: int = 100) -> Dict[str, Any]:
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        series = np.asarray(predictions, dtype=float)

        if series.size < window_size * 2:
            return self._insufficient_result(
                "concept_drift",
                "Need more prediction data for concept drift detection",
                {"available_data": int(series.size), "required_window": window_size},
            )

        mid = series.size // 2
        baseline_window = series[:mid]
        current_window = series[mid:]
        base_stats = distribution_stats(baseline_window)
        curr_stats = distribution_stats(current_window)

        mw = mann_whitney_u_test(baseline_window, current_window, alpha=self.config.significance_level)

        denom = base_stats["std"] + CONCEPT_STD_EPSILON
        mean_diff = abs(curr_stats["mean"] - base_stats["mean"])
        std_diff = abs(curr_stats["std"] - base_stats["std"])
        drift_score = min((mean_diff / denom + std_diff / denom) / 2.0, 1.0)
        severity = self.calculate_severity(drift_score)

        return {
            "drift_type": "concept_drift",
            "drift_score": float(drift_score),
            "severity": severity,
            "confidence": 1.0 - mw["p_value"],
            "statistical_significance": mw["p_value"],
            "affected_features": ["prediction_distribution"] if mw["is_significant"] else [],
            "detection_method": "mann_whitney_u_test",
            "baseline_stats": {
                "mean": base_stats["mean"],
                "std": base_stats["std"],
                "distribution": histogram_summary(baseline_window),
            },
            "current_stats": {
                "mean": curr_stats["mean"],
                "std": curr_stats["std"],
                "distribution": histogram_summary(current_window),
            },
            "recommendations": self._concept_drift_recommendations(severity, mw["is_significant"]),
            "metadata": {
                "window_size": window_size,
                "mw_statistic": mw["statistic"],
                "effect_size": mw["effect_size"],
                "total_predictions": int(series.size),
            },
        }

    # ──────────────────────────────────────────────────────────────────────────
    # PREDICTION DRIFT (KS + CI overlap)
    # ──────────────────────────────────────────────────────────────────────────
    def detect_prediction_drift(self, baseline_predictions: Sequence[float],
                                current_predictions: Sequence[float]) -> Dict[str, Any]:
        baseline = np.asarray(baseline_predictions, dtype=float)
        current = np.asarray(current_predictions, dtype=float)

        if baseline.size < self.config.min_sample_size or current.size < self.config.min_sample_size:
            return self._insufficient_result(
                "prediction_drift",
                "Collect more prediction data for reliable analysis",
                {"baseline_size": int(baseline.size), "current_size": int(current.size)},
            )

        ks = kolmogorov_smirnov_test(baseline, current, alpha=self.config.significance_level)
        base_ci = confidence_interval(baseline)
        curr_ci = confidence_interval(current)

        overlap = max(0.0, min(base_ci[1], curr_ci[1]) - max(base_ci[0], curr_ci[0]))
        union = max(base_ci[1], curr_ci[1]) - min(base_ci[0], curr_ci[0])
        ci_drift = 1.0 - overlap / union if union > 0 else 1.0

        drift_score = min((ks["statistic"] + ci_drift) / 2.0, 1.0)
        severity = self.calculate_severity(drift_score)

        return {
            "drift_type": "prediction_drift",
            "drift_score": float(drift_score),
            "severity": severity,
            "confidence": 1.0 - ks["p_value"],
            "statistical_significance": ks["p_value"],
            "affected_features": ["prediction_confidence"] if ks["is_significant"] else [],
            "detection_method": "ks_test_with_ci_analysis",
            "baseline_stats": {"distribution": histogram_summary(baseline)},
            "current_stats": {"distribution": histogram_summary(current)},
            "recommendations": self._prediction_drift_recommendations(severity, ks["is_significant"]),
            "metadata": {
                "ks_statistic": ks["statistic"],
                "ci_drift_score": float(ci_drift),
                "baseline_ci": list(base_ci),
                "current_ci": list(curr_ci),
                "effect_size": ks["effect_size"],
            },
        }

    # ──────────────────────────────────────────────────────────────────────────
    # CATEGORICAL DRIFT (chi-square + PSI)
    # ──────────────────────────────────────────────────────────────────────────
    def detect_categorical_drift(self, baseline_categories: Sequence[str],
                                 current_categories: Sequence[str],
                                 feature_name: str = "categorical_feature") -> Dict[str, Any]:
        n_base = len(baseline_categories)
        n_curr = len(current_categories)

        if n_base < self.config.min_sample_size or n_curr < self.config.min_sample_size:
            return self._insufficient_result(
                "data_drift",
                "Collect more categorical data for reliable drift detection",
                {"baseline_size": n_base, "current_size": n_curr},
            )

        table, categories = create_contingency_table(baseline_categories, current_categories)
        chi = chi_square_test(table, alpha=self.config.significance_level)
        psi = population_stability_index(table[0], table[1])

        drift_score = min((1.0 - chi["p_value"] + psi) / 2.0, 1.0)
        severity = self.calculate_severity(drift_score)

        return {
            "drift_type": "data_drift",
            "drift_score": float(drift_score),
            "severity": severity,
            "confidence": 1.0 - chi["p_value"],
            "statistical_significance": chi["p_value"],
            "affected_features": [feature_name] if chi["is_significant"] else [],
            "detection_method": "chi_square_with_psi",
            "baseline_stats": {"distribution": [float(f) / n_base for f in table[0]]},
            "current_stats": {"distribution": [float(f) / n_curr for f in table[1]]},
            "recommendations": self._categorical_drift_recommendations(
                severity, chi["is_significant"], feature_name
            ),
            "metadata": {
                "categories": categories,
                "chi_square_statistic": chi["statistic"],
                "degrees_of_freedom": chi["degrees_of_freedom"],
                "psi_value": psi,
                "effect_size": chi["effect_size"],
            },
        }

    # ──────────────────────────────────────────────────────────────────────────
    # DATASET-LEVEL
    # ──────────────────────────────────────────────────────────────────────────
    def analyze_dataset_drift(self, baseline_data: Mapping[str, Sequence],
                              current_data: Mapping[str, Sequence],
                              feature_types: Mapping[str, str]) -> List[Dict[str, Any]]:
        results = []
        for feature_name, feature_type in feature_types.items():
            baseline_values = baseline_data.get(feature_name)
            current_values = current_data.get(feature_name)
            if baseline_values is None or current_values is None:
                continue

            if feature_type == "numeric":
                result = self.detect_data_drift(baseline_values, current_values, feature_name)
            elif feature_type == "categorical":
                result = self.detect_categorical_drift(baseline_values, current_values, feature_name)
            else:
                raise ValueError(f"Unknown feature type '{feature_type}' for {feature_name}")
            result["feature_name"] = feature_name
            results.append(result)
        return results

    def calculate_severity(self, drift_score: float) -> str:
        t = self.config.drift_thresholds
        if drift_score >= t["critical"]:
            return "critical"
        if drift_score >= t["high"]:
            return "high"
        if drift_score >= t["medium"]:
            return "medium"
        if drift_score >= t["low"]:
            return "low"
        return "none"

    # ──────────────────────────────────────────────────────────────────────────
    # RECOMMENDATION TEXT
    # ──────────────────────────────────────────────────────────────────────────
    @staticmethod
    def _data_drift_recommendations(severity: str, is_significant: bool,
                                    mean_difference: float, feature_name: str) -> List[str]:
        recs = []
        if severity == "critical":
            recs.append(f"CRITICAL: {feature_name} shows severe data drift "
                        f"({mean_difference:.3f} mean difference)")
            recs.append("Immediate model retraining required")
            recs.append("Consider data quality issues or concept changes")
        elif severity == "high":
            recs.append(f"HIGH: {feature_name} shows significant data drift")
            recs.append("Schedule model retraining within 1-2 weeks")
            recs.append("Monitor prediction performance closely")
        elif severity == "medium":
            recs.append(f"MEDIUM: {feature_name} shows moderate data drift")
            recs.append("Consider model recalibration")
            recs.append("Monitor drift trends over next month")
        elif is_significant:
            recs.append(f"LOW: {feature_name} shows minor data drift")
            recs.append("Continue monitoring - no immediate action required")

        if is_significant:
            recs.append(f"Investigate source of distribution change in {feature_name}")
            recs.append("Check for data collection issues or population changes")
        return recs

    @staticmethod
    def _concept_drift_recommendations(severity: str, is_significant: bool) -> List[str]:
        recs = []
        if severity == "critical":
            recs.append("CRITICAL: Severe concept drift detected - model may be obsolete")
            recs.append("Immediate model retraining with recent data required")
            recs.append("Consider if underlying business logic has changed")
        elif severity == "high":
            recs.append("HIGH: Significant concept drift detected")
            recs.append("Model performance likely degrading")
            recs.append("Plan model update within 1-2 weeks")
        elif severity == "medium":
            recs.append("MEDIUM: Moderate concept drift detected")
            recs.append("Monitor model performance metrics")
            recs.append("Consider gradual model updates")

        if is_significant:
            recs.append("Analyze recent data patterns and business changes")
            recs.append("Update model training data with recent examples")
        return recs

    @staticmethod
    def _prediction_drift_recommendations(severity: str, is_significant: bool) -> List[str]:
        recs = []
        if severity == "critical":
            recs.append("CRITICAL: Severe prediction drift - model confidence unreliable")
            recs.append("Stop using model predictions until retrained")
            recs.append("Investigate root cause immediately")
        elif severity == "high":
            recs.append("HIGH: Significant prediction drift detected")
            recs.append("Reduce confidence in model predictions")
            recs.append("Implement prediction confidence thresholds")
        elif severity == "medium":
            recs.append("MEDIUM: Moderate prediction drift")
            recs.append("Add prediction uncertainty estimates")
            recs.append("Monitor prediction accuracy trends")

        if is_significant:
            recs.append("Review model calibration and confidence estimation")
            recs.append("Consider ensemble methods or model updates")
        return recs

    @staticmethod
    def _categorical_drift_recommendations(severity: str, is_significant: bool,
                                           feature_name: str) -> List[str]:
        recs = []
        if severity == "critical":
            recs.append(f"CRITICAL: Severe categorical drift in {feature_name}")
            recs.append("Category distribution completely changed")
            recs.append("Model may be using outdated category mappings")
        elif severity == "high":
            recs.append(f"HIGH: Significant categorical drift in {feature_name}")
            recs.append("Several categories show major frequency changes")
            recs.append("Review category encoding and model training")
        elif severity == "medium":
            recs.append(f"MEDIUM: Moderate categorical drift in {feature_name}")
            recs.append("Some categories show notable frequency changes")
            recs.append("Monitor category distributions over time")

        if is_significant:
            recs.append(f"Check if new categories appeared in {feature_name}")
            recs.append("Update category preprocessing and encoding")
            recs.append("Consider model retraining with updated categories")
        return recs

    @staticmethod
    def _insufficient_result(drift_type: str, recommendation: str,
                             metadata: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "drift_type": drift_type,
            "drift_score": 0.0,
            "severity": "none",
            "confidence": 0.0,
            "statistical_significance": 1.0,
            "affected_features": [],
            "detection_method": "insufficient_data",
            "baseline_stats": {},
            "current_stats": {},
            "recommendations": [recommendation],
            "metadata": metadata,
        }


def create_drift_detection_engine(config: Optional[Mapping[str, Any]] = None) -> DriftDetectionEngine:
    return DriftDetectionEngine(config)


def run_comprehensive_drift_analysis(baseline_data: Mapping[str, Sequence],
                                     current_data: Mapping[str, Sequence],
                                     feature_types: Mapping[str, str],
                                     config: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Per-feature drift plus an overall score, worst severity and summary line."""
    engine = create_drift_detection_engine(config)
    feature_results = engine.analyze_dataset_drift(baseline_data, current_data, feature_types)

    if feature_results:
        overall = float(np.mean([r["drift_score"] for r in feature_results]))
        max_idx = max(SEVERITY_ORDER.index(r["severity"]) for r in feature_results)
    else:
        overall = 0.0
        max_idx = 0
    max_severity = SEVERITY_ORDER[max_idx]

    n_drifting = sum(1 for r in feature_results if r["severity"] != "none")
    summary = (
        f"Analyzed {len(feature_results)} features. Found {n_drifting} with significant drift. "
        f"Overall drift score: {overall:.3f}. Maximum severity: {max_severity}."
    )
    return {
        "overall_drift_score": overall,
        "max_severity": max_severity,
        "feature_results": feature_results,
        "summary": summary,
    }
