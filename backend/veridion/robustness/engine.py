"""
Robustness Test Engine
======================

Adversarial, edge-case and stress testing for a black-box model exposed as a
`predict(x: list[float]) -> float` callable returning a score in [0, 1].

  FGSM   single gradient-sign step; the loss gradient is estimated with
         central finite differences, so no framework autograd is needed
  PGD    iterated gradient-sign steps projected onto the L-inf epsilon ball
  edges  missing values, extreme values, outliers, combined edge conditions
  stress concurrent predict calls per concurrency level (thread pool)
"""

from __future__ import annotations

import concurrent.futures
import copy
import logging
import math
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from veridion.core.config import settings
from veridion.core.errors import AnalysisInputError

logger = logging.getLogger(__name__)

PredictFn = Callable[[List[float]], float]

# ── Constants ─────────────────────────────────────────────────────────────────
FGSM_MAX_SAMPLES = 50
PGD_MAX_SAMPLES = 20
FGSM_SUCCESS_DELTA = 0.5
PGD_SUCCESS_DELTA = 0.3
PGD_STEP_FACTOR = 2.5
FD_STEP = 1e-3                 # finite-difference step for gradient estimation
MISSING_DATA_MAX_CASES = 20
EXTREME_VALUE_CASES = 10
OUTLIER_CASES = 5
COMBINATION_CASES = 5
REQUESTS_PER_CONCURRENCY = 10
EDGE_PASS_RATE = 0.8
STRESS_OK_ERROR_RATE = 0.05
STRESS_FAIL_ERROR_RATE = 0.10
EDGE_CASE_SUITES = ("missing_data", "extreme_values", "outliers", "edge_combinations")

DEFAULT_CONFIG: Dict[str, Any] = {
    "adversarial": {
        "max_perturbation": 0.3,
        "iterations": 100,
        "confidence_threshold": 0.8,
    },
    "edge_cases": {
        "test_categories": list(EDGE_CASE_SUITES),
        "sample_size": 100,
    },
    "stress_testing": {
        "duration_seconds": 60,
        "concurrency_levels": [1, 5, 10, 20, 50],
        "target_throughput": None,
    },
    "random_seed": None,
}


def _is_valid_prediction(value: Any) -> bool:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(v) and 0.0 <= v <= 1.0


class RobustnessTestEngine:
    """
    Usage
    -----
    engine = RobustnessTestEngine({"random_seed": 7})
    report = engine.run_comprehensive_robustness_analysis(
        predict, X.tolist(), y.tolist(), [{"min": 0, "max": 1}] * X.shape[1]
    )
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        merged = copy.deepcopy(DEFAULT_CONFIG)
        for section, values in (config or {}).items():
            if isinstance(merged.get(section), dict) and isinstance(values, Mapping):
                merged[section].update(values)
            else:
                merged[section] = values
        if merged["random_seed"] is None:
            merged["random_seed"] = settings.robustness_seed
        self._validate_config(merged)
        self.config = merged
        self._rng = np.random.default_rng(merged["random_seed"])

    # ──────────────────────────────────────────────────────────────────────────
    # ADVERSARIAL
    # ──────────────────────────────────────────────────────────────────────────
    def run_fgsm_attack(self, model_predict: PredictFn,
                        inputs: Sequence[Sequence[float]],
                        labels: Sequence[float],
                        epsilon: float = 0.1) -> Dict[str, Any]:
        X, y = self._validate_inputs(inputs, labels)
        epsilon = min(float(epsilon), self.config["adversarial"]["max_perturbation"])

        examples = []
        n_success = 0
        for i in range(min(len(X), FGSM_MAX_SAMPLES)):
            x = X[i]
            original_pred = float(model_predict(x.tolist()))

            grad = self._loss_gradient(model_predict, x, y[i])
            direction = np.sign(grad)
            if not np.any(direction):
                # flat loss surface: fall back to a random sign direction
                direction = self._rng.choice([-1.0, 1.0], size=x.shape)
            perturbation = epsilon * direction
            x_adv = x + perturbation

            adv_pred = float(model_predict(x_adv.tolist()))
            magnitude = float(np.linalg.norm(perturbation))
            if abs(original_pred - adv_pred) > FGSM_SUCCESS_DELTA:
                n_success += 1

            examples.append({
                "original_input": x.tolist(),
                "adversarial_input": x_adv.tolist(),
                "original_prediction": original_pred,
                "adversarial_prediction": adv_pred,
                "perturbation_magnitude": magnitude,
            })

        return self._attack_result("FGSM", examples, n_success)

    def run_pgd_attack(self, model_predict: PredictFn,
                       inputs: Sequence[Sequence[float]],
                       labels: Sequence[float],
                       epsilon: float = 0.1,
                       iterations: int = 10) -> Dict[str, Any]:
        X, y = self._validate_inputs(inputs, labels)
        if iterations < 1:
            raise AnalysisInputError("PGD needs at least one iteration")
        epsilon = min(float(epsilon), self.config["adversarial"]["max_perturbation"])
        iterations = min(int(iterations), self.config["adversarial"]["iterations"])
        alpha = PGD_STEP_FACTOR * epsilon / iterations

        examples = []
        n_success = 0
        for i in range(min(len(X), PGD_MAX_SAMPLES)):
            x = X[i]
            original_pred = float(model_predict(x.tolist()))
            x_adv = x.copy()

            for _ in range(iterations):
                direction = np.sign(self._loss_gradient(model_predict, x_adv, y[i]))
                if not np.any(direction):
                    direction = self._rng.choice([-1.0, 1.0], size=x.shape)
                x_adv = np.clip(x_adv + alpha * direction, x - epsilon, x + epsilon)

            adv_pred = float(model_predict(x_adv.tolist()))
            if abs(original_pred - adv_pred) > PGD_SUCCESS_DELTA:
                n_success += 1

            examples.append({
                "original_input": x.tolist(),
                "adversarial_input": x_adv.tolist(),
                "original_prediction": original_pred,
                "adversarial_prediction": adv_pred,
                "perturbation_magnitude": float(np.linalg.norm(x_adv - x)),
            })

        return self._attack_result("PGD", examples, n_success)

    # ──────────────────────────────────────────────────────────────────────────
    # EDGE CASES
    # ──────────────────────────────────────────────────────────────────────────
    def run_edge_case_tests(self, model_predict: PredictFn,
                            feature_ranges: Sequence[Mapping[str, float]]) -> List[Dict[str, Any]]:
        """Run the configured suites in fixed order; an empty category list runs them all."""
        ranges = self._validate_ranges(feature_ranges)
        suites = {
            "missing_data": self._test_missing_data,
            "extreme_values": self._test_extreme_values,
            "outliers": self._test_outliers,
            "edge_combinations": self._test_edge_combinations,
        }
        selected = self.config["edge_cases"]["test_categories"] or EDGE_CASE_SUITES
        return [suites[name](model_predict, ranges) for name in EDGE_CASE_SUITES if name in selected]

    def _test_missing_data(self, predict: PredictFn, ranges: np.ndarray) -> Dict[str, Any]:
        cases = []
        for missing in range(len(ranges)):
            x = self._random_in_range(ranges)
            x[missing] = np.nan
            cases.append((f"Missing feature {missing}", x))
        return self._evaluate_edge_cases(
            predict, "missing_data", cases[:MISSING_DATA_MAX_CASES],
            expected="Should handle gracefully or return error",
            invalid_severity="high", error_severity="critical",
        )

    def _test_extreme_values(self, predict: PredictFn, ranges: np.ndarray) -> Dict[str, Any]:
        cases = []
        for _ in range(EXTREME_VALUE_CASES):
            x = np.array([
                self._rng.choice([lo, hi, lo * 10, hi * 10, 0.0]) for lo, hi in ranges
            ], dtype=float)
            preview = ", ".join(f"{v:g}" for v in x[:3])
            cases.append((f"Extreme values: {preview}...", x))
        return self._evaluate_edge_cases(
            predict, "extreme_values", cases,
            expected="Should handle extreme values gracefully",
            invalid_severity="medium", error_severity="high",
        )

    def _test_outliers(self, predict: PredictFn, ranges: np.ndarray) -> Dict[str, Any]:
        cases = []
        for i in range(OUTLIER_CASES):
            x = self._random_in_range(ranges)
            j = i % len(ranges)
            lo, hi = ranges[j]
            width = max(hi - lo, 1.0)
            k = self._rng.uniform(3.0, 6.0)
            x[j] = hi + k * width if i % 2 == 0 else lo - k * width
            cases.append((f"Outlier on feature {j} ({x[j]:.3g})", x))
        return self._evaluate_edge_cases(
            predict, "outliers", cases,
            expected="Should handle statistical outliers",
            invalid_severity="low", error_severity="medium",
        )

    def _test_edge_combinations(self, predict: PredictFn, ranges: np.ndarray) -> Dict[str, Any]:
        cases = []
        for i in range(COMBINATION_CASES):
            x = np.array([hi if (i + j) % 2 else lo for j, (lo, hi) in enumerate(ranges)], dtype=float)
            if len(ranges) > 1:
                x[i % len(ranges)] = np.nan
            j = (i + 1) % len(ranges)
            width = max(ranges[j][1] - ranges[j][0], 1.0)
            x[j] = ranges[j][1] + 5.0 * width
            cases.append((f"Combined edge conditions #{i + 1}", x))
        return self._evaluate_edge_cases(
            predict, "edge_combinations", cases,
            expected="Should handle combined edge cases",
            invalid_severity="medium", error_severity="high",
        )

    def _evaluate_edge_cases(self, predict: PredictFn, test_type: str, cases,
                             expected: str, invalid_severity: str,
                             error_severity: str) -> Dict[str, Any]:
        cases = cases[:int(self.config["edge_cases"]["sample_size"])]
        passed = 0
        failure_modes = []
        for label, x in cases:
            try:
                prediction = predict(x.tolist())
            except Exception as e:  # the model under test is untrusted
                failure_modes.append({
                    "case": label,
                    "expected_behavior": expected,
                    "actual_behavior": f"Threw error: {e}",
                    "severity": error_severity,
                })
                continue
            if _is_valid_prediction(prediction):
                passed += 1
            else:
                failure_modes.append({
                    "case": label,
                    "expected_behavior": expected,
                    "actual_behavior": f"Returned invalid prediction: {prediction}",
                    "severity": invalid_severity,
                })

        total = len(cases)
        rate = passed / total if total else 1.0
        return {
            "test_type": test_type,
            "total_cases": total,
            "passed_cases": passed,
            "failed_cases": total - passed,
            "success_rate": rate,
            "failure_modes": failure_modes,
            "robustness_score": rate,
            "recommendations": self._edge_case_recommendations(test_type, rate),
        }

    # ──────────────────────────────────────────────────────────────────────────
    # STRESS
    # ──────────────────────────────────────────────────────────────────────────
    def run_stress_tests(self, model_predict: PredictFn,
                         sample_input: Sequence[float]) -> List[Dict[str, Any]]:
        return [
            self._stress_at_concurrency(model_predict, list(sample_input), level)
            for level in self.config["stress_testing"]["concurrency_levels"]
        ]

    def _stress_at_concurrency(self, predict: PredictFn, sample_input: List[float],
                               concurrency: int) -> Dict[str, Any]:
        n_requests = concurrency * REQUESTS_PER_CONCURRENCY

        def _timed_call():
            t0 = time.perf_counter()
            predict(list(sample_input))
            return (time.perf_counter() - t0) * 1000.0

        stress_config = self.config["stress_testing"]
        target = stress_config["target_throughput"]

        start = time.perf_counter()
        with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
            futures = [pool.submit(_timed_call) for _ in range(n_requests)]
            # requests not started within the time budget are dropped
            budget = float(stress_config["duration_seconds"])
            _, pending = concurrent.futures.wait(futures, timeout=budget)
            for fut in pending:
                fut.cancel()
        duration_ms = (time.perf_counter() - start) * 1000.0

        response_times = []
        failed = 0
        cancelled = 0
        for fut in futures:
            if fut.cancelled():
                cancelled += 1
                continue
            try:
                response_times.append(fut.result())
            except Exception:  # counted, not raised: error rate is the measurement
                failed += 1

        sent = n_requests - cancelled
        successful = len(response_times)
        times = np.sort(np.array(response_times)) if response_times else np.array([0.0])
        error_rate = failed / sent if sent else 0.0
        throughput = successful / (duration_ms / 1000.0) if duration_ms > 0 else 0.0

        if error_rate > STRESS_FAIL_ERROR_RATE:
            logger.warning("Stress test breaking point at concurrency %d (error rate %.2f)",
                           concurrency, error_rate)

        return {
            "test_type": f"concurrency_{concurrency}",
            "duration": duration_ms,
            "total_requests": sent,
            "cancelled_requests": cancelled,
            "successful_requests": successful,
            "failed_requests": failed,
            "average_response_time": float(times.mean()),
            "p95_response_time": float(times[min(int(len(times) * 0.95), len(times) - 1)]),
            "p99_response_time": float(times[min(int(len(times) * 0.99), len(times) - 1)]),
            "throughput": throughput,
            "error_rate": error_rate,
            "performance_degradation": (
                (error_rate - STRESS_OK_ERROR_RATE) * 20 if error_rate > STRESS_OK_ERROR_RATE else 0.0
            ),
            "breaking_point": concurrency if error_rate > STRESS_FAIL_ERROR_RATE else None,
            "target_throughput": target,
            "meets_target_throughput": None if target is None else throughput >= target,
            "recommendations": self._stress_recommendations(error_rate, throughput, target),
        }

    # ──────────────────────────────────────────────────────────────────────────
    # COMPREHENSIVE
    # ──────────────────────────────────────────────────────────────────────────
    def run_comprehensive_robustness_analysis(self, model_predict: PredictFn,
                                              inputs: Sequence[Sequence[float]],
                                              labels: Sequence[float],
                                              feature_ranges: Sequence[Mapping[str, float]]
                                              ) -> Dict[str, Any]:
        fgsm = self.run_fgsm_attack(model_predict, inputs, labels, 0.1)
        pgd = self.run_pgd_attack(model_predict, inputs, labels, 0.1, 5)
        edge_results = self.run_edge_case_tests(model_predict, feature_ranges)
        stress_results = self.run_stress_tests(model_predict, inputs[0])

        adversarial = (fgsm["robustness_score"] + pgd["robustness_score"]) / 2
        edge = float(np.mean([r["robustness_score"] for r in edge_results]))
        stress = 0.9 if all(r["error_rate"] < STRESS_OK_ERROR_RATE for r in stress_results) else 0.6
        overall = (adversarial + edge + stress) / 3

        vulnerabilities = []
        if fgsm["success_rate"] > 0.5:
            vulnerabilities.append("Highly vulnerable to FGSM attacks")
        if pgd["success_rate"] > 0.5:
            vulnerabilities.append("Highly vulnerable to PGD attacks")
        failing_edges = [r for r in edge_results if r["success_rate"] < EDGE_PASS_RATE]
        if failing_edges:
            vulnerabilities.append(f"{len(failing_edges)} edge case categories failing")
        if any(r["error_rate"] > STRESS_FAIL_ERROR_RATE for r in stress_results):
            vulnerabilities.append("Performance degrades under load")
        if any(r["meets_target_throughput"] is False for r in stress_results):
            vulnerabilities.append("Throughput below target under load")

        logger.info("Robustness analysis: overall=%.3f adversarial=%.3f edge=%.3f stress=%.1f",
                    overall, adversarial, edge, stress)

        return {
            "overall_robustness_score": overall,
            "adversarial_robustness": adversarial,
            "edge_case_robustness": edge,
            "stress_test_robustness": stress,
            "critical_vulnerabilities": vulnerabilities,
            "recommendations": self._comprehensive_recommendations(
                overall, vulnerabilities, fgsm, edge_results, stress_results
            ),
            "detailed_results": {
                "adversarial": [fgsm, pgd],
                "edge_cases": edge_results,
                "stress_tests": stress_results,
            },
        }

    # ──────────────────────────────────────────────────────────────────────────
    # HELPERS
    # ──────────────────────────────────────────────────────────────────────────
    @staticmethod
    def _validate_config(config: Dict[str, Any]) -> None:
        edge = config["edge_cases"]
        unknown = sorted(set(edge["test_categories"]) - set(EDGE_CASE_SUITES))
        if unknown:
            raise AnalysisInputError(f"Unknown edge case categories: {', '.join(unknown)}")
        if int(edge["sample_size"]) < 1:
            raise AnalysisInputError("edge_cases.sample_size must be >= 1")

        stress = config["stress_testing"]
        if float(stress["duration_seconds"]) <= 0:
            raise AnalysisInputError("stress_testing.duration_seconds must be > 0")
        if any(int(level) < 1 for level in stress["concurrency_levels"]):
            raise AnalysisInputError("stress_testing.concurrency_levels must all be >= 1")
        target = stress["target_throughput"]
        if target is not None and float(target) <= 0:
            raise AnalysisInputError("stress_testing.target_throughput must be > 0")

    @staticmethod
    def _loss_gradient(predict: PredictFn, x: np.ndarray, label: float) -> np.ndarray:
        """Central-difference estimate of d|predict(x) - label| / dx."""
        grad = np.zeros_like(x)
        for j in range(x.size):
            step = np.zeros_like(x)
            step[j] = FD_STEP
            up = abs(float(predict((x + step).tolist())) - label)
            down = abs(float(predict((x - step).tolist())) - label)
            grad[j] = (up - down) / (2 * FD_STEP)
        return grad

    def _attack_result(self, attack_type: str, examples: List[Dict[str, Any]],
                       n_success: int) -> Dict[str, Any]:
        n = len(examples)
        success_rate = n_success / n if n else 0.0
        robustness = 1.0 - success_rate
        avg_perturbation = float(np.mean([e["perturbation_magnitude"] for e in examples])) if n else 0.0

        orig_conf = float(np.mean([abs(e["original_prediction"] - 0.5) for e in examples])) if n else 0.0
        adv_conf = float(np.mean([abs(e["adversarial_prediction"] - 0.5) for e in examples])) if n else 0.0
        performance_drop = (orig_conf - adv_conf) / orig_conf if orig_conf > 0 else 0.0

        return {
            "attack_type": attack_type,
            "success_rate": success_rate,
            "average_perturbation": avg_perturbation,
            "robustness_score": robustness,
            "performance_drop": performance_drop,
            "examples": examples,
            "recommendations": self._adversarial_recommendations(success_rate, robustness),
        }

    def _random_in_range(self, ranges: np.ndarray) -> np.ndarray:
        return ranges[:, 0] + self._rng.random(len(ranges)) * (ranges[:, 1] - ranges[:, 0])

    @staticmethod
    def _validate_inputs(inputs, labels):
        X = np.asarray(inputs, dtype=float)
        y = np.asarray(labels, dtype=float)
        if X.ndim != 2 or X.shape[0] == 0 or X.shape[1] == 0:
            raise AnalysisInputError("inputs must be a non-empty 2-D array of samples")
        if y.shape[0] != X.shape[0]:
            raise AnalysisInputError(
                f"labels length {y.shape[0]} does not match {X.shape[0]} inputs"
            )
        return X, y

    @staticmethod
    def _validate_ranges(feature_ranges) -> np.ndarray:
        if not feature_ranges:
            raise AnalysisInputError("feature_ranges must describe at least one feature")
        ranges = np.array([[float(r["min"]), float(r["max"])] for r in feature_ranges])
        if np.any(ranges[:, 0] > ranges[:, 1]):
            raise AnalysisInputError("every feature range needs min <= max")
        return ranges

    # ──────────────────────────────────────────────────────────────────────────
    # RECOMMENDATION TEXT
    # ──────────────────────────────────────────────────────────────────────────
    @staticmethod
    def _adversarial_recommendations(success_rate: float, robustness: float) -> List[str]:
        recs = []
        if success_rate > 0.5:
            recs.append("HIGH RISK: Model highly vulnerable to adversarial attacks")
            recs.append("Implement adversarial training during model development")
            recs.append("Add input preprocessing and sanitization")
            recs.append("Consider ensemble methods for improved robustness")
        elif success_rate > 0.3:
            recs.append("MEDIUM RISK: Model shows some vulnerability to adversarial attacks")
            recs.append("Review and strengthen input validation")
            recs.append("Monitor for adversarial inputs in production")
        else:
            recs.append("LOW RISK: Model demonstrates good adversarial robustness")

        if robustness < 0.7:
            recs.append("Consider implementing adversarial detection systems")
            recs.append("Add confidence thresholding for suspicious inputs")
        return recs

    @staticmethod
    def _edge_case_recommendations(test_type: str, success_rate: float) -> List[str]:
        label = test_type.replace("_", " ").upper()
        if success_rate < EDGE_PASS_RATE:
            return [
                f"{label}: Poor handling of edge cases",
                "Implement proper input validation and sanitization",
                "Add fallback mechanisms for edge case inputs",
                "Consider using more robust preprocessing",
            ]
        return [f"{label}: Good edge case handling"]

    @staticmethod
    def _stress_recommendations(error_rate: float, throughput: float,
                                target: Optional[float] = None) -> List[str]:
        recs = []
        if error_rate > STRESS_FAIL_ERROR_RATE:
            recs.append("HIGH LOAD: System fails under concurrent load")
            recs.append("Implement request queuing and rate limiting")
            recs.append("Consider horizontal scaling or optimization")
            recs.append("Review resource allocation and bottlenecks")
        elif error_rate > STRESS_OK_ERROR_RATE:
            recs.append("MEDIUM LOAD: Some degradation under load")
            recs.append("Monitor resource usage during peak times")
            recs.append("Consider implementing circuit breakers")
        else:
            recs.append("GOOD PERFORMANCE: Handles concurrent load well")

        if target is not None:
            if throughput < target:
                recs.append(f"Throughput {throughput:.0f} req/s is below the {target:g} req/s target")
        elif throughput < 100:
            recs.append("Consider performance optimization for higher throughput")
        return recs

    @staticmethod
    def _comprehensive_recommendations(overall: float, vulnerabilities: List[str],
                                       fgsm: Dict[str, Any], edge_results: List[Dict[str, Any]],
                                       stress_results: List[Dict[str, Any]]) -> List[str]:
        recs = []
        if overall < 0.6:
            recs.append("CRITICAL: Model shows poor robustness across multiple dimensions")
            recs.append("Immediate security review and model hardening required")
            recs.append("Consider model replacement or significant retraining")
        elif overall < 0.8:
            recs.append("CONCERNS: Model robustness needs improvement")
            recs.append("Implement additional safety measures and monitoring")
            recs.append("Schedule robustness improvements in next development cycle")
        else:
            recs.append("GOOD: Model demonstrates adequate robustness")
            recs.append("Continue monitoring and maintain current safeguards")

        recs.extend(f"VULNERABILITY: {v}" for v in vulnerabilities)
        recs.extend(fgsm["recommendations"][:2])

        if any(r["success_rate"] < EDGE_PASS_RATE for r in edge_results):
            recs.append("Address failing edge case categories before deployment")
        if any(r["error_rate"] > STRESS_OK_ERROR_RATE for r in stress_results):
            recs.append("Improve performance under load before production deployment")

        return list(dict.fromkeys(recs))


def create_robustness_test_engine(config: Optional[Mapping[str, Any]] = None) -> RobustnessTestEngine:
    return RobustnessTestEngine(config)


def run_quick_robustness_assessment(model_predict: PredictFn,
                                    sample_inputs: Sequence[Sequence[float]],
                                    sample_labels: Sequence[float],
                                    feature_ranges: Sequence[Mapping[str, float]],
                                    random_seed: Optional[int] = None) -> Dict[str, Any]:
    """FGSM plus edge cases only. No stress load is generated."""
    engine = create_robustness_test_engine({
        "adversarial": {"max_perturbation": 0.1, "iterations": 50, "confidence_threshold": 0.5},
        "edge_cases": {"test_categories": [], "sample_size": 20},
        "random_seed": random_seed,
    })
    fgsm = engine.run_fgsm_attack(model_predict, sample_inputs, sample_labels, 0.1)
    edge_results = engine.run_edge_case_tests(model_predict, feature_ranges)

    edge_score = float(np.mean([r["robustness_score"] for r in edge_results]))
    score = (fgsm["robustness_score"] + edge_score) / 2

    critical_issues = []
    if fgsm["success_rate"] > 0.5:
        critical_issues.append("High FGSM vulnerability")
    failing = [r for r in edge_results if r["success_rate"] < 0.7]
    if failing:
        critical_issues.append(f"{len(failing)} failing edge case categories")

    summary = (
        f"Robustness Score: {score * 100:.1f}%. "
        f"{len(critical_issues)} critical issues identified. "
        f"{len(failing)} edge case categories need attention."
    )
    return {
        "score": score,
        "critical_issues": critical_issues,
        "summary": summary,
        "detailed_results": {"adversarial": [fgsm], "edge_cases": edge_results},
    }
