"""
Statistical primitives used by the drift engine.

Thin, dict-returning wrappers around scipy.stats so every detector reports
the same keys (statistic / p_value / is_significant / effect_size).
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
from scipy import stats

PSI_EPSILON = 1e-4
DEFAULT_ALPHA = 0.05


def _as_float_array(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1:
        arr = arr.ravel()
    return arr


def kolmogorov_smirnov_test(baseline: Sequence[float], current: Sequence[float],
                            alpha: float = DEFAULT_ALPHA) -> Dict[str, Any]:
    """Two-sample KS test. The D statistic doubles as the effect size."""
    a = _as_float_array(baseline)
    b = _as_float_array(current)
    if a.size == 0 or b.size == 0:
        return {"statistic": 0.0, "p_value": 1.0, "is_significant": False, "effect_size": 0.0}

    res = stats.ks_2samp(a, b)
    d = float(res.statistic)
    p = float(res.pvalue)
    return {
        "statistic": d,
        "p_value": p,
        "is_significant": p < alpha,
        "effect_size": d,
    }


def mann_whitney_u_test(baseline: Sequence[float], current: Sequence[float],
                        alpha: float = DEFAULT_ALPHA) -> Dict[str, Any]:
    """Two-sided Mann-Whitney U with rank-biserial effect size."""
    a = _as_float_array(baseline)
    b = _as_float_array(current)
    n1, n2 = a.size, b.size
    if n1 == 0 or n2 == 0:
        return {"statistic": 0.0, "p_value": 1.0, "is_significant": False, "effect_size": 0.0}

    # Identical constant samples make the test degenerate
    if np.all(a == a[0]) and np.all(b == a[0]):
        return {"statistic": float(n1 * n2 / 2), "p_value": 1.0,
                "is_significant": False, "effect_size": 0.0}

    res = stats.mannwhitneyu(a, b, alternative="two-sided")
    u = float(res.statistic)
    p = float(res.pvalue)
    effect = abs(1.0 - 2.0 * u / (n1 * n2))
    return {
        "statistic": u,
        "p_value": p,
        "is_significant": p < alpha,
        "effect_size": float(effect),
    }


def create_contingency_table(baseline: Sequence[str],
                             current: Sequence[str]) -> Tuple[np.ndarray, List[str]]:
    """2 x k count table over the sorted union of observed categories."""
    categories = sorted({str(c) for c in baseline} | {str(c) for c in current})
    index = {c: i for i, c in enumerate(categories)}
    table = np.zeros((2, len(categories)), dtype=float)
    for c in baseline:
        table[0, index[str(c)]] += 1
    for c in current:
        table[1, index[str(c)]] += 1
    return table, categories


def chi_square_test(table: np.ndarray, alpha: float = DEFAULT_ALPHA) -> Dict[str, Any]:
    """Chi-square test of independence with Cramer's V as effect size."""
    t = np.asarray(table, dtype=float)
    t = t[:, t.sum(axis=0) > 0]
    if t.ndim != 2 or t.shape[1] < 2 or np.any(t.sum(axis=1) == 0):
        return {"statistic": 0.0, "p_value": 1.0, "degrees_of_freedom": 0,
                "is_significant": False, "effect_size": 0.0}

    chi2, p, dof, _expected = stats.chi2_contingency(t)
    n = t.sum()
    k = min(t.shape) - 1
    cramers_v = float(np.sqrt(chi2 / (n * k))) if n > 0 and k > 0 else 0.0
    return {
        "statistic": float(chi2),
        "p_value": float(p),
        "degrees_of_freedom": int(dof),
        "is_significant": float(p) < alpha,
        "effect_size": cramers_v,
    }


def population_stability_index(expected_counts: Sequence[float],
                               actual_counts: Sequence[float]) -> float:
    """PSI between two frequency vectors of equal length."""
    e = np.asarray(expected_counts, dtype=float)
    a = np.asarray(actual_counts, dtype=float)
    if e.shape != a.shape:
        raise ValueError("PSI requires frequency vectors of equal length")
    if e.sum() <= 0 or a.sum() <= 0:
        return 0.0

    e_pct = np.maximum(e / e.sum(), PSI_EPSILON)
    a_pct = np.maximum(a / a.sum(), PSI_EPSILON)
    return float(np.sum((a_pct - e_pct) * np.log(a_pct / e_pct)))


def binned_psi(baseline: Sequence[float], current: Sequence[float], n_bins: int = 10) -> float:
    """PSI for continuous values, binned on baseline quantiles."""
    a = _as_float_array(baseline)
    b = _as_float_array(current)
    a = a[np.isfinite(a)]
    b = b[np.isfinite(b)]
    if a.size == 0 or b.size == 0:
        return 0.0

    edges = np.unique(np.quantile(a, np.linspace(0.0, 1.0, n_bins + 1)))
    if edges.size < 2:
        # Constant baseline: two bins, at the constant and away from it
        base_counts = np.array([a.size, 0.0])
        curr_counts = np.array([np.sum(b == a[0]), np.sum(b != a[0])], dtype=float)
        return population_stability_index(base_counts, curr_counts)

    edges = edges.astype(float)
    edges[0], edges[-1] = -np.inf, np.inf
    base_counts, _ = np.histogram(a, bins=edges)
    curr_counts, _ = np.histogram(b, bins=edges)
    return population_stability_index(base_counts, curr_counts)


def confidence_interval(values: Sequence[float], confidence: float = 0.95) -> Tuple[float, float]:
    """Student-t interval around the sample mean."""
    arr = _as_float_array(values)
    if arr.size == 0:
        return (0.0, 0.0)
    mean = float(arr.mean())
    if arr.size < 2:
        return (mean, mean)
    sem = float(stats.sem(arr))
    if sem == 0.0 or not np.isfinite(sem):
        return (mean, mean)
    lo, hi = stats.t.interval(confidence, arr.size - 1, loc=mean, scale=sem)
    return (float(lo), float(hi))


def histogram_summary(values: Sequence[float], n_bins: int = 10) -> List[int]:
    """Equal-width bin counts between min and max."""
    arr = _as_float_array(values)
    if arr.size == 0:
        return [0] * n_bins
    lo, hi = float(arr.min()), float(arr.max())
    if hi == lo:
        counts = [0] * n_bins
        counts[0] = int(arr.size)
        return counts
    counts, _ = np.histogram(arr, bins=n_bins, range=(lo, hi))
    return [int(c) for c in counts]


def distribution_stats(values: Sequence[float]) -> Dict[str, float]:
    arr = _as_float_array(values)
    return {
        "mean": float(arr.mean()),
        "std": float(arr.std()),
        "min": float(arr.min()),
        "max": float(arr.max()),
    }
