from __future__ import annotations
import math
from typing import Any, Dict, Sequence, Tuple

import numpy as np
from scipy import stats

from .Experiment import IDENTIFIED, OUTCOMES, TrialResult


def mean_confidence_interval(values: Sequence[float], confidence: float = 0.95) -> Tuple[float, float]:
    """Return (mean, half-width) for a normal-based CI (default 95%)."""

    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0, 0.0
    mean = float(np.mean(arr))
    if arr.size == 1:
        return mean, 0.0
    z = float(stats.norm.ppf(0.5 + confidence / 2.0))
    se = np.std(arr, ddof=1) / math.sqrt(arr.size)
    return mean, float(z * se)


def success_rate(results: Sequence[TrialResult], confidence: float = 0.95) -> Tuple[float, float, float]:
    """Empirical success rate with an exact (Clopper-Pearson) interval."""

    n = len(results)
    if n == 0:
        return 0.0, 0.0, 1.0
    k = sum(1 for r in results if r.succeeded)
    ci = stats.binomtest(k, n).proportion_ci(confidence_level=confidence, method="exact")
    return k / n, float(ci.low), float(ci.high)


def outcome_counts(results: Sequence[TrialResult]) -> Dict[str, int]:
    counts = {name: 0 for name in OUTCOMES}
    for r in results:
        counts[r.outcome] += 1
    return counts


def summary(results: Sequence[TrialResult], *, confidence: float = 0.95) -> Dict[str, Any]:
    """Aggregate sample complexity and correctness over repeated trials.

    Sample-complexity statistics only use trials whose classification finished.
    """

    finished = [r for r in results if r.outcome == IDENTIFIED]
    mean_pulls, ci_pulls = mean_confidence_interval([r.total_pulls for r in finished], confidence)
    rate, rate_low, rate_high = success_rate(results, confidence)
    if finished:
        per_arm = np.mean(np.stack([r.pulls for r in finished]), axis=0).tolist()
    else:
        per_arm = []
    return {
        "n_trials": len(results),
        "outcomes": outcome_counts(results),
        "mean_pulls": mean_pulls,
        "ci_pulls": ci_pulls,
        "max_pulls": int(max((r.total_pulls for r in finished), default=0)),
        "success_rate": rate,
        "success_ci": [rate_low, rate_high],
        "mean_pulls_per_arm": per_arm,
    }
