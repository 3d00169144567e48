"""
Latency Statistics

Nearest-rank percentiles and the coefficient-of-variation reliability score.
Degenerate inputs (empty samples, zero mean) return 0 rather than raising.
"""

from typing import Dict, Sequence

import numpy as np


def nearest_rank_percentile(values: Sequence[float], percentile: int) -> float:
    """
    Nearest-rank percentile of a sample.

    The rank is ``ceil(p * n / 100) - 1`` clamped to the sample, so
    p50 of [100, 200, 300, 400, 500] is 300 and p95 is 500.

    Args:
        values: Sample, in any order
        percentile: Integer percentile 0-100

    Returns:
        The selected sample value, or 0.0 for an empty sample
    """
    n = len(values)
    if n == 0:
        return 0.0

    ordered = np.sort(np.asarray(values, dtype=float))
    # integer ceil avoids float error in p * n / 100
    rank = -(-(percentile * n) // 100) - 1
    rank = min(max(rank, 0), n - 1)
    return float(ordered[rank])


def percentile_summary(values: Sequence[float]) -> Dict[str, float]:
    """Median, p95 and p99 of a sample."""
    return {
        "median": nearest_rank_percentile(values, 50),
        "p95": nearest_rank_percentile(values, 95),
        "p99": nearest_rank_percentile(values, 99),
    }


def reliability_score(values: Sequence[float]) -> float:
    """
    Latency consistency score: ``max(0, 100 - CV)``.

    CV is the population standard deviation over the mean, in percent.
    A constant sample scores 100; an empty or zero-mean sample scores 0.
    """
    if len(values) == 0:
        return 0.0

    sample = np.asarray(values, dtype=float)
    mean = float(sample.mean())
    if mean == 0:
        return 0.0

    cv = float(sample.std()) / mean * 100
    return max(0.0, 100.0 - cv)


def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    """numerator / denominator * scale, or 0.0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return numerator / denominator * scale
