"""
Calibration diagnostics for simulated score distributions

Read-only evaluators over (prediction, outcome) history: CRPS, reliability
bins with ECE, interval coverage, Brier and log scores.
"""

from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd

COVERAGE_TOLERANCE = 0.05


def crps_from_samples(samples, observed: float) -> float:
    """
    Continuous Ranked Probability Score of a sample set (lower is better)

    CRPS = E|X - y| - 0.5 E|X - X'|, with the second term computed in
    O(n log n) from the sorted samples.
    """
    x = np.sort(np.asarray(samples, dtype=float))
    n = x.size
    if n == 0:
        raise ValueError("CRPS needs at least one sample")
    mean_abs = np.mean(np.abs(x - observed))
    ranks = 2 * np.arange(1, n + 1) - n - 1
    pair_term = (2.0 / n ** 2) * float(ranks @ x)
    return float(mean_abs - 0.5 * pair_term)


def _as_arrays(predicted, observed):
    p = np.asarray(predicted, dtype=float)
    o = np.asarray(observed, dtype=float)
    if p.shape != o.shape:
        raise ValueError("Predictions and outcomes must have the same length")
    if p.size == 0:
        raise ValueError("Need at least one prediction")
    return p, o


def reliability_bins(predicted, observed, bins: int = 10) -> pd.DataFrame:
    """
    Bin predicted probabilities and compare with observed frequency

    Returns one row per non-empty bin with columns lo, hi, avg_predicted,
    observed_freq, count, se. A prediction of exactly 1.0 falls in the last bin.
    """
    p, o = _as_arrays(predicted, observed)
    edges = np.linspace(0.0, 1.0, bins + 1)
    idx = np.clip(np.digitize(p, edges[1:-1], right=False), 0, bins - 1)

    rows = []
    for b in range(bins):
        hit = idx == b
        count = int(hit.sum())
        if count == 0:
            continue
        freq = float(o[hit].mean())
        rows.append({
            'lo': edges[b],
            'hi': edges[b + 1],
            'avg_predicted': float(p[hit].mean()),
            'observed_freq': freq,
            'count': count,
            'se': float(np.sqrt(freq * (1 - freq) / count)),
        })
    return pd.DataFrame(rows, columns=['lo', 'hi', 'avg_predicted', 'observed_freq', 'count', 'se'])


def expected_calibration_error(bins_df: pd.DataFrame, n: Optional[int] = None) -> float:
    """Bin-count-weighted mean |avg predicted - observed frequency|"""
    if bins_df.empty:
        return 0.0
    n = int(bins_df['count'].sum()) if n is None else n
    gaps = (bins_df['avg_predicted'] - bins_df['observed_freq']).abs()
    return float((bins_df['count'] / n * gaps).sum())


def interval_coverage(lower, upper, actual, nominal: float = 0.8) -> Dict[str, Any]:
    """Share of outcomes inside their prediction interval vs nominal coverage"""
    lo = np.asarray(lower, dtype=float)
    hi = np.asarray(upper, dtype=float)
    y = np.asarray(actual, dtype=float)
    if not (lo.shape == hi.shape == y.shape):
        raise ValueError("Interval bounds and actuals must have the same length")
    if y.size == 0:
        raise ValueError("Need at least one interval")

    actual_cov = float(np.mean((y >= lo) & (y <= hi)))
    error = abs(actual_cov - nominal)
    return {
        'actual_coverage': actual_cov,
        'nominal_coverage': nominal,
        'coverage_error': error,
        'is_calibrated': error < COVERAGE_TOLERANCE,
    }


def brier_score(predicted, observed) -> float:
    p, o = _as_arrays(predicted, observed)
    return float(np.mean((p - o) ** 2))


def log_score(predicted, observed) -> float:
    """Mean negative log likelihood of binary outcomes (lower is better)"""
    p, o = _as_arrays(predicted, observed)
    p = np.clip(p, 1e-10, 1 - 1e-10)
    return float(-np.mean(o * np.log(p) + (1 - o) * np.log(1 - p)))


def calibration_report(sample_sets: Sequence, actual_values: Sequence[float],
                       win_probabilities: Optional[Sequence[float]] = None,
                       outcomes: Optional[Sequence[bool]] = None,
                       bins: int = 10) -> Dict[str, Any]:
    """
    Summary of distribution quality over past matchups

    Args:
        sample_sets: simulated score (or margin) samples, one array per matchup
        actual_values: realized score (or margin) per matchup
        win_probabilities: predicted P(win) per matchup, optional
        outcomes: realized wins, required with win_probabilities
        bins: reliability bin count
    """
    if len(sample_sets) != len(actual_values):
        raise ValueError("Need one sample set per actual value")

    report: Dict[str, Any] = {'sample_size': len(actual_values)}
    report['crps'] = float(np.mean([crps_from_samples(s, y) for s, y in zip(sample_sets, actual_values)]))

    for label, (qlo, qhi), nominal in (('coverage_50', (25, 75), 0.5), ('coverage_80', (10, 90), 0.8)):
        lo = [np.percentile(s, qlo) for s in sample_sets]
        hi = [np.percentile(s, qhi) for s in sample_sets]
        report[label] = interval_coverage(lo, hi, actual_values, nominal)

    well_calibrated = report['coverage_50']['is_calibrated'] and report['coverage_80']['is_calibrated']

    if win_probabilities is not None:
        if outcomes is None:
            raise ValueError("outcomes are required with win_probabilities")
        table = reliability_bins(win_probabilities, outcomes, bins)
        report['reliability'] = table
        report['ece'] = expected_calibration_error(table, len(outcomes))
        report['brier'] = brier_score(win_probabilities, outcomes)
        report['log_score'] = log_score(win_probabilities, outcomes)
        well_calibrated = well_calibrated and report['ece'] < COVERAGE_TOLERANCE

    report['well_calibrated'] = well_calibrated
    return report
