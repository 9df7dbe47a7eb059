"""Bin-level confidence calibration.

Partitions settled predictions into 5-point confidence bins over 50-100,
compares realized win rate with the bin midpoint, and derives a damped
multiplier per bin that is applied to new predictions.

Bins:
    [50,55) [55,60) ... [95,100)  + boundary bin [100,100]

Adjustment (only when sample_size >= min_sample):
    overconfident  (error < -5): 0.7 + (max(0.7, actual/expected) - 0.7) * 0.8
    underconfident (error > +5): 1.0 + (min(1.15, actual/expected) - 1.0) * 0.5

Overconfidence is allowed a larger correction than underconfidence.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from scipy.stats import beta as beta_dist

from src.calibration.models import (
    BinCalibrationResult,
    BinRecommendation,
    CalibrationBin,
    CalibrationConfig,
    Outcome,
    PredictionRecord,
)

BIN_FLOOR = 50
BIN_CEILING = 100
BIN_WIDTH = 5

# ビン判定のしきい値
ERROR_THRESHOLD = 5.0  # |actual - expected| > 5pt で過信/過小評価
FLAG_MIN_SAMPLE = 3  # フラグ・全体係数に含める最小件数
OVERCONFIDENT_FLOOR = 0.7
OVERCONFIDENT_DAMPING = 0.8
UNDERCONFIDENT_CEILING = 1.15
UNDERCONFIDENT_DAMPING = 0.5
PROBLEMATIC_BIN_SHARE = 0.3


@dataclass(frozen=True)
class BinSummary:
    """Worst/best bin digest for dashboards."""

    adjusted_bins_count: int
    worst_bin_label: str | None
    worst_bin_error: float | None
    best_bin_label: str | None
    best_bin_accuracy: float | None


def bin_edges() -> list[tuple[float, float]]:
    """(lo, hi) pairs for every bin, boundary bin last as (100, 100)."""
    edges = [
        (float(lo), float(lo + BIN_WIDTH))
        for lo in range(BIN_FLOOR, BIN_CEILING, BIN_WIDTH)
    ]
    edges.append((float(BIN_CEILING), float(BIN_CEILING)))
    return edges


def bin_index(confidence: float, n_bins: int) -> int:
    """Index of the bin for a confidence, clamped into [0, n_bins - 1].

    Defined for any float: out-of-domain and non-finite values land in the
    first or last bin.
    """
    if n_bins <= 0:
        return 0
    if math.isnan(confidence):
        return 0
    clamped = max(float(BIN_FLOOR), min(float(BIN_CEILING), confidence))
    idx = int(math.floor((clamped - BIN_FLOOR) / BIN_WIDTH))
    return max(0, min(idx, n_bins - 1))


def analyze_bins(
    records: list[PredictionRecord],
    config: CalibrationConfig | None = None,
) -> BinCalibrationResult:
    """Build the bin table from historical records (pure).

    Pending records are ignored. With no settled data every bin keeps
    adjustment_factor=1.0 and the result reports is_calibrated=True.
    """
    config = config or CalibrationConfig()
    settled = [r for r in records if r.outcome.is_settled]

    bins: list[CalibrationBin] = []
    recommendations: list[BinRecommendation] = []

    for lo, hi in bin_edges():
        boundary = lo == hi
        expected = lo if boundary else lo + (BIN_WIDTH - 1) / 2
        label = f"{lo:.0f}%" if boundary else f"{lo:.0f}-{hi - 1:.0f}%"

        if boundary:
            members = [r for r in settled if r.confidence_raw == lo]
        else:
            members = [r for r in settled if lo <= r.confidence_raw < hi]

        n = len(members)
        wins = sum(1 for r in members if r.outcome is Outcome.WON)
        actual = 100.0 * wins / n if n > 0 else expected
        error = actual - expected

        is_over = error < -ERROR_THRESHOLD and n >= FLAG_MIN_SAMPLE
        is_under = error > ERROR_THRESHOLD and n >= FLAG_MIN_SAMPLE

        factor = 1.0
        if n >= config.bin_min_sample:
            factor = _adjustment_factor(actual, expected, is_over, is_under)

        lower, upper = _win_rate_interval(wins, n, config.confidence_level)

        bins.append(CalibrationBin(
            min_confidence=lo,
            max_confidence=hi,
            label=label,
            expected_win_rate=expected,
            sample_size=n,
            wins=wins,
            actual_win_rate=round(actual, 1),
            calibration_error=round(error, 1),
            adjustment_factor=round(factor, 2),
            is_overconfident=is_over,
            is_underconfident=is_under,
            win_rate_lower=lower,
            win_rate_upper=upper,
            z_score=_z_score(actual / 100, expected / 100, n),
        ))

        rec = _recommend(label, n, actual, expected, factor, is_over, is_under, config)
        if rec is not None:
            recommendations.append(rec)

    with_data = [b for b in bins if b.sample_size >= FLAG_MIN_SAMPLE]
    if with_data:
        overall = float(np.average(
            [b.adjustment_factor for b in with_data],
            weights=[b.sample_size for b in with_data],
        ))
    else:
        overall = 1.0

    problematic = sum(
        1 for b in bins
        if (b.is_overconfident or b.is_underconfident)
        and b.sample_size >= config.bin_min_sample
    )
    is_calibrated = problematic <= math.ceil(len(bins) * PROBLEMATIC_BIN_SHARE)

    return BinCalibrationResult(
        bins=bins,
        overall_adjustment_factor=round(overall, 2),
        is_calibrated=is_calibrated,
        recommendations=recommendations,
    )


def summarize_bins(
    result: BinCalibrationResult,
    min_sample: int = 5,
) -> BinSummary:
    """Pick the worst (largest |error| > 5) and best calibrated bins."""
    adjusted = sum(1 for b in result.bins if b.adjustment_factor != 1.0)
    with_data = [b for b in result.bins if b.sample_size >= min_sample]

    worst_label: str | None = None
    worst_error: float | None = None
    best_label: str | None = None
    best_accuracy: float | None = None

    if with_data:
        worst = max(with_data, key=lambda b: abs(b.calibration_error))
        if abs(worst.calibration_error) > ERROR_THRESHOLD:
            worst_label = worst.label
            worst_error = worst.calibration_error
        best = min(with_data, key=lambda b: abs(b.calibration_error))
        best_label = best.label
        best_accuracy = round(100 - abs(best.calibration_error), 1)

    return BinSummary(
        adjusted_bins_count=adjusted,
        worst_bin_label=worst_label,
        worst_bin_error=worst_error,
        best_bin_label=best_label,
        best_bin_accuracy=best_accuracy,
    )


# --- Internal helpers ---


def _adjustment_factor(
    actual: float,
    expected: float,
    is_over: bool,
    is_under: bool,
) -> float:
    if expected <= 0:
        return 1.0
    ratio = actual / expected
    if is_over:
        target = max(OVERCONFIDENT_FLOOR, ratio)
        return OVERCONFIDENT_FLOOR + (target - OVERCONFIDENT_FLOOR) * OVERCONFIDENT_DAMPING
    if is_under:
        target = min(UNDERCONFIDENT_CEILING, ratio)
        return 1.0 + (target - 1.0) * UNDERCONFIDENT_DAMPING
    return 1.0


def _recommend(
    label: str,
    n: int,
    actual: float,
    expected: float,
    factor: float,
    is_over: bool,
    is_under: bool,
    config: CalibrationConfig,
) -> BinRecommendation | None:
    if 0 < n < config.bin_min_sample:
        return BinRecommendation(
            bin=label,
            issue="low_sample",
            adjustment_applied=1.0,
            description=f"Only {n} predictions - need more data for reliable calibration",
        )
    if is_over:
        return BinRecommendation(
            bin=label,
            issue="overconfident",
            adjustment_applied=round(factor, 2),
            description=(
                f"Reducing confidence by {(1 - factor) * 100:.0f}% "
                f"(actual: {actual:.1f}% vs expected: {expected:g}%)"
            ),
        )
    if is_under:
        return BinRecommendation(
            bin=label,
            issue="underconfident",
            adjustment_applied=round(factor, 2),
            description=(
                f"Boosting confidence by {(factor - 1) * 100:.0f}% "
                f"(actual: {actual:.1f}% vs expected: {expected:g}%)"
            ),
        )
    if n >= config.bin_min_sample:
        return BinRecommendation(
            bin=label,
            issue="well_calibrated",
            adjustment_applied=1.0,
            description=f"Well calibrated ({actual:.1f}% actual, {n} picks)",
        )
    return None


def _win_rate_interval(wins: int, n: int, confidence_level: float) -> tuple[float, float]:
    """Jeffreys Beta posterior interval for the bin win rate, in percent."""
    if n <= 0:
        return 0.0, 100.0
    tail = (1 - confidence_level) / 2
    a = wins + 0.5
    b = (n - wins) + 0.5
    lower = float(beta_dist.ppf(tail, a, b)) * 100
    upper = float(beta_dist.ppf(1 - tail, a, b)) * 100
    return round(lower, 1), round(upper, 1)


def _z_score(observed: float, expected: float, n: int) -> float:
    """Compute z-score for a binomial proportion test."""
    if n <= 0 or expected <= 0 or expected >= 1:
        return 0.0
    se = math.sqrt(expected * (1 - expected) / n)
    if se == 0:
        return 0.0
    return round((observed - expected) / se, 2)
