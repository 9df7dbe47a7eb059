"""Apply calibration tables to new predictions.

calibrate():  raw confidence → source multiplier → bin factor → clamp [45, 95]
consensus():  weighted vote across non-paused sources

Both are pure functions of a CalibrationSnapshot and never raise. An
empty snapshot degrades to the identity transform (plus clamping).
"""

from __future__ import annotations

import math

from src.calibration.bins import bin_index
from src.calibration.models import (
    CalibratedResult,
    CalibrationConfig,
    CalibrationSnapshot,
    ConsensusResult,
    SourcePrediction,
)
from src.calibration.weights import DEFAULT_WEIGHT

MIN_PRESENTED_CONFIDENCE = 45.0
MAX_PRESENTED_CONFIDENCE = 95.0
TIE_TOLERANCE = 1e-9


def _clamp(value: float, lo: float, hi: float) -> float:
    if math.isnan(value):
        return lo
    return max(lo, min(hi, value))


def _source_calibration(
    snapshot: CalibrationSnapshot,
    source_id: str,
    config: CalibrationConfig,
) -> tuple[float, float, float, bool]:
    """(multiplier, weight, min_confidence, paused) with neutral defaults."""
    perf = snapshot.sources.get(source_id)
    if perf is None:
        return 1.0, DEFAULT_WEIGHT, config.min_confidence_floor, False
    return (
        perf.confidence_multiplier,
        perf.adjusted_weight,
        perf.min_confidence_threshold,
        perf.is_paused,
    )


def calibrate(
    snapshot: CalibrationSnapshot,
    raw_confidence: float,
    source_id: str,
    config: CalibrationConfig | None = None,
) -> CalibratedResult:
    """Calibrate one source's raw confidence against the snapshot."""
    config = config or CalibrationConfig()
    multiplier, _, min_confidence, paused = _source_calibration(snapshot, source_id, config)

    stage1 = raw_confidence * multiplier

    factor = 1.0
    label = "N/A"
    bins = snapshot.bin_result.bins if snapshot.bin_result else []
    if bins:
        b = bins[bin_index(stage1, len(bins))]
        factor = b.adjustment_factor
        label = b.label

    stage2 = _clamp(stage1 * factor, MIN_PRESENTED_CONFIDENCE, MAX_PRESENTED_CONFIDENCE)
    adjusted = round(stage2, 1)

    return CalibratedResult(
        adjusted_confidence=adjusted,
        raw_confidence=raw_confidence,
        multiplier=multiplier,
        bin_adjustment_factor=factor,
        bin_label=label,
        was_adjusted=factor != 1.0,
        meets_threshold=adjusted >= min_confidence,
        is_paused=paused,
    )


def consensus(
    snapshot: CalibrationSnapshot,
    predictions: list[SourcePrediction],
    config: CalibrationConfig | None = None,
) -> ConsensusResult:
    """Weighted consensus pick across sources.

    Paused sources are excluded (reported with weight 0). The pick with the
    highest weighted confidence wins; ties go to the pick with more total
    weight behind it, then to the lexicographically smallest pick, and the
    latter case is flagged as a split decision.
    """
    config = config or CalibrationConfig()
    weights: dict[str, float] = {}
    groups: dict[str, list[tuple[float, float]]] = {}
    active_sources: set[str] = set()

    for pred in predictions:
        multiplier, weight, _, paused = _source_calibration(snapshot, pred.source_id, config)
        if paused:
            weights[pred.source_id] = 0.0
            continue
        weights[pred.source_id] = weight
        active_sources.add(pred.source_id)
        groups.setdefault(pred.pick, []).append((pred.confidence * multiplier, weight))

    scored: list[tuple[float, float, str]] = []
    for pick, members in groups.items():
        total_weight = sum(w for _, w in members)
        if total_weight <= 0:
            continue
        weighted = sum(c * w for c, w in members) / total_weight
        scored.append((weighted, total_weight, pick))

    if not scored:
        return ConsensusResult(
            pick="",
            confidence=0.0,
            weights=weights,
            is_high_consensus=False,
        )

    best_conf = max(s[0] for s in scored)
    leaders = [s for s in scored if math.isclose(s[0], best_conf, abs_tol=TIE_TOLERANCE)]
    best_weight = max(s[1] for s in leaders)
    leaders = [s for s in leaders if math.isclose(s[1], best_weight, abs_tol=TIE_TOLERANCE)]
    pick = min(s[2] for s in leaders)

    return ConsensusResult(
        pick=pick,
        confidence=round(best_conf, 1),
        weights=weights,
        is_high_consensus=len(active_sources) >= 2 and len(groups) == 1,
        is_split_decision=len(leaders) > 1,
    )
