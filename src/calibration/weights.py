"""Consensus weight and confidence-multiplier adjustment per source.

Turns SourcePerformance windows into voting weights, confidence
multipliers and minimum-confidence thresholds. Suspended sources get
weight 0.0; the remaining weights are normalized to sum to 1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from src.calibration.models import (
    CalibrationConfig,
    RecalibrationAction,
    SourcePerformance,
    SourceRecommendation,
)
from src.calibration.performance import should_pause_source

logger = logging.getLogger(__name__)

# Built-in prediction sources and their starting consensus weights
ML_POWER_INDEX = "f4ce9fdc-c41a-4a5c-9f18-5d732674c5b8"
VALUE_PICK_FINDER = "3a7e2d9b-8c5f-4b1f-9e17-7b31a4dce6c2"
STATISTICAL_EDGE = "85c48bbe-5b1a-4c1e-a0d5-e284e9e952f1"

BASE_WEIGHTS: dict[str, float] = {
    ML_POWER_INDEX: 0.34,
    VALUE_PICK_FINDER: 0.33,
    STATISTICAL_EDGE: 0.33,
}

SOURCE_NAMES: dict[str, str] = {
    ML_POWER_INDEX: "ML Power Index",
    VALUE_PICK_FINDER: "Value Pick Finder",
    STATISTICAL_EDGE: "Statistical Edge",
}

DEFAULT_WEIGHT = 0.33
MIN_WEIGHT = 0.05
MAX_WEIGHT = 0.6
COLD_STREAK_PENALTY = 0.05
HOT_STREAK_BONUS = 0.03

MIN_MULTIPLIER = 0.7
MAX_MULTIPLIER = 1.15

BASE_MIN_CONFIDENCE = 55.0
MAX_MIN_CONFIDENCE = 75.0


@dataclass(frozen=True)
class WeightAdjustment:
    """Output of one weighting pass."""

    sources: list[SourcePerformance]
    actions: list[RecalibrationAction]
    recommendations: list[SourceRecommendation]


def source_name(source_id: str) -> str:
    return SOURCE_NAMES.get(source_id, source_id)


def calculate_source_weights(
    performances: list[SourcePerformance],
    config: CalibrationConfig | None = None,
) -> WeightAdjustment:
    """Fill in weight / multiplier / threshold for every source.

    Returns a new SourcePerformance per input (inputs are not mutated).
    """
    config = config or CalibrationConfig()

    adjusted: list[SourcePerformance] = []
    actions: list[RecalibrationAction] = []
    recommendations: list[SourceRecommendation] = []

    for perf in performances:
        base = BASE_WEIGHTS.get(perf.source_id, DEFAULT_WEIGHT)
        weight, reason, paused = _adjusted_weight(perf, base, config)
        multiplier = _confidence_multiplier(perf, config)
        threshold = _min_confidence_threshold(perf, config)

        adjusted.append(replace(
            perf,
            base_weight=base,
            adjusted_weight=weight,
            confidence_multiplier=multiplier,
            min_confidence_threshold=threshold,
            is_paused=paused,
            adjustment_reason=reason,
        ))

        if abs(weight - base) > 0.05:
            actions.append(RecalibrationAction(
                source_id=perf.source_id,
                action="Weight increased" if weight > base else "Weight decreased",
                previous_value=base,
                new_value=weight,
                reason=reason,
            ))
        if multiplier != 1.0:
            actions.append(RecalibrationAction(
                source_id=perf.source_id,
                action="Confidence multiplier adjusted",
                previous_value=1.0,
                new_value=multiplier,
                reason=f"Based on {perf.performance_vs_expected:.1f}% calibration error",
            ))

        recommendations.append(_recommend(perf, paused, config))

        if paused:
            logger.warning(
                "Source paused: %s win_rate=%.1f%% expected=%.1f%% streak=%d (n=%d)",
                perf.source_name,
                perf.win_rate,
                perf.expected_win_rate,
                perf.streak,
                perf.total_bets,
            )

    # 停止中以外のウェイトを合計 1 に正規化
    total = sum(s.adjusted_weight for s in adjusted if not s.is_paused)
    if total > 0:
        adjusted = [
            s if s.is_paused else replace(s, adjusted_weight=s.adjusted_weight / total)
            for s in adjusted
        ]

    return WeightAdjustment(
        sources=adjusted,
        actions=actions,
        recommendations=recommendations,
    )


def _adjusted_weight(
    perf: SourcePerformance,
    base: float,
    config: CalibrationConfig,
) -> tuple[float, str, bool]:
    """Return (weight, reason, paused) before normalization."""
    # 停止判定はサンプル数チェックより先 (連敗条件は件数不問)
    if should_pause_source(perf):
        return 0.0, "Paused due to severe underperformance", True

    if perf.total_bets < config.min_bets_for_calibration:
        return base, "Insufficient data for adjustment", False

    adjustment = 0.0
    if perf.is_underperforming:
        level = abs(perf.performance_vs_expected) / 100
        adjustment = -min(level * 0.3, config.max_weight_change)
        reason = f"Reduced: {perf.performance_vs_expected:.1f}% below expected"
    elif perf.is_overperforming:
        level = perf.performance_vs_expected / 100
        adjustment = min(level * 0.2, config.max_weight_change)
        reason = f"Boosted: {perf.performance_vs_expected:.1f}% above expected"
    else:
        reason = "Performing as expected"

    if perf.streak <= -config.cold_streak_threshold:
        adjustment -= COLD_STREAK_PENALTY
        reason += f" (cold streak: {abs(perf.streak)} losses)"
    elif perf.streak >= config.hot_streak_threshold:
        adjustment += HOT_STREAK_BONUS
        reason += f" (hot streak: {perf.streak} wins)"

    return max(MIN_WEIGHT, min(MAX_WEIGHT, base + adjustment)), reason, False


def _confidence_multiplier(perf: SourcePerformance, config: CalibrationConfig) -> float:
    if perf.total_bets < config.min_bets_for_calibration:
        return 1.0

    multiplier = 1.0
    error = perf.performance_vs_expected / 100

    if perf.is_underperforming:
        # 過信 → 信頼度を下げる
        multiplier = 1 - min(abs(error) * 0.5, config.max_confidence_reduction / 100)
    elif perf.is_overperforming:
        multiplier = 1 + min(error * 0.3, config.max_confidence_boost / 100)

    if perf.streak <= -3:
        multiplier *= 0.95
    elif perf.streak >= 3:
        multiplier *= 1.02

    return max(MIN_MULTIPLIER, min(MAX_MULTIPLIER, multiplier))


def _min_confidence_threshold(perf: SourcePerformance, config: CalibrationConfig) -> float:
    if perf.total_bets < config.min_bets_for_calibration:
        return BASE_MIN_CONFIDENCE

    if perf.is_underperforming:
        increase = min(abs(perf.performance_vs_expected) * 0.3, 15)
        return min(BASE_MIN_CONFIDENCE + increase, MAX_MIN_CONFIDENCE)

    if perf.is_overperforming:
        decrease = min(perf.performance_vs_expected * 0.2, 10)
        return max(BASE_MIN_CONFIDENCE - decrease, config.min_confidence_floor)

    return BASE_MIN_CONFIDENCE


def _recommend(
    perf: SourcePerformance,
    paused: bool,
    config: CalibrationConfig,
) -> SourceRecommendation:
    name = perf.source_name
    if paused:
        return SourceRecommendation(
            type="pause_source",
            source_id=perf.source_id,
            source_name=name,
            severity="critical",
            message=f"{name} is severely underperforming and should be paused",
            suggested_action="Temporarily pause this source until performance improves",
            impact=(
                f"Currently {perf.win_rate:.1f}% win rate vs "
                f"{perf.expected_win_rate:.1f}% expected"
            ),
        )
    if perf.is_underperforming:
        return SourceRecommendation(
            type="decrease_confidence",
            source_id=perf.source_id,
            source_name=name,
            severity="high" if perf.performance_vs_expected < -15 else "medium",
            message=f"{name} is underperforming expectations",
            suggested_action="Reduce confidence weight and increase minimum threshold",
            impact=f"{perf.performance_vs_expected:.1f}% below expected win rate",
        )
    if perf.is_overperforming:
        return SourceRecommendation(
            type="boost_source",
            source_id=perf.source_id,
            source_name=name,
            severity="low",
            message=f"{name} is exceeding expectations",
            suggested_action="Consider increasing weight for this source",
            impact=f"+{perf.performance_vs_expected:.1f}% above expected win rate",
        )
    return SourceRecommendation(
        type="no_change",
        source_id=perf.source_id,
        source_name=name,
        severity="low",
        message=f"{name} is performing as expected",
        suggested_action="No adjustment needed",
        impact=f"Within {config.underperformance_threshold:g}% of expected performance",
    )
