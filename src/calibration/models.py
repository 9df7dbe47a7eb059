"""Calibration data models.

Prediction history records, derived bin / source aggregates and the
result types returned by calibrate() and consensus(). Dataclasses only,
no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum


class Outcome(StrEnum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"

    @property
    def is_settled(self) -> bool:
        return self is not Outcome.PENDING


@dataclass(frozen=True)
class PredictionRecord:
    """One historical prediction emitted by one source for one match."""

    source_id: str
    match_id: str
    league: str
    confidence_raw: float  # 0-100, recorded before settlement
    outcome: Outcome
    predicted_at: datetime
    pick: str = ""

    def settle(self, outcome: Outcome) -> PredictionRecord:
        """Return a settled copy. pending → won/lost only, never reversed."""
        if self.outcome.is_settled:
            raise ValueError(
                f"prediction {self.source_id}/{self.match_id} already settled as {self.outcome}"
            )
        if not outcome.is_settled:
            raise ValueError("settlement outcome must be won or lost")
        return replace(self, outcome=outcome)


@dataclass(frozen=True)
class CalibrationBin:
    """A confidence bin with realized vs expected win rate."""

    min_confidence: float  # inclusive
    max_confidence: float  # exclusive (boundary bin: inclusive point)
    label: str
    expected_win_rate: float  # bin midpoint
    sample_size: int = 0
    wins: int = 0
    actual_win_rate: float = 0.0
    calibration_error: float = 0.0
    adjustment_factor: float = 1.0
    is_overconfident: bool = False
    is_underconfident: bool = False
    win_rate_lower: float = 0.0  # Beta posterior lower percentile
    win_rate_upper: float = 100.0
    z_score: float = 0.0

    def contains(self, confidence: float) -> bool:
        if self.min_confidence == self.max_confidence:
            return confidence == self.min_confidence
        return self.min_confidence <= confidence < self.max_confidence


@dataclass(frozen=True)
class BinRecommendation:
    bin: str
    issue: str  # "overconfident" | "underconfident" | "low_sample" | "well_calibrated"
    adjustment_applied: float
    description: str


@dataclass(frozen=True)
class BinCalibrationResult:
    bins: list[CalibrationBin]
    overall_adjustment_factor: float
    is_calibrated: bool
    recommendations: list[BinRecommendation] = field(default_factory=list)


@dataclass(frozen=True)
class SourcePerformance:
    """Rolling performance of one prediction source, plus its consensus weighting.

    The weighting fields keep neutral defaults until the weight adjuster fills them.
    """

    source_id: str
    source_name: str
    window_days: int
    total_bets: int
    wins: int
    losses: int
    win_rate: float
    expected_win_rate: float  # mean self-reported confidence
    performance_vs_expected: float
    streak: int  # +N winning run, -N losing run
    is_underperforming: bool
    is_overperforming: bool
    recent_results: tuple[str, ...] = ()
    base_weight: float = 0.33
    adjusted_weight: float = 0.33
    confidence_multiplier: float = 1.0
    min_confidence_threshold: float = 55.0
    is_paused: bool = False
    adjustment_reason: str = ""


@dataclass(frozen=True)
class RecalibrationAction:
    source_id: str
    action: str
    previous_value: float
    new_value: float
    reason: str


@dataclass(frozen=True)
class SourceRecommendation:
    type: str  # "pause_source" | "decrease_confidence" | "boost_source" | "no_change"
    source_id: str
    source_name: str
    severity: str  # "critical" | "high" | "medium" | "low"
    message: str
    suggested_action: str
    impact: str


@dataclass(frozen=True)
class SourcePrediction:
    """A single source's pick for one match, as fed to consensus()."""

    source_id: str
    pick: str
    confidence: float


@dataclass(frozen=True)
class CalibratedResult:
    adjusted_confidence: float
    raw_confidence: float
    multiplier: float  # source-level confidence multiplier
    bin_adjustment_factor: float
    bin_label: str
    was_adjusted: bool
    meets_threshold: bool
    is_paused: bool


@dataclass(frozen=True)
class ConsensusResult:
    pick: str
    confidence: float
    weights: dict[str, float]
    is_high_consensus: bool
    is_split_decision: bool = False


@dataclass(frozen=True)
class CalibrationSnapshot:
    """Bin table + per-source table, swapped into a context as one unit."""

    bin_result: BinCalibrationResult | None = None
    sources: dict[str, SourcePerformance] = field(default_factory=dict)
    bins_updated_at: datetime | None = None
    sources_updated_at: datetime | None = None

    @property
    def last_updated(self) -> datetime | None:
        stamps = [t for t in (self.bins_updated_at, self.sources_updated_at) if t is not None]
        return max(stamps) if stamps else None


EMPTY_SNAPSHOT = CalibrationSnapshot()


@dataclass(frozen=True)
class CalibrationConfig:
    """Tunables for performance analysis, weighting and bin calibration."""

    short_term_days: int = 14
    long_term_days: int = 90
    min_bets_for_calibration: int = 10
    underperformance_threshold: float = 10.0
    overperformance_threshold: float = 10.0
    max_weight_change: float = 0.15
    cold_streak_threshold: int = 5
    hot_streak_threshold: int = 5
    max_confidence_reduction: float = 20.0
    max_confidence_boost: float = 10.0
    min_confidence_floor: float = 50.0
    bin_min_sample: int = 5
    stale_after_minutes: int = 30
    confidence_level: float = 0.90

    @classmethod
    def from_settings(cls, s=None) -> CalibrationConfig:
        """Build from the pydantic Settings (defaults to the module singleton)."""
        if s is None:
            from src.config import settings as s
        return cls(
            short_term_days=s.short_term_days,
            long_term_days=s.long_term_days,
            min_bets_for_calibration=s.min_bets_for_calibration,
            underperformance_threshold=s.underperformance_threshold,
            overperformance_threshold=s.overperformance_threshold,
            max_weight_change=s.max_weight_change,
            cold_streak_threshold=s.cold_streak_threshold,
            hot_streak_threshold=s.hot_streak_threshold,
            max_confidence_reduction=s.max_confidence_reduction,
            max_confidence_boost=s.max_confidence_boost,
            min_confidence_floor=s.min_confidence_floor,
            bin_min_sample=s.bin_min_sample,
            stale_after_minutes=s.calibration_stale_minutes,
            confidence_level=s.calibration_confidence_level,
        )
