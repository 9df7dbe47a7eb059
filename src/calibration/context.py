"""Calibration context: the current snapshot plus its refresh/staleness bookkeeping.

Callers own a CalibrationContext and pass it where calibration is needed
(one per tenant if required). Updates build a complete new snapshot and
replace the reference in one assignment, so readers see either the old
or the new tables, never a mix. Writers serialize on a lock so that
concurrent single-table updates cannot drop each other.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from src.calibration.bins import analyze_bins, summarize_bins
from src.calibration.integration import calibrate, consensus
from src.calibration.models import (
    EMPTY_SNAPSHOT,
    BinCalibrationResult,
    CalibratedResult,
    CalibrationConfig,
    CalibrationSnapshot,
    ConsensusResult,
    PredictionRecord,
    SourcePerformance,
    SourcePrediction,
)

logger = logging.getLogger(__name__)

MULTIPLIER_ADJUSTED_EPS = 0.02


@dataclass(frozen=True)
class BinCalibrationSummary:
    is_active: bool
    last_updated: datetime | None
    overall_factor: float
    adjusted_bins_count: int
    is_calibrated: bool
    worst_bin_label: str | None = None
    worst_bin_error: float | None = None
    best_bin_label: str | None = None
    best_bin_accuracy: float | None = None


@dataclass(frozen=True)
class CalibrationSummary:
    """Read-only status for the operations dashboard."""

    is_active: bool
    last_updated: datetime | None
    adjusted_sources: int
    paused_sources: int
    average_multiplier: float
    bins: BinCalibrationSummary


class CalibrationContext:
    """Holds the active CalibrationSnapshot."""

    def __init__(
        self,
        config: CalibrationConfig | None = None,
        snapshot: CalibrationSnapshot = EMPTY_SNAPSHOT,
    ):
        self.config = config or CalibrationConfig()
        self._snapshot = snapshot
        self._write_lock = threading.Lock()

    @property
    def snapshot(self) -> CalibrationSnapshot:
        return self._snapshot

    # --- Refresh ---

    def swap(
        self,
        bin_result: BinCalibrationResult,
        sources: list[SourcePerformance],
        now: datetime | None = None,
    ) -> CalibrationSnapshot:
        """Swap in both tables at once."""
        now = now or datetime.now(timezone.utc)
        snapshot = CalibrationSnapshot(
            bin_result=bin_result,
            sources={s.source_id: s for s in sources},
            bins_updated_at=now,
            sources_updated_at=now,
        )
        with self._write_lock:
            self._snapshot = snapshot
        return snapshot

    def update_bin_calibration(
        self,
        records: list[PredictionRecord],
        now: datetime | None = None,
    ) -> BinCalibrationResult:
        """Recompute the bin table from the full record set and swap it in."""
        now = now or datetime.now(timezone.utc)
        result = analyze_bins(records, self.config)
        with self._write_lock:
            self._snapshot = replace(self._snapshot, bin_result=result, bins_updated_at=now)

        logger.info(
            "Bin calibration updated: overall_factor=%.2f calibrated=%s adjusted_bins=%d",
            result.overall_adjustment_factor,
            result.is_calibrated,
            sum(1 for b in result.bins if b.adjustment_factor != 1.0),
        )
        return result

    def update_source_calibration(
        self,
        sources: list[SourcePerformance],
        now: datetime | None = None,
    ) -> None:
        """Swap in a new per-source weight table."""
        now = now or datetime.now(timezone.utc)
        table = {s.source_id: s for s in sources}
        with self._write_lock:
            self._snapshot = replace(self._snapshot, sources=table, sources_updated_at=now)

        logger.info(
            "Source weights updated: %s",
            ", ".join(
                f"{s.source_name}: {s.adjusted_weight * 100:.1f}% (x{s.confidence_multiplier:.2f})"
                for s in sources
            ) or "(none)",
        )

    def is_calibration_stale(self, now: datetime | None = None) -> bool:
        """True if either table was never computed or is older than the stale interval."""
        snap = self._snapshot
        if snap.bins_updated_at is None or snap.sources_updated_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        limit = timedelta(minutes=self.config.stale_after_minutes)
        oldest = min(snap.bins_updated_at, snap.sources_updated_at)
        return now - oldest > limit

    # --- Read path ---

    def calibrate(self, raw_confidence: float, source_id: str) -> CalibratedResult:
        return calibrate(self._snapshot, raw_confidence, source_id, self.config)

    def consensus(self, predictions: list[SourcePrediction]) -> ConsensusResult:
        return consensus(self._snapshot, predictions, self.config)

    def get_calibration_summary(self) -> CalibrationSummary:
        snap = self._snapshot
        bin_summary = _summarize_bin_table(snap, self.config)

        sources = list(snap.sources.values())
        if not sources:
            return CalibrationSummary(
                is_active=bin_summary.is_active,
                last_updated=snap.last_updated,
                adjusted_sources=0,
                paused_sources=0,
                average_multiplier=1.0,
                bins=bin_summary,
            )

        adjusted = sum(
            1 for s in sources
            if abs(s.confidence_multiplier - 1.0) > MULTIPLIER_ADJUSTED_EPS
        )
        paused = sum(1 for s in sources if s.is_paused)
        avg_multiplier = sum(s.confidence_multiplier for s in sources) / len(sources)

        return CalibrationSummary(
            is_active=True,
            last_updated=snap.last_updated,
            adjusted_sources=adjusted,
            paused_sources=paused,
            average_multiplier=round(avg_multiplier, 3),
            bins=bin_summary,
        )


def _summarize_bin_table(
    snap: CalibrationSnapshot,
    config: CalibrationConfig,
) -> BinCalibrationSummary:
    if snap.bin_result is None:
        return BinCalibrationSummary(
            is_active=False,
            last_updated=None,
            overall_factor=1.0,
            adjusted_bins_count=0,
            is_calibrated=True,
        )

    digest = summarize_bins(snap.bin_result, min_sample=config.bin_min_sample)
    return BinCalibrationSummary(
        is_active=True,
        last_updated=snap.bins_updated_at,
        overall_factor=snap.bin_result.overall_adjustment_factor,
        adjusted_bins_count=digest.adjusted_bins_count,
        is_calibrated=snap.bin_result.is_calibrated,
        worst_bin_label=digest.worst_bin_label,
        worst_bin_error=digest.worst_bin_error,
        best_bin_label=digest.best_bin_label,
        best_bin_accuracy=digest.best_bin_accuracy,
    )
