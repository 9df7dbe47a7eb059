"""Recalibration run: fetch history, rebuild both tables, swap into the context.

Invoked by an external timer (cron, default every 60 min) or on demand
when the context reports stale tables. A failed fetch leaves the previous
snapshot untouched.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from src.calibration.bins import analyze_bins
from src.calibration.context import CalibrationContext
from src.calibration.models import (
    BinCalibrationResult,
    PredictionRecord,
    RecalibrationAction,
    SourcePerformance,
    SourceRecommendation,
)
from src.calibration.performance import analyze_performance, compute_health_score
from src.calibration.weights import BASE_WEIGHTS, calculate_source_weights, source_name

logger = logging.getLogger(__name__)

FetchFn = Callable[[int], list[PredictionRecord]]


@dataclass(frozen=True)
class RecalibrationResult:
    timestamp: datetime
    window_days: int
    bin_result: BinCalibrationResult
    source_performance: list[SourcePerformance]
    recommendations: list[SourceRecommendation]
    actions_taken: list[RecalibrationAction]
    overall_health_score: int


def _default_fetch(window_days: int) -> list[PredictionRecord]:
    from src.connectors.predictions_feed import fetch_settled_predictions

    return fetch_settled_predictions(window_days=window_days)


def recalibrate(
    context: CalibrationContext,
    records: list[PredictionRecord],
    now: datetime | None = None,
) -> RecalibrationResult:
    """Rebuild bins and source weights from records and swap them in."""
    config = context.config
    now = now or datetime.now(timezone.utc)

    bin_result = analyze_bins(records, config)

    # 既知ソース + 履歴に現れたソース (出現順)
    source_ids = list(BASE_WEIGHTS)
    for r in records:
        if r.source_id not in source_ids:
            source_ids.append(r.source_id)

    performances = [
        analyze_performance(
            sid,
            records,
            config.short_term_days,
            config,
            now=now,
            source_name=source_name(sid),
        )
        for sid in source_ids
    ]
    adjustment = calculate_source_weights(performances, config)

    context.swap(bin_result, adjustment.sources, now=now)

    scores = [compute_health_score(p) for p in adjustment.sources]
    health = math.floor(sum(scores) / len(scores) + 0.5) if scores else 50

    paused = [s.source_name for s in adjustment.sources if s.is_paused]
    logger.info(
        "Recalibrated from %d records: overall_factor=%.2f calibrated=%s "
        "adjusted_bins=%d paused=%s health=%d",
        len(records),
        bin_result.overall_adjustment_factor,
        bin_result.is_calibrated,
        sum(1 for b in bin_result.bins if b.adjustment_factor != 1.0),
        ",".join(paused) or "-",
        health,
    )

    return RecalibrationResult(
        timestamp=now,
        window_days=config.short_term_days,
        bin_result=bin_result,
        source_performance=adjustment.sources,
        recommendations=adjustment.recommendations,
        actions_taken=adjustment.actions,
        overall_health_score=health,
    )


def refresh_calibration(
    context: CalibrationContext,
    fetch: FetchFn | None = None,
    now: datetime | None = None,
) -> RecalibrationResult | None:
    """Fetch history over the long-term window and recalibrate.

    Returns None (previous snapshot kept) if the fetch fails.
    """
    fetch = fetch or _default_fetch
    try:
        records = fetch(context.config.long_term_days)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Prediction fetch failed, keeping previous calibration: %s", e)
        return None
    return recalibrate(context, records, now=now)


def refresh_if_stale(
    context: CalibrationContext,
    fetch: FetchFn | None = None,
    now: datetime | None = None,
) -> RecalibrationResult | None:
    """Refresh only when the context reports stale tables."""
    if not context.is_calibration_stale(now=now):
        return None
    return refresh_calibration(context, fetch=fetch, now=now)
