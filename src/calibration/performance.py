"""Per-source rolling performance analysis.

Computes win rate, self-consistency gap (win rate vs mean self-reported
confidence) and current streak for one prediction source over a trailing
window, plus the suspension trip-wires and an informational health score.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from src.calibration.models import (
    CalibrationConfig,
    Outcome,
    PredictionRecord,
    SourcePerformance,
)

# --- Suspension trip-wires ---
PAUSE_GAP_MIN_BETS = 15
PAUSE_GAP_PCT = -20.0  # performance_vs_expected
PAUSE_LOSING_STREAK = -8
PAUSE_WIN_RATE_MIN_BETS = 20
PAUSE_WIN_RATE_PCT = 35.0

NEUTRAL_EXPECTED_WIN_RATE = 50.0
RECENT_RESULTS_LIMIT = 10


def analyze_performance(
    source_id: str,
    records: list[PredictionRecord],
    window_days: int,
    config: CalibrationConfig | None = None,
    now: datetime | None = None,
    source_name: str | None = None,
) -> SourcePerformance:
    """Analyze one source over the trailing window_days.

    Records belonging to other sources or predicted before the window are
    ignored. expected_win_rate averages raw confidence over every windowed
    record (pending included); win_rate uses settled records only.
    """
    config = config or CalibrationConfig()
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=window_days)

    window = [
        r for r in records
        if r.source_id == source_id and r.predicted_at >= cutoff
    ]
    settled = sorted(
        (r for r in window if r.outcome.is_settled),
        key=lambda r: r.predicted_at,
        reverse=True,
    )

    wins = sum(1 for r in settled if r.outcome is Outcome.WON)
    losses = len(settled) - wins
    total = wins + losses

    win_rate = 100.0 * wins / total if total > 0 else 0.0
    if window:
        expected = sum(r.confidence_raw for r in window) / len(window)
    else:
        expected = NEUTRAL_EXPECTED_WIN_RATE
    gap = win_rate - expected
    has_sample = total >= config.min_bets_for_calibration

    return SourcePerformance(
        source_id=source_id,
        source_name=source_name or source_id,
        window_days=window_days,
        total_bets=total,
        wins=wins,
        losses=losses,
        win_rate=win_rate,
        expected_win_rate=expected,
        performance_vs_expected=gap,
        streak=_current_streak(settled),
        is_underperforming=has_sample and gap < -config.underperformance_threshold,
        is_overperforming=has_sample and gap > config.overperformance_threshold,
        recent_results=tuple(
            "W" if r.outcome is Outcome.WON else "L"
            for r in settled[:RECENT_RESULTS_LIMIT]
        ),
    )


def should_pause_source(performance: SourcePerformance) -> bool:
    """Check if a source should be suspended from consensus voting.

    Any one of three trip-wires is enough:
    - 15+ bets and more than 20pt below its own expected win rate
    - a losing streak of 8 or more (regardless of sample size)
    - 20+ bets and a win rate below 35%
    """
    if (
        performance.total_bets >= PAUSE_GAP_MIN_BETS
        and performance.performance_vs_expected < PAUSE_GAP_PCT
    ):
        return True
    if performance.streak <= PAUSE_LOSING_STREAK:
        return True
    if (
        performance.total_bets >= PAUSE_WIN_RATE_MIN_BETS
        and performance.win_rate < PAUSE_WIN_RATE_PCT
    ):
        return True
    return False


def compute_health_score(performance: SourcePerformance) -> int:
    """Health score 0-100 (informational, 50 = neutral)."""
    score = 50.0

    # 勝率: 最大 ±25
    if performance.total_bets >= 5:
        score += (performance.win_rate - 50) / 50 * 25

    # 期待値との差: ±15 (20pt 差で満点)
    score += min(max(performance.performance_vs_expected / 20 * 15, -15), 15)

    # 連勝/連敗: ±10
    score += min(max(performance.streak * 2, -10), 10)

    # 0.5 は切り上げ (round() は偶数丸め)
    return int(min(max(math.floor(score + 0.5), 0), 100))


def _current_streak(settled_desc: list[PredictionRecord]) -> int:
    """Signed length of the most recent run of identical outcomes."""
    if not settled_desc:
        return 0
    first = settled_desc[0].outcome
    run = 0
    for r in settled_desc:
        if r.outcome is not first:
            break
        run += 1
    return run if first is Outcome.WON else -run
