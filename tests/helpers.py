"""Shared test helpers. Import in test files: from tests.helpers import make_record."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.calibration.models import Outcome, PredictionRecord, SourcePerformance

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_record(**overrides) -> PredictionRecord:
    """Build a PredictionRecord with sensible defaults. Override any field via kwargs."""
    defaults = {
        "source_id": "src-a",
        "match_id": "m1",
        "league": "NBA",
        "confidence_raw": 70.0,
        "outcome": Outcome.WON,
        "predicted_at": NOW - timedelta(days=1),
        "pick": "home",
    }
    defaults.update(overrides)
    return PredictionRecord(**defaults)


def make_records(
    wins: int,
    losses: int,
    confidence: float = 70.0,
    source_id: str = "src-a",
    pending: int = 0,
    days_ago: float = 1.0,
) -> list[PredictionRecord]:
    """wins + losses + pending records, all at one confidence and time."""
    outcomes = [Outcome.WON] * wins + [Outcome.LOST] * losses + [Outcome.PENDING] * pending
    return [
        make_record(
            source_id=source_id,
            match_id=f"{source_id}-m{i}",
            confidence_raw=confidence,
            outcome=outcome,
            predicted_at=NOW - timedelta(days=days_ago),
        )
        for i, outcome in enumerate(outcomes)
    ]


def make_sequence(
    outcomes: str,
    confidence: float = 70.0,
    source_id: str = "src-a",
) -> list[PredictionRecord]:
    """Records from a "WWLW..." string, most recent first (one hour apart)."""
    return [
        make_record(
            source_id=source_id,
            match_id=f"{source_id}-s{i}",
            confidence_raw=confidence,
            outcome=Outcome.WON if ch == "W" else Outcome.LOST,
            predicted_at=NOW - timedelta(hours=i + 1),
        )
        for i, ch in enumerate(outcomes)
    ]


def make_performance(**overrides) -> SourcePerformance:
    """Build a SourcePerformance with neutral defaults."""
    defaults = {
        "source_id": "src-a",
        "source_name": "Source A",
        "window_days": 14,
        "total_bets": 20,
        "wins": 11,
        "losses": 9,
        "win_rate": 55.0,
        "expected_win_rate": 55.0,
        "performance_vs_expected": 0.0,
        "streak": 0,
        "is_underperforming": False,
        "is_overperforming": False,
    }
    defaults.update(overrides)
    return SourcePerformance(**defaults)
