"""Tests for per-source performance analysis."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.calibration.models import Outcome
from src.calibration.performance import (
    analyze_performance,
    compute_health_score,
    should_pause_source,
)
from tests.helpers import NOW, make_performance, make_record, make_records, make_sequence


class TestAnalyzePerformance:
    def test_basic_counts(self):
        perf = analyze_performance("src-a", make_records(6, 4, confidence=60.0), 14, now=NOW)
        assert perf.total_bets == 10
        assert perf.wins == 6
        assert perf.losses == 4
        assert perf.win_rate == pytest.approx(60.0)
        assert perf.expected_win_rate == pytest.approx(60.0)
        assert perf.performance_vs_expected == pytest.approx(0.0)
        assert perf.window_days == 14

    def test_window_filters_old_and_foreign_records(self):
        records = make_records(5, 5, confidence=70.0)
        records += make_records(10, 0, confidence=70.0, days_ago=20)
        records += make_records(10, 0, confidence=70.0, source_id="src-b")
        perf = analyze_performance("src-a", records, 14, now=NOW)
        assert perf.total_bets == 10
        assert perf.win_rate == pytest.approx(50.0)

    def test_expected_includes_pending(self):
        records = make_records(5, 5, confidence=70.0)
        records += make_records(0, 0, pending=2, confidence=90.0)
        perf = analyze_performance("src-a", records, 14, now=NOW)
        assert perf.total_bets == 10
        assert perf.expected_win_rate == pytest.approx(880 / 12)

    def test_empty_window(self):
        perf = analyze_performance("src-a", [], 14, now=NOW)
        assert perf.total_bets == 0
        assert perf.win_rate == 0.0
        assert perf.expected_win_rate == 50.0
        assert perf.streak == 0
        assert perf.recent_results == ()
        assert not perf.is_underperforming
        assert not perf.is_overperforming

    def test_source_name_defaults_to_id(self):
        assert analyze_performance("src-a", [], 14, now=NOW).source_name == "src-a"
        named = analyze_performance("src-a", [], 14, now=NOW, source_name="Model A")
        assert named.source_name == "Model A"

    def test_underperforming(self):
        perf = analyze_performance("src-a", make_records(3, 7, confidence=70.0), 14, now=NOW)
        assert perf.performance_vs_expected == pytest.approx(-40.0)
        assert perf.is_underperforming is True
        assert perf.is_overperforming is False

    def test_overperforming(self):
        perf = analyze_performance("src-a", make_records(9, 1, confidence=60.0), 14, now=NOW)
        assert perf.is_overperforming is True
        assert perf.is_underperforming is False

    def test_flags_need_min_bets(self):
        perf = analyze_performance("src-a", make_records(2, 7, confidence=70.0), 14, now=NOW)
        assert perf.total_bets == 9
        assert perf.is_underperforming is False


class TestStreak:
    @pytest.mark.parametrize("outcomes,expected", [
        ("WWWLL", 3),
        ("LLW", -2),
        ("W", 1),
        ("LLLLLLLLW", -8),
    ])
    def test_streak_from_most_recent(self, outcomes, expected):
        perf = analyze_performance("src-a", make_sequence(outcomes), 14, now=NOW)
        assert perf.streak == expected

    def test_pending_does_not_break_streak(self):
        records = make_sequence("LLW")
        records.append(make_record(
            outcome=Outcome.PENDING,
            predicted_at=NOW - timedelta(minutes=5),
        ))
        perf = analyze_performance("src-a", records, 14, now=NOW)
        assert perf.streak == -2

    def test_recent_results_capped(self):
        perf = analyze_performance("src-a", make_sequence("WL" * 8), 14, now=NOW)
        assert len(perf.recent_results) == 10
        assert perf.recent_results[:3] == ("W", "L", "W")


class TestShouldPauseSource:
    def test_low_win_rate_with_sample(self):
        # 20 bets, 6 wins → 30% < 35%
        perf = make_performance(
            total_bets=20, wins=6, losses=14, win_rate=30.0,
            performance_vs_expected=0.0, streak=2,
        )
        assert should_pause_source(perf) is True

    def test_low_win_rate_from_records(self):
        perf = analyze_performance("src-a", make_records(6, 14, confidence=30.0), 14, now=NOW)
        assert perf.performance_vs_expected == pytest.approx(0.0)
        assert should_pause_source(perf) is True

    def test_low_win_rate_small_sample(self):
        perf = make_performance(total_bets=19, win_rate=30.0)
        assert should_pause_source(perf) is False

    def test_large_gap(self):
        perf = make_performance(total_bets=15, win_rate=50.0, performance_vs_expected=-21.0)
        assert should_pause_source(perf) is True

    def test_large_gap_small_sample(self):
        perf = make_performance(total_bets=14, win_rate=50.0, performance_vs_expected=-21.0)
        assert should_pause_source(perf) is False

    def test_losing_streak_any_sample(self):
        perf = make_performance(total_bets=8, wins=0, losses=8, win_rate=0.0, streak=-8)
        assert should_pause_source(perf) is True

    def test_seven_losses_not_enough(self):
        perf = make_performance(total_bets=7, wins=0, losses=7, win_rate=0.0, streak=-7)
        assert should_pause_source(perf) is False

    def test_healthy(self):
        assert should_pause_source(make_performance()) is False

    def test_monotonic_in_added_losses(self):
        records = make_records(6, 14, confidence=50.0)
        assert should_pause_source(analyze_performance("src-a", records, 14, now=NOW))
        for i in range(10):
            records.append(make_record(
                match_id=f"extra{i}",
                confidence_raw=50.0,
                outcome=Outcome.LOST,
                predicted_at=NOW - timedelta(minutes=i + 1),
            ))
            perf = analyze_performance("src-a", records, 14, now=NOW)
            assert should_pause_source(perf) is True


class TestHealthScore:
    def test_neutral(self):
        perf = make_performance(win_rate=50.0, performance_vs_expected=0.0, streak=0)
        assert compute_health_score(perf) == 50

    def test_best_case(self):
        perf = make_performance(win_rate=100.0, performance_vs_expected=40.0, streak=10)
        assert compute_health_score(perf) == 100

    def test_worst_case(self):
        perf = make_performance(win_rate=0.0, performance_vs_expected=-40.0, streak=-10)
        assert compute_health_score(perf) == 0

    def test_expectation_term_clamped(self):
        perf = make_performance(win_rate=50.0, performance_vs_expected=-100.0, streak=0)
        assert compute_health_score(perf) == 35

    def test_small_sample_ignores_win_rate(self):
        perf = make_performance(total_bets=3, win_rate=100.0, performance_vs_expected=0.0)
        assert compute_health_score(perf) == 50

    def test_half_point_rounds_up(self):
        # 50 + (51 - 50) / 50 * 25 = 50.5
        perf = make_performance(win_rate=51.0, performance_vs_expected=0.0, streak=0)
        assert compute_health_score(perf) == 51
