#!/usr/bin/env python3
"""Recalibrate from prediction history and print the calibration report.

Usage:
    python scripts/calibration_report.py                 # Markdown to stdout
    python scripts/calibration_report.py --json          # Machine-readable
    python scripts/calibration_report.py --long-days 60 --short-days 7

Scheduling is external (cron, every CALIBRATION_REFRESH_MINUTES).
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def format_report(result, summary) -> str:
    """Format a RecalibrationResult + CalibrationSummary as Markdown."""
    lines: list[str] = []
    lines.append("# Calibration Report")
    lines.append(f"Generated: {result.timestamp.strftime('%Y-%m-%d %H:%M UTC')}\n")

    lines.append("## Confidence Bins")
    lines.append("")
    lines.append("| Bin | N | Expected | Actual | Error | Factor | 90% CI |")
    lines.append("|-----|---|----------|--------|-------|--------|--------|")
    for b in result.bin_result.bins:
        if b.sample_size == 0:
            continue
        lines.append(
            f"| {b.label} | {b.sample_size} | {b.expected_win_rate:.1f}% "
            f"| {b.actual_win_rate:.1f}% | {b.calibration_error:+.1f} "
            f"| x{b.adjustment_factor:.2f} | {b.win_rate_lower:.0f}-{b.win_rate_upper:.0f}% |"
        )
    lines.append("")
    lines.append(
        f"Overall factor: x{result.bin_result.overall_adjustment_factor:.2f} "
        f"| Calibrated: {'yes' if result.bin_result.is_calibrated else 'NO'}"
    )
    lines.append("")

    lines.append(f"## Sources (last {result.window_days} days)")
    lines.append("")
    lines.append("| Source | Bets | Win% | Expected | Streak | Weight | Mult | Status |")
    lines.append("|--------|------|------|----------|--------|--------|------|--------|")
    for s in result.source_performance:
        status = "PAUSED" if s.is_paused else "active"
        lines.append(
            f"| {s.source_name} | {s.total_bets} | {s.win_rate:.1f}% "
            f"| {s.expected_win_rate:.1f}% | {s.streak:+d} "
            f"| {s.adjusted_weight * 100:.1f}% | x{s.confidence_multiplier:.2f} | {status} |"
        )
    lines.append("")

    lines.append("## Recommendations")
    lines.append("")
    for rec in result.recommendations:
        lines.append(f"- **[{rec.severity}] {rec.message}**: {rec.suggested_action} ({rec.impact})")
    for rec in result.bin_result.recommendations:
        if rec.issue != "well_calibrated":
            lines.append(f"- {rec.bin}: {rec.description}")
    lines.append("")

    lines.append(
        f"Health score: {result.overall_health_score} "
        f"| Paused sources: {summary.paused_sources} "
        f"| Adjusted bins: {summary.bins.adjusted_bins_count}"
    )
    return "\n".join(lines)


def main() -> int:
    parser = argparse.ArgumentParser(description="Confidence calibration report")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of Markdown")
    parser.add_argument("--long-days", type=int, default=None, help="Bin calibration window")
    parser.add_argument("--short-days", type=int, default=None, help="Source performance window")
    args = parser.parse_args()

    from src.calibration.context import CalibrationContext
    from src.calibration.models import CalibrationConfig
    from src.calibration.refresh import refresh_calibration
    from src.logging_config import get_run_logger, setup_logging

    run_log = get_run_logger(__name__, setup_logging())

    config = CalibrationConfig.from_settings()
    if args.long_days is not None:
        config = replace(config, long_term_days=args.long_days)
    if args.short_days is not None:
        config = replace(config, short_term_days=args.short_days)

    context = CalibrationContext(config)
    result = refresh_calibration(context)
    if result is None:
        run_log.error("Calibration refresh failed (see warnings above)")
        return 1

    summary = context.get_calibration_summary()
    if args.json:
        print(json.dumps(
            {"result": asdict(result), "summary": asdict(summary)},
            default=str,
            ensure_ascii=False,
            indent=2,
        ))
    else:
        print(format_report(result, summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
