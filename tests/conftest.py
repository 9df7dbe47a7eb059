"""Shared fixtures for calibration tests.

Helper functions (make_record, make_performance, etc.) are in tests/helpers.py.
"""

from __future__ import annotations

import pytest

from src.calibration.bins import analyze_bins
from src.calibration.models import (
    BinCalibrationResult,
    CalibrationConfig,
    CalibrationSnapshot,
)
from tests.helpers import make_performance, make_records


@pytest.fixture()
def config() -> CalibrationConfig:
    return CalibrationConfig()


@pytest.fixture()
def overconfident_bins() -> BinCalibrationResult:
    """70-74% bin: 6 picks at 73, 2 won → factor 0.70."""
    return analyze_bins(make_records(wins=2, losses=4, confidence=73.0))


@pytest.fixture()
def three_source_snapshot() -> CalibrationSnapshot:
    """A and B active at weight 0.4, C paused."""
    sources = {
        "A": make_performance(source_id="A", source_name="A", adjusted_weight=0.4),
        "B": make_performance(source_id="B", source_name="B", adjusted_weight=0.4),
        "C": make_performance(
            source_id="C", source_name="C", adjusted_weight=0.0, is_paused=True,
        ),
    }
    return CalibrationSnapshot(sources=sources)
