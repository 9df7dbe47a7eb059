"""Tests for the prediction history feed."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from src.calibration.models import Outcome
from src.connectors.predictions_feed import fetch_settled_predictions, record_from_row
from tests.helpers import NOW


def _row(**overrides) -> dict:
    row = {
        "id": "p1",
        "algorithm_id": "src-a",
        "match_id": 1234,
        "league": "NBA",
        "confidence": 72,
        "status": "won",
        "predicted_at": "2026-02-28T18:30:00Z",
        "prediction": "home",
    }
    row.update(overrides)
    return row


class MockResponse:
    def __init__(self, rows, status_code=200):
        self._rows = rows
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._rows


@pytest.fixture()
def configured(monkeypatch):
    monkeypatch.setattr("src.connectors.predictions_feed.settings.supabase_url", "https://db.example.test/")
    monkeypatch.setattr("src.connectors.predictions_feed.settings.supabase_key", "anon-key")
    monkeypatch.setattr("src.connectors.predictions_feed.settings.feed_page_size", 2)


class TestRecordFromRow:
    def test_valid_row(self):
        rec = record_from_row(_row())
        assert rec is not None
        assert rec.source_id == "src-a"
        assert rec.match_id == "1234"
        assert rec.confidence_raw == 72.0
        assert rec.outcome is Outcome.WON
        assert rec.predicted_at == datetime(2026, 2, 28, 18, 30, tzinfo=timezone.utc)
        assert rec.pick == "home"

    def test_status_case_insensitive(self):
        assert record_from_row(_row(status="LOST")).outcome is Outcome.LOST

    def test_missing_status_is_pending(self):
        assert record_from_row(_row(status=None)).outcome is Outcome.PENDING

    def test_naive_timestamp_is_utc(self):
        rec = record_from_row(_row(predicted_at="2026-02-28T18:30:00"))
        assert rec.predicted_at.tzinfo is not None
        assert rec.predicted_at.utcoffset() == timedelta(0)

    def test_numeric_string_confidence(self):
        assert record_from_row(_row(confidence="72.5")).confidence_raw == 72.5

    @pytest.mark.parametrize("overrides", [
        {"algorithm_id": None},
        {"confidence": None},
        {"confidence": "high"},
        {"predicted_at": "yesterday"},
        {"predicted_at": None},
        {"status": "push"},
        {"predicted_at": 1700000000},
    ])
    def test_unusable_rows_dropped(self, overrides):
        assert record_from_row(_row(**overrides)) is None

    @pytest.mark.parametrize("row", ["p1", None, 42, ["src-a", 72]])
    def test_non_object_rows_dropped(self, row):
        assert record_from_row(row) is None


class TestFetchSettledPredictions:
    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr("src.connectors.predictions_feed.settings.supabase_url", "")
        with pytest.raises(ValueError, match="SUPABASE_URL"):
            fetch_settled_predictions()

    def test_pages_until_short_page(self, monkeypatch, configured):
        pages = [
            [_row(id="p1"), _row(id="p2", status="lost")],
            [_row(id="p3", status="push")],
        ]
        calls = []

        def fake_get(url, params=None, headers=None, timeout=None):
            calls.append((url, dict(params), headers))
            return MockResponse(pages[len(calls) - 1])

        monkeypatch.setattr("src.connectors.predictions_feed.httpx.get", fake_get)
        records = fetch_settled_predictions(window_days=90, now=NOW)

        assert len(records) == 2
        assert [r.outcome for r in records] == [Outcome.WON, Outcome.LOST]
        assert [c[1]["offset"] for c in calls] == [0, 2]

        url, params, headers = calls[0]
        assert url == "https://db.example.test/rest/v1/algorithm_predictions"
        assert params["order"] == "predicted_at.desc"
        assert params["limit"] == 2
        assert params["predicted_at"] == f"gte.{(NOW - timedelta(days=90)).isoformat()}"
        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer anon-key"

    def test_empty_page_stops(self, monkeypatch, configured):
        calls = []

        def fake_get(url, params=None, headers=None, timeout=None):
            calls.append(params)
            return MockResponse([])

        monkeypatch.setattr("src.connectors.predictions_feed.httpx.get", fake_get)
        assert fetch_settled_predictions() == []
        assert len(calls) == 1
        assert "predicted_at" not in calls[0]

    def test_source_filter(self, monkeypatch, configured):
        captured = {}

        def fake_get(url, params=None, headers=None, timeout=None):
            captured.update(params)
            return MockResponse([])

        monkeypatch.setattr("src.connectors.predictions_feed.httpx.get", fake_get)
        fetch_settled_predictions(source_ids=["a", "b"])
        assert captured["algorithm_id"] == "in.(a,b)"

    def test_http_error_propagates(self, monkeypatch, configured):
        monkeypatch.setattr(
            "src.connectors.predictions_feed.httpx.get",
            lambda *a, **kw: MockResponse([], status_code=503),
        )
        with pytest.raises(httpx.HTTPError):
            fetch_settled_predictions()

    def test_non_list_payload_rejected(self, monkeypatch, configured):
        monkeypatch.setattr(
            "src.connectors.predictions_feed.httpx.get",
            lambda *a, **kw: MockResponse({"message": "unexpected"}),
        )
        with pytest.raises(ValueError, match="Unexpected prediction feed payload"):
            fetch_settled_predictions()

    def test_malformed_rows_skipped(self, monkeypatch, configured):
        monkeypatch.setattr(
            "src.connectors.predictions_feed.httpx.get",
            lambda *a, **kw: MockResponse(["p1", _row(predicted_at=1700000000), _row()]),
        )
        monkeypatch.setattr("src.connectors.predictions_feed.settings.feed_page_size", 1000)
        records = fetch_settled_predictions()
        assert len(records) == 1
