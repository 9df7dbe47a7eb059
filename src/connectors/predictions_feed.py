"""Prediction history feed from the hosted Postgres REST endpoint.

Rows are loosely typed (most columns nullable); record_from_row() is the
single place that turns them into PredictionRecord or drops them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx

from src.calibration.models import Outcome, PredictionRecord
from src.config import settings

logger = logging.getLogger(__name__)

SELECT_COLUMNS = "id,algorithm_id,match_id,league,confidence,status,predicted_at,prediction"


def _parse_iso8601(ts: object) -> datetime | None:
    """Parse ISO8601 timestamp with fallback for trailing Z."""
    if not ts or not isinstance(ts, str):
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def record_from_row(row: object) -> PredictionRecord | None:
    """Convert one REST row into a PredictionRecord.

    Returns None for rows the engine cannot use: not an object, no source,
    no confidence, unparseable timestamp, or a status outside
    pending/won/lost (e.g. push).
    """
    if not isinstance(row, dict):
        return None
    source_id = row.get("algorithm_id")
    confidence = row.get("confidence")
    predicted_at = _parse_iso8601(row.get("predicted_at"))
    if not source_id or confidence is None or predicted_at is None:
        return None

    try:
        outcome = Outcome((row.get("status") or "pending").lower())
        confidence_raw = float(confidence)
    except (ValueError, TypeError):
        return None

    return PredictionRecord(
        source_id=source_id,
        match_id=str(row.get("match_id") or ""),
        league=row.get("league") or "",
        confidence_raw=confidence_raw,
        outcome=outcome,
        predicted_at=predicted_at,
        pick=row.get("prediction") or "",
    )


def fetch_settled_predictions(
    window_days: int | None = None,
    source_ids: list[str] | None = None,
    now: datetime | None = None,
) -> list[PredictionRecord]:
    """Fetch prediction history (pending rows included) for the trailing window.

    Pages through the table with limit/offset until a short page.
    Raises ValueError if the endpoint is not configured; HTTP errors propagate.
    """
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError("SUPABASE_URL / SUPABASE_KEY not set in .env")

    url = f"{settings.supabase_url.rstrip('/')}/rest/v1/{settings.predictions_table}"
    headers = {
        "apikey": settings.supabase_key,
        "Authorization": f"Bearer {settings.supabase_key}",
    }
    params: dict[str, str | int] = {
        "select": SELECT_COLUMNS,
        "order": "predicted_at.desc",
        "limit": settings.feed_page_size,
    }
    if window_days is not None:
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=window_days)).isoformat()
        params["predicted_at"] = f"gte.{cutoff}"
    if source_ids:
        params["algorithm_id"] = f"in.({','.join(source_ids)})"

    records: list[PredictionRecord] = []
    dropped = 0
    offset = 0
    while True:
        resp = httpx.get(
            url,
            params={**params, "offset": offset},
            headers=headers,
            timeout=settings.feed_timeout_sec,
        )
        resp.raise_for_status()
        rows = resp.json()
        if not isinstance(rows, list):
            raise ValueError(f"Unexpected prediction feed payload: {type(rows).__name__}")

        for row in rows:
            rec = record_from_row(row)
            if rec is None:
                dropped += 1
                continue
            records.append(rec)

        if not rows or len(rows) < settings.feed_page_size:
            break
        offset += len(rows)

    if dropped:
        logger.info("Dropped %d unusable prediction rows", dropped)
    logger.info("Fetched %d prediction records (window=%s days)", len(records), window_days)
    return records
