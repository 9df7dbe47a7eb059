"""Logging for calibration refresh runs.

scripts/calibration_report.py (or whatever cron entry point drives
refresh_calibration) calls setup_logging() once per process. Each process
is one refresh run: setup_logging() draws a run_id and a filter on the
root handlers stamps it on every record, so the feed, weight and refresh
lines of one run can be grepped together from data/logs/calibration.log.
Library modules keep using plain logging.getLogger(__name__).

STRUCTURED_LOGGING=1 switches the file handler to one JSON object per line.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import uuid
from pathlib import Path

LOG_DIR = Path(__file__).resolve().parent.parent / "data" / "logs"
LOG_FILE = "calibration.log"
BACKUP_DAYS = 30

_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(run_id)s] %(name)s: %(message)s"


class RunIdFilter(logging.Filter):
    """Stamp run_id on records that do not already carry one."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "run_id", ""):
            record.run_id = self.run_id
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg, run_id (+ exc)."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "run_id": getattr(record, "run_id", ""),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(
    structured: bool = False,
    log_dir: Path | str | None = None,
    run_id: str | None = None,
) -> str:
    """Configure the root logger for one refresh run. Returns its run_id.

    Args:
        structured: JSON file output. Also enabled by STRUCTURED_LOGGING.
        log_dir: Override log directory. Defaults to data/logs/.
        run_id: Reuse an id handed over by a caller; otherwise a new one.
    """
    run_id = run_id or uuid.uuid4().hex[:12]
    log_path = Path(log_dir) if log_dir else LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    # 既存ハンドラをクリア (重複防止)
    root.handlers.clear()

    stamp = RunIdFilter(run_id)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_TEXT_FORMAT))
    console.addFilter(stamp)
    root.addHandler(console)

    use_structured = structured or os.environ.get("STRUCTURED_LOGGING", "").lower() in ("true", "1")
    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_path / LOG_FILE,
        when="midnight",
        backupCount=BACKUP_DAYS,
        encoding="utf-8",
    )
    file_handler.setFormatter(JSONFormatter() if use_structured else logging.Formatter(_TEXT_FORMAT))
    file_handler.addFilter(stamp)
    root.addHandler(file_handler)

    return run_id


def get_run_logger(name: str, run_id: str) -> logging.LoggerAdapter:
    """Logger adapter that stamps every record with run_id."""
    return logging.LoggerAdapter(logging.getLogger(name), {"run_id": run_id})
