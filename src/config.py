from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Hosted Postgres REST endpoint (prediction history)
    supabase_url: str = ""
    supabase_key: str = ""
    predictions_table: str = "algorithm_predictions"
    feed_page_size: int = 1000  # REST の 1 リクエスト上限
    feed_timeout_sec: int = 30

    # === Analysis windows (days) ===
    short_term_days: int = 14  # per-source performance window
    long_term_days: int = 90  # bin calibration window

    # === Source performance thresholds ===
    min_bets_for_calibration: int = 10
    underperformance_threshold: float = 10.0  # win rate pts below expected
    overperformance_threshold: float = 10.0
    max_weight_change: float = 0.15
    cold_streak_threshold: int = 5
    hot_streak_threshold: int = 5
    max_confidence_reduction: float = 20.0  # %
    max_confidence_boost: float = 10.0  # %
    min_confidence_floor: float = 50.0

    # === Bin calibration ===
    bin_min_sample: int = 5  # これ未満のビンは補正しない

    # === Cache ===
    calibration_stale_minutes: int = 30
    calibration_refresh_minutes: int = 60  # cron interval (informational)

    # === Diagnostics ===
    calibration_confidence_level: float = 0.90  # Beta posterior interval


settings = Settings()
