from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from kpi_core.dimensions import Granularity


BASE_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = BASE_DIR / "data"
SAVED_VIEWS_FILENAME = "analytics-saved-views.json"

DEFAULT_LOOKBACK_DAYS = 30
DEFAULT_GRANULARITY = Granularity.DAY


@dataclass(frozen=True)
class GranularityLimits:
    hourly_max_span: timedelta = timedelta(hours=48)
    weekly_min_span: timedelta = timedelta(days=7)
    monthly_min_span: timedelta = timedelta(days=60)
    hourly_warn_span: timedelta = timedelta(hours=24)
    daily_warn_span: timedelta = timedelta(days=180)
    max_points: int = 2000


DEFAULT_LIMITS = GranularityLimits()


def saved_views_path(data_dir: Path | None = None) -> Path:
    return (data_dir or DATA_DIR) / SAVED_VIEWS_FILENAME
