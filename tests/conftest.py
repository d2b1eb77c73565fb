from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from kpi_core.dimensions import Granularity, Technology, Vendor
from kpi_core.filters import FilterSelection
from kpi_core.timegrain import TimeRange
from kpi_core.views import JsonFileViewRepository, SavedViewStore

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Returns FIXED_NOW, then one minute later on every call."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self._ticks = itertools.count()
        self._start = start

    def __call__(self) -> datetime:
        return self._start + timedelta(minutes=next(self._ticks))


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def views_path(tmp_path: Path) -> Path:
    return tmp_path / "views.json"


@pytest.fixture
def store(views_path: Path, clock: StepClock) -> SavedViewStore:
    counter = itertools.count(1)
    return SavedViewStore(
        JsonFileViewRepository(views_path),
        clock=clock,
        id_factory=lambda: f"view-{next(counter)}",
    )


@pytest.fixture
def five_g_filters() -> FilterSelection:
    return FilterSelection(
        technologies=(Technology.G5,),
        vendors=(Vendor.NOKIA,),
        time_range=TimeRange(datetime(2024, 1, 1), datetime(2024, 1, 31)),
        granularity=Granularity.DAY,
    )
