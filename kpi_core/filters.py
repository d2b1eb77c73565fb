from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from kpi_core.dimensions import Category, Domain, Granularity, Scope, Technology, Vendor
from kpi_core.errors import InvalidSelectionError
from kpi_core.settings import DEFAULT_GRANULARITY, DEFAULT_LIMITS, DEFAULT_LOOKBACK_DAYS, GranularityLimits
from kpi_core.timegrain import TimeRange, format_time_range, validate_time_and_granularity

logger = logging.getLogger(__name__)

_DIMENSION_TYPES = {
    "technologies": Technology,
    "vendors": Vendor,
    "domains": Domain,
    "categories": Category,
    "scopes": Scope,
}


def _default_range() -> TimeRange:
    return TimeRange.last(timedelta(days=DEFAULT_LOOKBACK_DAYS))


@dataclass(frozen=True)
class FilterSelection:
    technologies: Tuple[Technology, ...] = ()
    vendors: Tuple[Vendor, ...] = ()
    domains: Tuple[Domain, ...] = ()
    categories: Tuple[Category, ...] = ()
    scopes: Tuple[Scope, ...] = ()
    time_range: TimeRange = field(default_factory=_default_range)
    granularity: Granularity = DEFAULT_GRANULARITY

    def __post_init__(self) -> None:
        for name, enum_cls in _DIMENSION_TYPES.items():
            object.__setattr__(self, name, enum_cls.parse_many(getattr(self, name)))
        if not isinstance(self.time_range, TimeRange):
            raise InvalidSelectionError(f"time_range must be a TimeRange, got {type(self.time_range).__name__}")
        object.__setattr__(self, "granularity", Granularity.parse(self.granularity))

    def with_changes(self, **changes: Any) -> "FilterSelection":
        return replace(self, **changes)

    def upstream(self) -> Dict[str, Tuple[Any, ...]]:
        return {"technologies": self.technologies, "vendors": self.vendors, "domains": self.domains}

    def criteria(self) -> Dict[str, Tuple[Any, ...]]:
        return {name: getattr(self, name) for name in _DIMENSION_TYPES}

    @property
    def has_active_filters(self) -> bool:
        return any(getattr(self, name) for name in _DIMENSION_TYPES)

    def cleared(self) -> "FilterSelection":
        return FilterSelection(time_range=self.time_range, granularity=self.granularity)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {name: [v.value for v in getattr(self, name)] for name in _DIMENSION_TYPES}
        payload["timeRange"] = self.time_range.as_dict()
        payload["granularity"] = self.granularity.value
        return payload


def enforce_granularity(selection: FilterSelection, *, limits: GranularityLimits = DEFAULT_LIMITS) -> FilterSelection:
    tr = selection.time_range
    check = validate_time_and_granularity(tr.start, tr.end, selection.granularity, limits=limits)
    if check.valid or check.corrected_granularity is None:
        return selection
    logger.info(
        "granularity %s corrected to %s: %s",
        selection.granularity.value,
        check.corrected_granularity.value,
        check.reason,
    )
    return selection.with_changes(granularity=check.corrected_granularity)


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def normalize_filters(
    raw: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
    limits: GranularityLimits = DEFAULT_LIMITS,
) -> FilterSelection:
    time_raw = _pick(raw, "timeRange", "time_range") or {}
    if isinstance(time_raw, TimeRange):
        time_range = time_raw
    else:
        start = _pick(time_raw, "from", "start")
        end = _pick(time_raw, "to", "end")
        if start is None and end is None:
            time_range = TimeRange.last(timedelta(days=DEFAULT_LOOKBACK_DAYS), now=now)
        elif start is None or end is None:
            raise InvalidSelectionError("timeRange needs both 'from' and 'to'")
        else:
            time_range = TimeRange(start, end)

    selection = FilterSelection(
        technologies=raw.get("technologies") or (),
        vendors=raw.get("vendors") or (),
        domains=raw.get("domains") or (),
        categories=raw.get("categories") or (),
        scopes=raw.get("scopes") or (),
        time_range=time_range,
        granularity=raw.get("granularity") or DEFAULT_GRANULARITY,
    )
    return enforce_granularity(selection, limits=limits)


def default_selection(now: Optional[datetime] = None) -> FilterSelection:
    return FilterSelection(time_range=TimeRange.last(timedelta(days=DEFAULT_LOOKBACK_DAYS), now=now))


def filter_summary(selection: FilterSelection) -> str:
    parts: List[str] = []
    labels = (
        ("technologies", "Tech"),
        ("vendors", "Vendor"),
        ("domains", "Domain"),
        ("categories", "Category"),
        ("scopes", "Scope"),
    )
    for name, label in labels:
        values = getattr(selection, name)
        if values:
            parts.append(f"{label}: {', '.join(v.value for v in values)}")
    if not parts:
        parts.append("No filters applied")
    parts.append(f"Date: {format_time_range(selection.time_range)}")
    return " | ".join(parts)
