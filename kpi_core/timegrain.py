"""Time range and granularity rules.

Granularities are ordered 1H < 1D < 1W < 1M. Over a span ``s``:

- 1H is allowed only while ``s <= 48h``
- 1D is always allowed
- 1W needs ``s >= 7 days``
- 1M needs ``s >= 60 days``

An invalid request is corrected to the allowed granularity nearest to it in
that ordering (ties go to the coarser one).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional, Tuple, Union

import pandas as pd

from kpi_core.dimensions import Granularity
from kpi_core.errors import InvalidSelectionError
from kpi_core.settings import DEFAULT_LIMITS, GranularityLimits

DateLike = Union[datetime, date, str]

GRANULARITY_LABELS: Dict[Granularity, str] = {
    Granularity.HOUR: "Hourly",
    Granularity.DAY: "Daily",
    Granularity.WEEK: "Weekly",
    Granularity.MONTH: "Monthly",
}

# nominal bucket widths, used only for point-count estimates
_BUCKET_WIDTH: Dict[Granularity, timedelta] = {
    Granularity.HOUR: timedelta(hours=1),
    Granularity.DAY: timedelta(days=1),
    Granularity.WEEK: timedelta(days=7),
    Granularity.MONTH: timedelta(days=30),
}

INVALID_RANGE_REASON = "Invalid date range: 'from' must be before 'to'"


def to_datetime(value: DateLike) -> datetime:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    raise InvalidSelectionError(f"Invalid date: {value!r}")


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        start = to_datetime(self.start)
        end = to_datetime(self.end)
        if (start.tzinfo is None) != (end.tzinfo is None):
            raise InvalidSelectionError("Invalid date range: 'from' and 'to' must both carry a timezone or neither")
        if start >= end:
            raise InvalidSelectionError(INVALID_RANGE_REASON)
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @property
    def span(self) -> timedelta:
        return self.end - self.start

    @classmethod
    def last(cls, span: timedelta, now: Optional[datetime] = None) -> "TimeRange":
        end = now or datetime.now().replace(microsecond=0)
        return cls(end - span, end)

    def as_dict(self) -> Dict[str, str]:
        return {"from": self.start.isoformat(), "to": self.end.isoformat()}


def allowed_for_span(span: timedelta, limits: GranularityLimits = DEFAULT_LIMITS) -> Tuple[Granularity, ...]:
    out = []
    if span <= limits.hourly_max_span:
        out.append(Granularity.HOUR)
    out.append(Granularity.DAY)
    if span >= limits.weekly_min_span:
        out.append(Granularity.WEEK)
    if span >= limits.monthly_min_span:
        out.append(Granularity.MONTH)
    return tuple(out)


def closest_granularity(requested: Granularity, allowed: Tuple[Granularity, ...]) -> Granularity:
    return min(allowed, key=lambda g: (abs(g.rank - requested.rank), -g.rank))


def recommended_granularity(span: timedelta, limits: GranularityLimits = DEFAULT_LIMITS) -> Granularity:
    if span <= limits.hourly_max_span:
        wanted = Granularity.HOUR
    elif span <= timedelta(days=31):
        wanted = Granularity.DAY
    elif span < limits.daily_warn_span or span < limits.monthly_min_span:
        wanted = Granularity.WEEK
    else:
        wanted = Granularity.MONTH
    # always one of the granularities the span allows, whatever the limits
    return closest_granularity(wanted, allowed_for_span(span, limits))


@dataclass(frozen=True)
class TimePreset:
    id: str
    label: str
    duration: Optional[timedelta]
    allowed_granularities: Tuple[Granularity, ...]
    default_granularity: Granularity

    @property
    def is_custom(self) -> bool:
        return self.duration is None


def _preset(preset_id: str, label: str, duration: Optional[timedelta]) -> TimePreset:
    if duration is None:
        return TimePreset(preset_id, label, None, tuple(Granularity), Granularity.DAY)
    return TimePreset(preset_id, label, duration, allowed_for_span(duration), recommended_granularity(duration))


TIME_PRESETS: Tuple[TimePreset, ...] = (
    _preset("24h", "Last 24 Hours", timedelta(hours=24)),
    _preset("7d", "Last 7 Days", timedelta(days=7)),
    _preset("30d", "Last 30 Days", timedelta(days=30)),
    _preset("90d", "Last 90 Days", timedelta(days=90)),
    _preset("custom", "Custom", None),
)


def get_preset(preset_id: str) -> TimePreset:
    for preset in TIME_PRESETS:
        if preset.id == preset_id:
            return preset
    raise InvalidSelectionError(f"Unknown time preset: {preset_id!r}")


def preset_range(preset: TimePreset, now: Optional[datetime] = None) -> Optional[TimeRange]:
    if preset.duration is None:
        return None
    return TimeRange.last(preset.duration, now=now)


def get_valid_granularities(
    target: Union[TimePreset, TimeRange, DateLike],
    end: Optional[DateLike] = None,
    *,
    limits: GranularityLimits = DEFAULT_LIMITS,
) -> Tuple[Granularity, ...]:
    """Allowed granularities for a preset, a TimeRange, or a (from, to) pair.

    A custom preset has no span of its own, so every granularity is offered
    until a concrete range is chosen.
    """
    if isinstance(target, TimePreset):
        if target.duration is None:
            return target.allowed_granularities
        return allowed_for_span(target.duration, limits)
    if not isinstance(target, TimeRange):
        if end is None:
            raise TypeError("get_valid_granularities needs an end date when given a start date")
        target = TimeRange(target, end)
    return allowed_for_span(target.span, limits)


def granularity_warning(
    span: timedelta,
    granularity: Granularity,
    limits: GranularityLimits = DEFAULT_LIMITS,
) -> Optional[str]:
    if granularity == Granularity.HOUR and span > limits.hourly_warn_span:
        return "For ranges longer than 1 day, consider daily granularity for better performance."
    if granularity == Granularity.DAY and span > limits.daily_warn_span:
        return f"For ranges longer than {limits.daily_warn_span.days} days, consider weekly or monthly granularity."
    points = int(span / _BUCKET_WIDTH[granularity])
    if points > limits.max_points:
        return f"{format_granularity(granularity)} granularity yields about {points:,} points for this range."
    return None


@dataclass(frozen=True)
class GranularityCheck:
    valid: bool
    corrected_granularity: Optional[Granularity] = None
    reason: Optional[str] = None
    warning: Optional[str] = None
    allowed: Tuple[Granularity, ...] = field(default_factory=tuple)

    @property
    def effective(self) -> Optional[Granularity]:
        return self.corrected_granularity

    def as_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "corrected_granularity": self.corrected_granularity.value if self.corrected_granularity else None,
            "reason": self.reason,
            "warning": self.warning,
            "allowed": [g.value for g in self.allowed],
        }


def _rejection_reason(granularity: Granularity, limits: GranularityLimits) -> str:
    if granularity == Granularity.HOUR:
        hours = int(limits.hourly_max_span.total_seconds() // 3600)
        return f"Hourly granularity only supports ranges of up to {hours} hours."
    if granularity == Granularity.WEEK:
        return f"Weekly granularity needs a range of at least {limits.weekly_min_span.days} days."
    if granularity == Granularity.MONTH:
        return f"Monthly granularity needs a range of at least {limits.monthly_min_span.days} days."
    return f"{format_granularity(granularity)} granularity is not available for this range."


def validate_time_and_granularity(
    start: DateLike,
    end: DateLike,
    granularity: Union[Granularity, str],
    *,
    limits: GranularityLimits = DEFAULT_LIMITS,
) -> GranularityCheck:
    try:
        time_range = TimeRange(start, end)
    except InvalidSelectionError as exc:
        return GranularityCheck(valid=False, reason=str(exc))

    span = time_range.span
    allowed = allowed_for_span(span, limits)
    try:
        requested = Granularity.parse(granularity)
    except InvalidSelectionError:
        return GranularityCheck(
            valid=False,
            corrected_granularity=recommended_granularity(span, limits),
            reason=f"Invalid granularity: {granularity}",
            allowed=allowed,
        )

    if requested not in allowed:
        return GranularityCheck(
            valid=False,
            corrected_granularity=closest_granularity(requested, allowed),
            reason=_rejection_reason(requested, limits),
            allowed=allowed,
        )
    return GranularityCheck(valid=True, warning=granularity_warning(span, requested, limits), allowed=allowed)


def format_granularity(granularity: Union[Granularity, str]) -> str:
    try:
        return GRANULARITY_LABELS[Granularity.parse(granularity)]
    except InvalidSelectionError:
        return str(granularity)


def _fmt(value: datetime, with_year: bool) -> str:
    text = f"{value:%b} {value.day}"
    return f"{text}, {value.year}" if with_year else text


def format_time_range(start: Union[TimeRange, DateLike], end: Optional[DateLike] = None) -> str:
    if isinstance(start, TimeRange):
        start, end = start.start, start.end
    if end is None:
        raise TypeError("format_time_range needs an end date")
    lo = to_datetime(start)
    hi = to_datetime(end)
    same_year = lo.year == hi.year
    return f"{_fmt(lo, not same_year)} - {_fmt(hi, True)}"


def _bucket_floor(ts: pd.Timestamp, granularity: Granularity) -> pd.Timestamp:
    if granularity == Granularity.HOUR:
        return ts.replace(minute=0, second=0, microsecond=0, nanosecond=0)
    day = ts.normalize()
    if granularity == Granularity.WEEK:
        return day - pd.Timedelta(days=day.weekday())
    if granularity == Granularity.MONTH:
        return day.replace(day=1)
    return day


_BUCKET_OFFSETS = {
    Granularity.HOUR: pd.offsets.Hour(),
    Granularity.DAY: pd.offsets.Day(),
    Granularity.WEEK: pd.offsets.Week(weekday=0),
    Granularity.MONTH: pd.offsets.MonthBegin(),
}


def time_buckets(time_range: TimeRange, granularity: Union[Granularity, str]) -> pd.DatetimeIndex:
    """Bucket start times covering ``[start, end)`` at the given granularity."""
    g = Granularity.parse(granularity)
    first = _bucket_floor(pd.Timestamp(time_range.start), g)
    return pd.date_range(start=first, end=pd.Timestamp(time_range.end), freq=_BUCKET_OFFSETS[g], inclusive="left")


def point_count(time_range: TimeRange, granularity: Union[Granularity, str]) -> int:
    return len(time_buckets(time_range, granularity))
