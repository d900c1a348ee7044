from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from timeline_models import ViewWindow, clamp_zoom

# Base horizontal density per scale. Week and biweekly only group day columns,
# so they share the day density; month and quarter are compressed views.
BASE_PIXELS_PER_DAY: Dict[str, float] = {
    "day": 40.0,
    "week": 40.0,
    "biweekly": 40.0,
    "month": 5.0,
    "quarter": 2.2,
}

_FIXED_UNIT_DAYS = {"day": 1, "week": 7, "biweekly": 14}
_CALENDAR_UNIT_MONTHS = {"month": 1, "quarter": 3}

# Guards floor() against float error, e.g. (n * 2.2) / 2.2 == n - 1e-15.
_EPS = 1e-9


def _check_scale(scale: str) -> str:
    if scale not in BASE_PIXELS_PER_DAY:
        allowed = ", ".join(BASE_PIXELS_PER_DAY)
        raise ValueError(f"Unknown scale {scale!r}. Expected one of: {allowed}.")
    return scale


def pixels_per_day(scale: str, zoom: float = 1.0) -> float:
    return BASE_PIXELS_PER_DAY[_check_scale(scale)] * clamp_zoom(zoom)


def unit_width(scale: str, zoom: float = 1.0, unit_start: Optional[date] = None) -> float:
    """
    Pixel width of one scale unit.

    Month and quarter widths depend on the actual unit (28-31 / 90-92 days),
    so they need the unit's start date.
    """
    ppd = pixels_per_day(scale, zoom)
    if scale in _FIXED_UNIT_DAYS:
        return _FIXED_UNIT_DAYS[scale] * ppd
    if unit_start is None:
        raise ValueError(f"unit_start is required for variable-length scale {scale!r}.")
    months = _CALENDAR_UNIT_MONTHS[scale]
    first = _calendar_unit_start(unit_start, months)
    return (_add_months(first, months) - first).days * ppd


# ---------------------------------------------------------------------------
# Calendar unit helpers
# ---------------------------------------------------------------------------

def _start_of_week(d: date) -> date:
    # Weeks start on Monday (Mon=0..Sun=6).
    return d - timedelta(days=d.weekday())


def _quarter_start(d: date) -> date:
    qm = ((d.month - 1) // 3) * 3 + 1
    return date(d.year, qm, 1)


def _add_months(first_of_month: date, months: int) -> date:
    y, m = divmod(first_of_month.month - 1 + months, 12)
    return date(first_of_month.year + y, m + 1, 1)


def _calendar_unit_start(d: date, months_per_unit: int) -> date:
    if months_per_unit == 3:
        return _quarter_start(d)
    return date(d.year, d.month, 1)


def _unit_floor(d: date, scale: str) -> date:
    if scale == "day":
        return d
    if scale in ("week", "biweekly"):
        return _start_of_week(d)
    return _calendar_unit_start(d, _CALENDAR_UNIT_MONTHS[scale])


def _next_boundary(boundary: date, scale: str) -> date:
    if scale in _FIXED_UNIT_DAYS:
        return boundary + timedelta(days=_FIXED_UNIT_DAYS[scale])
    return _add_months(boundary, _CALENDAR_UNIT_MONTHS[scale])


def _months_span_inclusive(start: date, end: date) -> int:
    """Count distinct calendar months touched by [start, end]."""
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


# ---------------------------------------------------------------------------
# Date <-> pixel mapping
# ---------------------------------------------------------------------------

def _calendar_day_offset(d: date, view_start: date, months_per_unit: int) -> int:
    """
    Days between view_start and d, accumulated one calendar unit at a time
    using each unit's real length. The first unit may be partial when
    view_start is not on a unit boundary.
    """
    if d >= view_start:
        elapsed = 0
        cursor = view_start
        boundary = _add_months(_calendar_unit_start(view_start, months_per_unit), months_per_unit)
        while boundary <= d:
            elapsed += (boundary - cursor).days
            cursor = boundary
            boundary = _add_months(boundary, months_per_unit)
        return elapsed + (d - cursor).days

    elapsed = 0
    cursor = view_start
    boundary = _calendar_unit_start(view_start, months_per_unit)
    if boundary == cursor:
        boundary = _add_months(boundary, -months_per_unit)
    while boundary > d:
        elapsed -= (cursor - boundary).days
        cursor = boundary
        boundary = _add_months(boundary, -months_per_unit)
    return elapsed - (cursor - d).days


def date_to_position(d: date, view_start: date, scale: str, zoom: float = 1.0) -> float:
    """
    Horizontal pixel offset of the start of day `d` relative to `view_start`.

    Day/week/biweekly: whole elapsed units x unit width + remainder days x px/day.
    Month/quarter: cumulative real length of every preceding calendar unit plus
    the offset inside the current unit, x px/day.
    """
    ppd = pixels_per_day(scale, zoom)
    if scale in _FIXED_UNIT_DAYS:
        unit_days = _FIXED_UNIT_DAYS[scale]
        whole, rem = divmod((d - view_start).days, unit_days)
        return whole * unit_days * ppd + rem * ppd
    return _calendar_day_offset(d, view_start, _CALENDAR_UNIT_MONTHS[scale]) * ppd


def position_to_date(px: float, view_start: date, scale: str, zoom: float = 1.0) -> date:
    """
    Inverse of date_to_position.

    Any pixel inside a day's span maps to that day (floor, not round), so
    clicking anywhere on a day column returns that day.
    """
    ppd = pixels_per_day(scale, zoom)
    days_f = px / ppd

    if scale in _FIXED_UNIT_DAYS:
        unit_days = _FIXED_UNIT_DAYS[scale]
        whole, rem = divmod(math.floor(days_f + _EPS), unit_days)
        return view_start + timedelta(days=whole * unit_days + rem)

    months = _CALENDAR_UNIT_MONTHS[scale]
    cursor = view_start
    if days_f + _EPS >= 0:
        boundary = _add_months(_calendar_unit_start(view_start, months), months)
        while True:
            unit_days = (boundary - cursor).days
            if days_f + _EPS < unit_days:
                break
            days_f -= unit_days
            cursor = boundary
            boundary = _add_months(boundary, months)
    else:
        boundary = _calendar_unit_start(view_start, months)
        if boundary == cursor:
            boundary = _add_months(boundary, -months)
        while days_f + _EPS < 0:
            days_f += (cursor - boundary).days
            cursor = boundary
            boundary = _add_months(boundary, -months)
    return cursor + timedelta(days=math.floor(days_f + _EPS))


def bar_width(
    start: date,
    end: Optional[date],
    scale: str,
    zoom: float = 1.0,
    *,
    view_start: Optional[date] = None,
) -> float:
    """date_to_position(end) - date_to_position(start); point tasks (no end) are 0 wide."""
    if end is None:
        _check_scale(scale)
        return 0.0
    origin = view_start if view_start is not None else start
    return date_to_position(end, origin, scale, zoom) - date_to_position(start, origin, scale, zoom)


# ---------------------------------------------------------------------------
# View window normalization
# ---------------------------------------------------------------------------

def normalize_view_bound(d: date, scale: str, edge: str = "start") -> date:
    """
    Snap a date to a scale-unit boundary.

    edge="start" floors (Monday, 1st of month, quarter start); edge="end" ceils
    to the next boundary unless `d` already is one, since the window is [start, end).
    """
    _check_scale(scale)
    floor = _unit_floor(d, scale)
    if edge == "start":
        return floor
    if edge != "end":
        raise ValueError(f"edge must be 'start' or 'end' (got {edge!r}).")
    if floor == d:
        return d
    if scale == "biweekly":
        # Without a window to anchor the fortnight, the next week boundary is the nearest.
        return floor + timedelta(days=7)
    return _next_boundary(floor, scale)


def normalize_view_window(window: ViewWindow, scale: str) -> ViewWindow:
    start = normalize_view_bound(window.start, scale, "start")
    if scale in _FIXED_UNIT_DAYS:
        unit_days = _FIXED_UNIT_DAYS[scale]
        units = max(-(-(window.end - start).days // unit_days), 1)
        end = start + timedelta(days=units * unit_days)
    else:
        end = max(normalize_view_bound(window.end, scale, "end"), _next_boundary(start, scale))
    return ViewWindow(start=start, end=end)


# ---------------------------------------------------------------------------
# Header / grid segments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HeaderSegment:
    start: date
    end: date
    x: float
    width: float
    label: str


def unit_boundaries(start: date, end: date, scale: str) -> List[date]:
    """Unit boundaries from the unit containing `start` up to (not including) `end`."""
    cur = _unit_floor(start, _check_scale(scale))
    out: List[date] = []
    while cur < end:
        out.append(cur)
        cur = _next_boundary(cur, scale)
    return out


def _segments_from_boundaries(
    boundaries: List[date],
    start: date,
    end_exclusive: date,
) -> List[Tuple[date, date]]:
    """Build contiguous segments between boundaries, clamped to [start, end_exclusive)."""
    out: List[Tuple[date, date]] = []
    for i, b in enumerate(boundaries):
        seg_start = max(b, start)
        next_b = boundaries[i + 1] if i + 1 < len(boundaries) else end_exclusive
        seg_end = min(next_b, end_exclusive)
        if seg_end > seg_start:
            out.append((seg_start, seg_end))
    return out


def _segment_labels(segs: List[Tuple[date, date]], scale: str) -> List[str]:
    labels: List[str] = []
    prev: Optional[date] = None
    for idx, (s, _) in enumerate(segs):
        if scale == "month":
            include_year = idx == 0 or (prev is not None and s.year != prev.year) or s.month == 1
            labels.append(s.strftime("%b %Y") if include_year else s.strftime("%b"))
        elif scale == "quarter":
            q = ((s.month - 1) // 3) + 1
            include_year = idx == 0 or q == 1 or (prev is not None and s.year != prev.year)
            labels.append(f"Q{q} {s.year}" if include_year else f"Q{q}")
        else:
            include_month = idx == 0 or (prev is not None and (s.month, s.year) != (prev.month, prev.year))
            labels.append(s.strftime("%d %b") if include_month else s.strftime("%d"))
        prev = s
    return labels


def header_segments(window: ViewWindow, scale: str, zoom: float = 1.0) -> List[HeaderSegment]:
    """Header/grid columns for the window, each as wide as its real day count."""
    if scale == "biweekly":
        # Fortnights are counted from the window start, not from an absolute epoch.
        origin = _start_of_week(window.start)
        boundaries = []
        cur = origin
        while cur < window.end:
            boundaries.append(cur)
            cur += timedelta(days=14)
    else:
        boundaries = unit_boundaries(window.start, window.end, scale)

    segs = _segments_from_boundaries(boundaries, window.start, window.end)
    labels = _segment_labels(segs, scale)
    out: List[HeaderSegment] = []
    for (s, e), label in zip(segs, labels):
        x = date_to_position(s, window.start, scale, zoom)
        out.append(HeaderSegment(start=s, end=e, x=x, width=date_to_position(e, window.start, scale, zoom) - x, label=label))
    return out


def suggest_scale(start: date, end: date) -> str:
    """
    Pick a default scale from the overall range.

    Rules:
      - 1 month or less: day
      - under 4 months: week
      - 4-6 months: biweekly
      - 7-12 months: month
      - over 12 months: quarter
    """
    months = _months_span_inclusive(start, end)
    if months <= 1:
        return "day"
    if months < 4:
        return "week"
    if months <= 6:
        return "biweekly"
    if months <= 12:
        return "month"
    return "quarter"
