from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator


Scale = Literal["day", "week", "biweekly", "month", "quarter"]
DependencyType = Literal["finish_to_start", "start_to_start", "finish_to_finish", "start_to_finish"]

SCALES: Tuple[str, ...] = ("day", "week", "biweekly", "month", "quarter")

# Friendly names the editing layer may send -> canonical scale.
_SCALE_ALIASES = {
    "day": "day",
    "daily": "day",
    "days": "day",
    "week": "week",
    "weekly": "week",
    "weeks": "week",
    "biweekly": "biweekly",
    "bi weekly": "biweekly",
    "fortnight": "biweekly",
    "fortnightly": "biweekly",
    "month": "month",
    "monthly": "month",
    "months": "month",
    "quarter": "quarter",
    "quarterly": "quarter",
    "quarters": "quarter",
}

# Short codes and the hyphenated spelling older plans use.
_DEPENDENCY_ALIASES = {
    "fs": "finish_to_start",
    "ss": "start_to_start",
    "ff": "finish_to_finish",
    "sf": "start_to_finish",
    "finish to start": "finish_to_start",
    "start to start": "start_to_start",
    "finish to finish": "finish_to_finish",
    "start to finish": "start_to_finish",
}

DEPENDENCY_SHORT_LABELS = {
    "finish_to_start": "FS",
    "start_to_start": "SS",
    "finish_to_finish": "FF",
    "start_to_finish": "SF",
}

WarningKind = Literal[
    "DanglingDependency",
    "CyclicDependency",
    "DuplicateDependency",
    "DuplicateTask",
    "InvalidTask",
    "InvalidDependency",
    "MissingLane",
]

MIN_ZOOM = 0.5
MAX_ZOOM = 2.0


def _normalize_token(value: str) -> str:
    s = (value or "").strip().lower()
    s = s.replace("_", " ").replace("-", " ")
    s = " ".join(s.split())
    return s


def normalize_scale(value: Any) -> str:
    """Accepts 'Monthly', 'bi-weekly', 'DAY', ... and returns the canonical scale name."""
    token = _normalize_token(str(value or ""))
    if token in _SCALE_ALIASES:
        return _SCALE_ALIASES[token]
    allowed = ", ".join(SCALES)
    raise ValueError(f"scale must be one of: {allowed} (got {value!r}).")


def normalize_dependency_type(value: Any) -> str:
    if value is None:
        return "finish_to_start"
    token = _normalize_token(str(value))
    if not token:
        return "finish_to_start"
    if token in _DEPENDENCY_ALIASES:
        return _DEPENDENCY_ALIASES[token]
    canonical = token.replace(" ", "_")
    if canonical in DEPENDENCY_SHORT_LABELS:
        return canonical
    raise ValueError(f"dependency type must be one of: FS, SS, FF, SF (got {value!r}).")


def clamp_zoom(zoom: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, float(zoom)))


def _calendar_day(v: Any) -> Any:
    # Calendar-day values only: a datetime loses its time-of-day here.
    if isinstance(v, datetime):
        return v.date()
    return v


class Task(BaseModel):
    id: str
    label: str = ""
    start_date: date
    end_date: Optional[date] = None
    lane_id: str
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "lane_id")
    @classmethod
    def _not_empty(cls, v: str, info) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError(f"{info.field_name} is required.")
        return v

    @field_validator("label")
    @classmethod
    def _label_strip(cls, v: Optional[str]) -> str:
        return str(v or "").strip()

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _drop_time_of_day(cls, v: Any) -> Any:
        return _calendar_day(v)

    @field_validator("attributes", mode="before")
    @classmethod
    def _attributes_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @model_validator(mode="after")
    def _dates_valid(self) -> "Task":
        if not self.label:
            self.label = self.id
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on/after start_date.")
        return self

    @property
    def is_point(self) -> bool:
        """A task without an end date is a point-in-time marker."""
        return self.end_date is None

    @property
    def finish_date(self) -> date:
        return self.end_date if self.end_date is not None else self.start_date

    @property
    def duration_days(self) -> int:
        return (self.finish_date - self.start_date).days


class Lane(BaseModel):
    id: str
    task_ids: List[str] = Field(default_factory=list)
    index: int = Field(default=0, ge=0)

    @field_validator("id")
    @classmethod
    def _lane_id_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("id is required.")
        return v


class Dependency(BaseModel):
    id: str
    from_task_id: str
    to_task_id: str
    type: DependencyType = "finish_to_start"
    lag_days: int = 0
    visible: bool = True

    @field_validator("id", "from_task_id", "to_task_id")
    @classmethod
    def _ids_not_empty(cls, v: str, info) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError(f"{info.field_name} is required.")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> str:
        return normalize_dependency_type(v)

    @model_validator(mode="after")
    def _no_self_loop(self) -> "Dependency":
        if self.from_task_id == self.to_task_id:
            raise ValueError(f"dependency cannot point at its own task ({self.from_task_id}).")
        return self


class ViewWindow(BaseModel):
    """Half-open [start, end) interval the layout is computed against."""

    start: date
    end: date

    @field_validator("start", "end", mode="before")
    @classmethod
    def _drop_time_of_day(cls, v: Any) -> Any:
        return _calendar_day(v)

    @model_validator(mode="after")
    def _range_valid(self) -> "ViewWindow":
        if self.end <= self.start:
            raise ValueError("view window end must be after its start.")
        return self


class RouterConfig(BaseModel):
    # Pixel constants tuned for a 40px row; scale them with the row height.
    direct_distance: float = Field(default=200.0, ge=0)
    horizontal_extension: float = Field(default=30.0, ge=0)
    corner_radius: float = Field(default=6.0, ge=0)
    above_row_offset: float = Field(default=35.0, ge=0)
    gutter_offset: float = Field(default=8.0, ge=0)
    end_turn_distance: float = Field(default=20.0, ge=0)
    arrow_length: float = Field(default=8.0, ge=0)
    row_top_offset: float = Field(default=0.0)


class LayoutSettings(BaseModel):
    row_height: float = Field(default=40.0, gt=0)
    zoom: float = Field(default=1.0, gt=0)
    snap_threshold_px: float = Field(default=10.0, ge=0)
    router: RouterConfig = Field(default_factory=RouterConfig)

    @field_validator("zoom")
    @classmethod
    def _zoom_in_range(cls, v: float) -> float:
        return clamp_zoom(v)


@dataclass(frozen=True)
class LayoutWarning:
    kind: WarningKind
    message: str
    task_ids: Tuple[str, ...] = ()
    dependency_ids: Tuple[str, ...] = ()


def warnings_by_kind(warnings: Iterable[LayoutWarning]) -> Dict[str, List[str]]:
    """Group warnings as category -> messages (insertion ordered)."""
    out: Dict[str, List[str]] = {}
    for w in warnings:
        out.setdefault(w.kind, []).append(w.message)
    return out


@dataclass(frozen=True)
class DateRange:
    start: date
    end: Optional[date] = None

    @classmethod
    def of(cls, task: Task) -> "DateRange":
        return cls(start=task.start_date, end=task.end_date)


@dataclass(frozen=True)
class TaskBar:
    """On-screen geometry of one task: x/width in pixels, y is the row's vertical center."""

    task_id: str
    lane_id: str
    row_index: int
    x: float
    width: float
    y: float
    row_top: float

    @property
    def x_end(self) -> float:
        return self.x + self.width


@dataclass(frozen=True)
class TaskTiming:
    """CPM timing of one task; all values are calendar dates, slack in whole days."""

    task_id: str
    earliest_start: date
    earliest_finish: date
    latest_start: date
    latest_finish: date
    slack_days: int
    critical: bool = False


@dataclass(frozen=True)
class CriticalPathResult:
    critical_task_ids: frozenset = field(default_factory=frozenset)
    critical_dependency_ids: frozenset = field(default_factory=frozenset)
    timings: Dict[str, TaskTiming] = field(default_factory=dict)
    project_start: Optional[date] = None
    project_finish: Optional[date] = None
    skipped_task_ids: frozenset = field(default_factory=frozenset)
    warnings: Tuple[LayoutWarning, ...] = ()

    @property
    def duration_days(self) -> int:
        if self.project_start is None or self.project_finish is None:
            return 0
        return (self.project_finish - self.project_start).days
