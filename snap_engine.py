from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, Literal, Optional, Tuple, Union

from date_utils import date_to_position, pixels_per_day
from timeline_models import DateRange, Lane, Task, clamp_zoom

logger = logging.getLogger(__name__)

BoundaryKind = Literal["start", "end"]

_EPS = 1e-9
_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class SnapTarget:
    """The other task's boundary a moving edge was pulled onto."""

    task_id: str
    boundary: BoundaryKind
    date: date
    position: float


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Dragging:
    task_id: str
    original: DateRange
    candidate: DateRange
    snap: Optional[SnapTarget] = None


@dataclass(frozen=True)
class Resizing:
    task_id: str
    edge: BoundaryKind
    original: DateRange
    candidate: DateRange
    snap: Optional[SnapTarget] = None


InteractionState = Union[Idle, Dragging, Resizing]


@dataclass(frozen=True)
class Commit:
    task_id: str
    start: date
    end: Optional[date]
    snap: Optional[SnapTarget] = None


@dataclass(frozen=True)
class _Boundary:
    task_id: str
    lane_id: str
    lane_index: Optional[int]
    kind: BoundaryKind
    date: date
    position: float


@dataclass(frozen=True)
class SnapContext:
    """
    Everything a pointer-move needs besides the state itself.

    Built once per interaction from the committed snapshot; boundary pixel
    positions are precomputed so each move is a linear scan.
    """

    scale: str
    view_start: date
    zoom: float = 1.0
    threshold_px: float = 10.0
    boundaries: Tuple[_Boundary, ...] = ()
    lane_of_task: Dict[str, Tuple[str, Optional[int]]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        tasks: Iterable[Task],
        lanes: Iterable[Lane],
        scale: str,
        view_start: date,
        *,
        zoom: float = 1.0,
        threshold_px: float = 10.0,
    ) -> "SnapContext":
        zoom = clamp_zoom(zoom)
        lane_index = {lane.id: lane.index for lane in lanes}
        boundaries = []
        lane_of_task: Dict[str, Tuple[str, Optional[int]]] = {}
        for t in tasks:
            idx = lane_index.get(t.lane_id)
            lane_of_task[t.id] = (t.lane_id, idx)
            edges = [("start", t.start_date)]
            if t.end_date is not None:
                edges.append(("end", t.end_date))
            for kind, d in edges:
                boundaries.append(
                    _Boundary(
                        task_id=t.id,
                        lane_id=t.lane_id,
                        lane_index=idx,
                        kind=kind,
                        date=d,
                        position=date_to_position(d, view_start, scale, zoom),
                    )
                )
        return cls(
            scale=scale,
            view_start=view_start,
            zoom=zoom,
            threshold_px=threshold_px,
            boundaries=tuple(boundaries),
            lane_of_task=lane_of_task,
        )

    def position(self, d: date) -> float:
        return date_to_position(d, self.view_start, self.scale, self.zoom)


def day_delta(pixel_delta: float, scale: str, zoom: float = 1.0) -> int:
    """Whole-day delta for a pointer movement; halves round away from zero toward the pointer (half-up)."""
    return math.floor(pixel_delta / pixels_per_day(scale, zoom) + 0.5 + _EPS)


def _lanes_near(context: SnapContext, task_id: str, b: _Boundary) -> bool:
    lane_id, idx = context.lane_of_task.get(task_id, (None, None))
    if b.lane_id == lane_id:
        return True
    if idx is None or b.lane_index is None:
        return False
    return abs(b.lane_index - idx) <= 1


def _nearest_boundary(
    raw_px: float,
    task_id: str,
    context: SnapContext,
    accept: Callable[[date], bool] = lambda d: True,
) -> Tuple[Optional[SnapTarget], float]:
    best: Optional[_Boundary] = None
    best_dist = math.inf
    for b in context.boundaries:
        if b.task_id == task_id or not _lanes_near(context, task_id, b):
            continue
        dist = abs(b.position - raw_px)
        if dist <= context.threshold_px and dist < best_dist and accept(b.date):
            best, best_dist = b, dist
    if best is None:
        return None, math.inf
    return SnapTarget(task_id=best.task_id, boundary=best.kind, date=best.date, position=best.position), best_dist


def begin_drag(task: Task) -> Dragging:
    original = DateRange.of(task)
    logger.debug("Drag started for task %s", task.id)
    return Dragging(task_id=task.id, original=original, candidate=original)


def begin_resize(task: Task, edge: BoundaryKind) -> Resizing:
    if edge not in ("start", "end"):
        raise ValueError(f"edge must be 'start' or 'end' (got {edge!r}).")
    if task.end_date is None:
        raise ValueError(f"Task {task.id} has no end date; point tasks can only be dragged.")
    original = DateRange.of(task)
    logger.debug("Resize (%s edge) started for task %s", edge, task.id)
    return Resizing(task_id=task.id, edge=edge, original=original, candidate=original)


def _drag_candidate(state: Dragging, pixel_delta: float, context: SnapContext) -> Dragging:
    orig = state.original
    shift = timedelta(days=day_delta(pixel_delta, context.scale, context.zoom))

    snap, dist = _nearest_boundary(context.position(orig.start) + pixel_delta, state.task_id, context)
    snap_edge_date = orig.start
    if orig.end is not None:
        end_snap, end_dist = _nearest_boundary(context.position(orig.end) + pixel_delta, state.task_id, context)
        if end_dist < dist:
            snap, snap_edge_date = end_snap, orig.end

    if snap is not None:
        # Whole bar moves so that the matched edge lands exactly on the boundary.
        shift = snap.date - snap_edge_date

    candidate = DateRange(
        start=orig.start + shift,
        end=orig.end + shift if orig.end is not None else None,
    )
    return replace(state, candidate=candidate, snap=snap)


def _resize_candidate(state: Resizing, pixel_delta: float, context: SnapContext) -> Resizing:
    orig = state.original
    if orig.end is None:
        raise ValueError(f"Task {state.task_id} has no end date; point tasks can only be dragged.")
    delta = timedelta(days=day_delta(pixel_delta, context.scale, context.zoom))

    if state.edge == "start":
        latest_start = orig.end - _ONE_DAY
        moved = min(orig.start + delta, latest_start)
        snap, _ = _nearest_boundary(
            context.position(orig.start) + pixel_delta,
            state.task_id,
            context,
            accept=lambda d: d <= latest_start,
        )
        start = snap.date if snap is not None else moved
        candidate = DateRange(start=start, end=orig.end)
    else:
        earliest_end = orig.start + _ONE_DAY
        moved = max(orig.end + delta, earliest_end)
        snap, _ = _nearest_boundary(
            context.position(orig.end) + pixel_delta,
            state.task_id,
            context,
            accept=lambda d: d >= earliest_end,
        )
        end = snap.date if snap is not None else moved
        candidate = DateRange(start=orig.start, end=end)

    return replace(state, candidate=candidate, snap=snap)


def pointer_move(state: InteractionState, pixel_delta: float, context: SnapContext) -> InteractionState:
    """
    New candidate from the ORIGINAL dates plus the cumulative pointer delta
    since the interaction began; the previous candidate is never an input.
    """
    if isinstance(state, Dragging):
        return _drag_candidate(state, pixel_delta, context)
    if isinstance(state, Resizing):
        return _resize_candidate(state, pixel_delta, context)
    return state


def pointer_up(state: InteractionState) -> Tuple[Idle, Optional[Commit]]:
    """End the interaction. Returns the commit for the caller, or None if nothing changed."""
    if isinstance(state, Idle):
        return Idle(), None
    if state.candidate == state.original:
        return Idle(), None
    logger.debug("Interaction on task %s ends with %s", state.task_id, state.candidate)
    return Idle(), Commit(
        task_id=state.task_id,
        start=state.candidate.start,
        end=state.candidate.end,
        snap=state.snap,
    )


def cancel(state: InteractionState) -> Idle:
    return Idle()
