from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from critical_path import calculate_critical_path
from date_utils import HeaderSegment, bar_width, date_to_position, header_segments, normalize_view_window
from dependency_graph import DependencyGraph, build_dependency_graph
from relation_router import ConnectorPath, route_dependency
from timeline_models import (
    CriticalPathResult,
    Dependency,
    Lane,
    LayoutSettings,
    LayoutWarning,
    Task,
    TaskBar,
    ViewWindow,
    normalize_scale,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LaneBand:
    lane_id: str
    index: int
    y0: float
    y1: float


@dataclass(frozen=True)
class TimelineLayout:
    """Everything a renderer needs for one frame; all values are derived, nothing is authoritative."""

    window: ViewWindow
    scale: str
    bars: Dict[str, TaskBar] = field(default_factory=dict)
    bands: Tuple[LaneBand, ...] = ()
    critical: CriticalPathResult = field(default_factory=CriticalPathResult)
    connectors: Tuple[ConnectorPath, ...] = ()
    headers: Tuple[HeaderSegment, ...] = ()
    warnings: Tuple[LayoutWarning, ...] = ()

    @property
    def total_height(self) -> float:
        return max((b.y1 for b in self.bands), default=0.0)

    def is_critical(self, task_id: str) -> bool:
        return task_id in self.critical.critical_task_ids


def compute_lane_bands(lanes: Iterable[Lane], settings: Optional[LayoutSettings] = None) -> List[LaneBand]:
    """One row per lane, stacked by lane index."""
    settings = settings or LayoutSettings()
    top = settings.router.row_top_offset
    bands = [
        LaneBand(
            lane_id=lane.id,
            index=lane.index,
            y0=top + lane.index * settings.row_height,
            y1=top + (lane.index + 1) * settings.row_height,
        )
        for lane in lanes
    ]
    return sorted(bands, key=lambda b: (b.index, b.lane_id))


def compute_task_bars(
    tasks: Iterable[Task],
    lanes: Iterable[Lane],
    window: ViewWindow,
    scale: str,
    settings: Optional[LayoutSettings] = None,
) -> Tuple[Dict[str, TaskBar], List[LayoutWarning]]:
    """
    Pixel geometry for every task whose lane is known.

    x is measured from the window start; y is the vertical center of the lane row.
    Tasks in an unknown lane are skipped with a MissingLane warning.
    """
    settings = settings or LayoutSettings()
    scale = normalize_scale(scale)
    lane_by_id = {lane.id: lane for lane in lanes}

    bars: Dict[str, TaskBar] = {}
    warnings: List[LayoutWarning] = []
    for t in tasks:
        if t.id in bars:
            continue
        lane = lane_by_id.get(t.lane_id)
        if lane is None:
            warnings.append(
                LayoutWarning(
                    kind="MissingLane",
                    message=f"Task {t.id} references unknown lane '{t.lane_id}'.",
                    task_ids=(t.id,),
                )
            )
            continue
        row_top = settings.router.row_top_offset + lane.index * settings.row_height
        bars[t.id] = TaskBar(
            task_id=t.id,
            lane_id=lane.id,
            row_index=lane.index,
            x=date_to_position(t.start_date, window.start, scale, settings.zoom),
            width=bar_width(t.start_date, t.end_date, scale, settings.zoom, view_start=window.start),
            y=row_top + settings.row_height / 2.0,
            row_top=row_top,
        )

    for w in warnings:
        logger.warning("%s: %s", w.kind, w.message)
    return bars, warnings


def compute_timeline_layout(
    tasks: List[Task],
    lanes: List[Lane],
    dependencies: List[Dependency],
    window: ViewWindow,
    scale: str,
    settings: Optional[LayoutSettings] = None,
    *,
    graph: Optional[DependencyGraph] = None,
    critical: Optional[CriticalPathResult] = None,
) -> TimelineLayout:
    """
    Normalise the window, place bars, run the critical path and route every visible dependency.

    A graph and critical-path result already built from the same tasks and
    dependencies may be passed in and are used as-is.
    """
    settings = settings or LayoutSettings()
    scale = normalize_scale(scale)
    window = normalize_view_window(window, scale)

    bars, bar_warnings = compute_task_bars(tasks, lanes, window, scale, settings)
    if graph is None:
        graph = build_dependency_graph(tasks, dependencies)
    if critical is None:
        critical = calculate_critical_path(graph)

    connectors: List[ConnectorPath] = []
    for dep_id, dep in graph.dependencies.items():
        if dep_id in graph.excluded_dependency_ids:
            continue
        path = route_dependency(dep, bars, settings.row_height, settings.router)
        if path is not None:
            connectors.append(path)

    headers = header_segments(window, scale, settings.zoom)
    warnings = tuple(bar_warnings) + critical.warnings

    logger.debug(
        "Layout %s..%s (%s, zoom %.2f): %d bars, %d connectors, %d warnings",
        window.start,
        window.end,
        scale,
        settings.zoom,
        len(bars),
        len(connectors),
        len(warnings),
    )

    return TimelineLayout(
        window=window,
        scale=scale,
        bars=bars,
        bands=tuple(compute_lane_bands(lanes, settings)),
        critical=critical,
        connectors=tuple(connectors),
        headers=tuple(headers),
        warnings=warnings,
    )
