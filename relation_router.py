from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Literal, Mapping, Optional, Tuple

from timeline_models import Dependency, RouterConfig, TaskBar

AnchorEdge = Literal["start", "finish"]
RouteKind = Literal["direct", "above", "gutter"]

_SOURCE_EDGE = {
    "finish_to_start": "finish",
    "start_to_start": "start",
    "finish_to_finish": "finish",
    "start_to_finish": "start",
}
_TARGET_EDGE = {
    "finish_to_start": "start",
    "start_to_start": "start",
    "finish_to_finish": "finish",
    "start_to_finish": "finish",
}


@dataclass(frozen=True)
class Anchor:
    x: float
    y: float
    edge: AnchorEdge


@dataclass(frozen=True)
class PathCommand:
    op: Literal["M", "L", "Q"]
    points: Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class ConnectorPath:
    commands: Tuple[PathCommand, ...]
    route: RouteKind
    dependency_id: Optional[str] = None

    @property
    def start(self) -> Tuple[float, float]:
        return self.commands[0].points[0]

    @property
    def end(self) -> Tuple[float, float]:
        return self.commands[-1].points[-1]

    def svg(self) -> str:
        """SVG path `d` attribute."""
        parts: List[str] = []
        for cmd in self.commands:
            coords = " ".join(f"{_fmt(x)} {_fmt(y)}" for x, y in cmd.points)
            parts.append(f"{cmd.op} {coords}")
        return " ".join(parts)


def _fmt(v: float) -> str:
    v = round(v, 3)
    if v == 0:
        v = 0.0  # no "-0"
    return f"{v:g}"


def anchors_for(dependency_type: str, source_bar: TaskBar, target_bar: TaskBar) -> Tuple[Anchor, Anchor]:
    """The dependency type picks which bar edge each end of the connector sits on."""
    if dependency_type not in _SOURCE_EDGE:
        raise ValueError(f"Unknown dependency type {dependency_type!r}.")
    s_edge = _SOURCE_EDGE[dependency_type]
    t_edge = _TARGET_EDGE[dependency_type]
    sx = source_bar.x_end if s_edge == "finish" else source_bar.x
    tx = target_bar.x_end if t_edge == "finish" else target_bar.x
    return Anchor(sx, source_bar.y, s_edge), Anchor(tx, target_bar.y, t_edge)


def _simplify(points: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
    out: List[Tuple[float, float]] = []
    for p in points:
        if out and math.isclose(out[-1][0], p[0]) and math.isclose(out[-1][1], p[1]):
            continue
        out.append(p)
    # Drop middle points of straight runs.
    i = 1
    while i < len(out) - 1:
        (ax, ay), (bx, by), (cx, cy) = out[i - 1], out[i], out[i + 1]
        if math.isclose((bx - ax) * (cy - by) - (by - ay) * (cx - bx), 0.0, abs_tol=1e-9):
            del out[i]
        else:
            i += 1
    return out


def _rounded_polyline(points: List[Tuple[float, float]], radius: float) -> Tuple[PathCommand, ...]:
    """
    Orthogonal polyline as M/L commands with a quadratic curve at each corner.

    The corner radius shrinks to half the shorter adjacent segment so curves
    never overlap.
    """
    pts = _simplify(points)
    cmds: List[PathCommand] = [PathCommand("M", (pts[0],))]
    for i in range(1, len(pts) - 1):
        (px, py), (cx, cy), (nx, ny) = pts[i - 1], pts[i], pts[i + 1]
        d_in = math.hypot(cx - px, cy - py)
        d_out = math.hypot(nx - cx, ny - cy)
        r = min(radius, d_in / 2.0, d_out / 2.0)
        if r <= 0:
            cmds.append(PathCommand("L", ((cx, cy),)))
            continue
        before = (cx - (cx - px) / d_in * r, cy - (cy - py) / d_in * r)
        after = (cx + (nx - cx) / d_out * r, cy + (ny - cy) / d_out * r)
        cmds.append(PathCommand("L", (before,)))
        cmds.append(PathCommand("Q", ((cx, cy), after)))
    if len(pts) > 1:
        cmds.append(PathCommand("L", (pts[-1],)))
    return tuple(cmds)


def route_connector(
    source: Anchor,
    target: Anchor,
    source_row: int,
    target_row: int,
    row_height: float,
    config: Optional[RouterConfig] = None,
) -> ConnectorPath:
    """
    Deterministic connector geometry between two anchors.

    - same row, short: one straight segment
    - same row, long: up into the margin above the row, across, back down
    - different rows: through the gutter below the source row (moving down)
      or above the target row (moving up), horizontal -> vertical -> horizontal

    The connector leaves a finish edge to the right and a start edge to the
    left, and stops `arrow_length` short of the target edge on its approach
    side so an arrowhead fits.
    """
    if row_height <= 0:
        raise ValueError("row_height must be positive.")
    cfg = config or RouterConfig()

    exit_dir = 1.0 if source.edge == "finish" else -1.0
    entry_dir = 1.0 if target.edge == "start" else -1.0

    sx, sy = source.x, source.y
    ex, ey = target.x - entry_dir * cfg.arrow_length, target.y

    def row_top(row: int) -> float:
        return row * row_height + cfg.row_top_offset

    if source_row == target_row:
        if abs(ex - sx) < cfg.direct_distance:
            return ConnectorPath(commands=_rounded_polyline([(sx, sy), (ex, ey)], 0.0), route="direct")
        lane_y = row_top(source_row) - cfg.above_row_offset
        x1 = sx + exit_dir * cfg.horizontal_extension
        x2 = ex - entry_dir * cfg.horizontal_extension
        route: RouteKind = "above"
    else:
        if target_row > source_row:
            lane_y = row_top(source_row) + row_height + cfg.gutter_offset
        else:
            lane_y = row_top(target_row) - cfg.gutter_offset
        x1 = sx + exit_dir * cfg.horizontal_extension
        x2 = ex - entry_dir * cfg.end_turn_distance
        route = "gutter"

    waypoints = [(sx, sy), (x1, sy), (x1, lane_y), (x2, lane_y), (x2, ey), (ex, ey)]
    return ConnectorPath(commands=_rounded_polyline(waypoints, cfg.corner_radius), route=route)


def route_dependency(
    dependency: Dependency,
    bars: Mapping[str, TaskBar],
    row_height: float,
    config: Optional[RouterConfig] = None,
) -> Optional[ConnectorPath]:
    """Connector for one dependency, or None when it is hidden or an end has no bar."""
    if not dependency.visible:
        return None
    source_bar = bars.get(dependency.from_task_id)
    target_bar = bars.get(dependency.to_task_id)
    if source_bar is None or target_bar is None:
        return None
    source, target = anchors_for(dependency.type, source_bar, target_bar)
    path = route_connector(source, target, source_bar.row_index, target_bar.row_index, row_height, config)
    return ConnectorPath(commands=path.commands, route=path.route, dependency_id=dependency.id)
