from datetime import date

import pytest

from critical_path import calculate_critical_path
from dependency_graph import build_dependency_graph
from layout import compute_lane_bands, compute_task_bars, compute_timeline_layout
from layout_cache import DerivedCache, TimelineEngine, input_fingerprint
from snap_engine import begin_drag, pointer_move, pointer_up
from timeline_models import Dependency, LayoutSettings, RouterConfig, ViewWindow

WINDOW = ViewWindow(start=date(2026, 1, 5), end=date(2026, 2, 2))


def _plan(make_task, jan):
    tasks = [
        make_task("A", jan(5), jan(8), lane_id="L0"),
        make_task("B", jan(8), jan(12), lane_id="L1"),
        make_task("M", jan(12), lane_id="L1"),
    ]
    deps = [
        Dependency(id="ab", from_task_id="A", to_task_id="B"),
        Dependency(id="bm", from_task_id="B", to_task_id="M", visible=False),
    ]
    return tasks, deps


def test_task_bars_geometry(make_task, lanes, jan):
    tasks, _ = _plan(make_task, jan)
    bars, warnings = compute_task_bars(tasks, lanes, WINDOW, "day")

    assert warnings == []
    assert (bars["A"].x, bars["A"].width) == (0.0, 120.0)
    assert (bars["B"].row_index, bars["B"].row_top, bars["B"].y) == (1, 40.0, 60.0)
    assert bars["M"].width == 0.0


def test_row_top_offset_shifts_rows(make_task, lanes, jan):
    settings = LayoutSettings(row_height=30, router=RouterConfig(row_top_offset=50))
    bars, _ = compute_task_bars([make_task("A", jan(5), jan(6), lane_id="L2")], lanes, WINDOW, "week", settings)
    assert bars["A"].row_top == 110.0
    assert bars["A"].y == 125.0

    bands = compute_lane_bands(lanes, settings)
    assert [(b.lane_id, b.y0, b.y1) for b in bands] == [("L0", 50, 80), ("L1", 80, 110), ("L2", 110, 140)]


def test_unknown_lane_reported_and_skipped(make_task, lanes, jan):
    bars, warnings = compute_task_bars([make_task("A", jan(5), jan(6), lane_id="nowhere")], lanes, WINDOW, "day")
    assert bars == {}
    assert [w.kind for w in warnings] == ["MissingLane"]


def test_timeline_layout_assembles_everything(make_task, lanes, jan):
    tasks, deps = _plan(make_task, jan)
    layout = compute_timeline_layout(tasks, lanes, deps, ViewWindow(start=jan(7), end=jan(20)), "Weekly")

    assert layout.scale == "week"
    assert layout.window == ViewWindow(start=jan(5), end=jan(26))
    assert [c.dependency_id for c in layout.connectors] == ["ab"]
    assert layout.is_critical("A") and layout.is_critical("B")
    assert [h.label for h in layout.headers] == ["05 Jan", "12", "19"]
    assert layout.total_height == 120.0


def test_layout_carries_graph_warnings(make_task, lanes, jan):
    tasks = [make_task("A", jan(5), jan(8))]
    deps = [Dependency(id="x", from_task_id="A", to_task_id="ghost")]
    layout = compute_timeline_layout(tasks, lanes, deps, WINDOW, "day")
    assert layout.connectors == ()
    assert [w.kind for w in layout.warnings] == ["DanglingDependency"]


def test_fingerprint_is_stable_and_sensitive(make_task, jan):
    a = make_task("A", jan(5), jan(8))
    assert input_fingerprint([a], "day") == input_fingerprint([make_task("A", jan(5), jan(8))], "day")
    assert input_fingerprint([a], "day") != input_fingerprint([a], "week")
    assert input_fingerprint([a]) != input_fingerprint([make_task("A", jan(5), jan(9))])


def test_derived_cache_drops_everything_on_new_fingerprint():
    cache = DerivedCache()
    calls = []
    cache.get_or_compute("f1", "x", lambda: calls.append("x") or 1)
    cache.get_or_compute("f1", "y", lambda: calls.append("y") or 2)
    cache.get_or_compute("f1", "x", lambda: calls.append("x again") or 3)
    assert calls == ["x", "y"]
    assert cache.hits == 1

    cache.validate("f2")
    assert len(cache) == 0
    assert cache.get_or_compute("f2", "x", lambda: 9) == 9


def test_engine_recomputes_only_after_changes(make_task, lanes, jan):
    tasks, deps = _plan(make_task, jan)
    engine = TimelineEngine(tasks, lanes, deps, window=WINDOW, scale="day")

    first = engine.layout()
    assert engine.layout() is first
    assert engine.critical_path() is engine.critical_path()

    engine.update(settings=LayoutSettings(zoom=2.0))
    second = engine.layout()
    assert second is not first
    assert second.bars["A"].width == 240.0

    engine.update(scale="day")
    assert engine.layout() is second


def test_engine_applies_committed_drag(make_task, lanes, jan):
    tasks, deps = _plan(make_task, jan)
    engine = TimelineEngine(tasks, lanes, deps, window=WINDOW, scale="day")
    before = engine.critical_path()

    a = tasks[0]
    _, commit = pointer_up(pointer_move(begin_drag(a), -40.0, engine.snap_context()))
    engine.replace_task(a.model_copy(update={"start_date": commit.start, "end_date": commit.end}))

    after = engine.critical_path()
    assert after is not before
    assert after.timings["A"].earliest_start == jan(4)
    assert after.timings["A"].slack_days == 1

    with pytest.raises(ValueError):
        engine.replace_task(make_task("nope", jan(5), jan(6)))


def test_engine_layout_reuses_cached_graph_and_critical_path(make_task, lanes, jan):
    tasks, deps = _plan(make_task, jan)
    engine = TimelineEngine(tasks, lanes, deps, window=WINDOW, scale="day")

    layout = engine.layout()
    assert layout.critical is engine.critical_path()
    assert engine.cache.misses == 3  # graph, critical, layout each built once

    engine.layout()
    engine.critical_path()
    assert engine.cache.misses == 3


def test_timeline_layout_uses_supplied_critical_path(make_task, lanes, jan):
    tasks, deps = _plan(make_task, jan)
    graph = build_dependency_graph(tasks, deps)
    critical = calculate_critical_path(graph)
    layout = compute_timeline_layout(tasks, lanes, deps, WINDOW, "day", graph=graph, critical=critical)
    assert layout.critical is critical
