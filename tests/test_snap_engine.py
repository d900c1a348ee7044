from datetime import date

import pytest

from date_utils import pixels_per_day
from snap_engine import (
    Dragging,
    Idle,
    Resizing,
    SnapContext,
    begin_drag,
    begin_resize,
    cancel,
    day_delta,
    pointer_move,
    pointer_up,
)
from timeline_models import SCALES, DateRange

VIEW = date(2026, 1, 1)


def _ctx(tasks, lanes, scale="day", **kw):
    return SnapContext.build(tasks, lanes, scale, VIEW, **kw)


@pytest.mark.parametrize("scale", SCALES)
def test_exact_multiples_give_exact_days(scale):
    for n in (-5, -1, 0, 1, 3, 17):
        assert day_delta(n * pixels_per_day(scale), scale) == n


def test_half_day_rounds_up():
    assert day_delta(19.9, "day") == 0
    assert day_delta(20.0, "day") == 1
    assert day_delta(-20.0, "day") == 0
    assert day_delta(-21.0, "day") == -1


def test_drag_moves_both_edges(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8))
    ctx = _ctx([a], lanes)
    state = pointer_move(begin_drag(a), 80.0, ctx)
    assert isinstance(state, Dragging)
    assert state.candidate == DateRange(jan(7), jan(10))
    assert state.snap is None


def test_deltas_are_cumulative_from_the_original(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8))
    ctx = _ctx([a], lanes)
    state = begin_drag(a)
    state = pointer_move(state, 40.0, ctx)
    state = pointer_move(state, 80.0, ctx)
    assert state.candidate == DateRange(jan(7), jan(10))
    assert state.original == DateRange(jan(5), jan(8))


def test_magnetic_snap_to_adjacent_lane_boundary(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8), lane_id="L0")
    b = make_task("B", jan(20), jan(25), lane_id="L1")
    ctx = _ctx([a, b], lanes, scale="month")  # 5 px/day, threshold 10 px

    state = pointer_move(begin_drag(a), 52.0, ctx)
    # plain rounding would give +10 days; A's end is pulled onto B's start instead
    assert state.candidate == DateRange(jan(17), jan(20))
    assert state.snap is not None
    assert (state.snap.task_id, state.snap.boundary, state.snap.date) == ("B", "start", jan(20))


def test_no_snap_to_lanes_further_than_one_row(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8), lane_id="L0")
    b = make_task("B", jan(20), jan(25), lane_id="L2")
    ctx = _ctx([a, b], lanes, scale="month")

    state = pointer_move(begin_drag(a), 52.0, ctx)
    assert state.candidate == DateRange(jan(15), jan(18))
    assert state.snap is None


def test_resize_keeps_at_least_one_day(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8))
    ctx = _ctx([a], lanes)

    state = pointer_move(begin_resize(a, "end"), -400.0, ctx)
    assert isinstance(state, Resizing)
    assert state.candidate == DateRange(jan(5), jan(6))

    state = pointer_move(begin_resize(a, "start"), 400.0, ctx)
    assert state.candidate == DateRange(jan(7), jan(8))


def test_resize_ignores_magnetic_target_that_breaks_minimum(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8), lane_id="L0")
    b = make_task("B", jan(5), jan(6), lane_id="L1")
    ctx = _ctx([a, b], lanes)

    # raw pointer sits exactly on B's start (Jan 5), which would make A zero-length
    state = pointer_move(begin_resize(a, "end"), -120.0, ctx)
    assert state.candidate == DateRange(jan(5), jan(6))
    assert state.snap is None


def test_resize_end_snaps_within_threshold(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8), lane_id="L1")
    b = make_task("B", jan(12), jan(14), lane_id="L1")
    ctx = _ctx([a, b], lanes, scale="month")

    state = pointer_move(begin_resize(a, "end"), 17.0, ctx)
    assert state.candidate == DateRange(jan(5), jan(12))
    assert state.snap.boundary == "start"


def test_point_tasks_drag_but_do_not_resize(make_task, lanes, jan):
    m = make_task("M", jan(5))
    ctx = _ctx([m], lanes)
    state = pointer_move(begin_drag(m), 120.0, ctx)
    assert state.candidate == DateRange(jan(8), None)
    with pytest.raises(ValueError):
        begin_resize(m, "end")


def test_unknown_resize_edge_rejected(make_task, jan):
    with pytest.raises(ValueError):
        begin_resize(make_task("A", jan(5), jan(8)), "middle")


def test_pointer_up_commits_candidate(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8))
    ctx = _ctx([a], lanes)
    state = pointer_move(begin_drag(a), 40.0, ctx)

    idle, commit = pointer_up(state)
    assert idle == Idle()
    assert (commit.task_id, commit.start, commit.end) == ("A", jan(6), jan(9))


def test_pointer_up_without_change_commits_nothing(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8))
    ctx = _ctx([a], lanes)
    state = pointer_move(begin_drag(a), 5.0, ctx)
    assert pointer_up(state) == (Idle(), None)
    assert pointer_up(Idle()) == (Idle(), None)


def test_cancel_discards_candidate(make_task, lanes, jan):
    a = make_task("A", jan(5), jan(8))
    ctx = _ctx([a], lanes)
    state = pointer_move(begin_drag(a), 400.0, ctx)
    assert cancel(state) == Idle()
    assert a.start_date == jan(5)


def test_move_while_idle_is_a_no_op(lanes):
    ctx = _ctx([], lanes)
    assert pointer_move(Idle(), 100.0, ctx) == Idle()


def test_resizing_a_point_range_raises(lanes, jan):
    ctx = _ctx([], lanes)
    point = DateRange(jan(5), None)
    state = Resizing(task_id="M", edge="end", original=point, candidate=point)
    with pytest.raises(ValueError):
        pointer_move(state, 40.0, ctx)
