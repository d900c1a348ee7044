from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Set

import pandas as pd

from dependency_graph import DependencyGraph, Edge, build_dependency_graph
from timeline_models import CriticalPathResult, Dependency, LayoutWarning, Task, TaskTiming

logger = logging.getLogger(__name__)

TIMING_COLUMNS = [
    "task_id",
    "earliest_start",
    "earliest_finish",
    "latest_start",
    "latest_finish",
    "slack_days",
    "critical",
]


# All scheduling arithmetic runs on date ordinals (whole days).

def _earliest_start_bound(edge: Edge, pred_es: int, pred_ef: int, duration: int) -> int:
    """Earliest successor start allowed by one incoming edge."""
    if edge.type == "finish_to_start":
        return pred_ef + edge.lag_days
    if edge.type == "start_to_start":
        return pred_es + edge.lag_days
    if edge.type == "finish_to_finish":
        return pred_ef + edge.lag_days - duration
    # start_to_finish
    return pred_es + edge.lag_days - duration


def _latest_finish_bound(edge: Edge, succ_ls: int, succ_lf: int, duration: int) -> int:
    """Latest predecessor finish allowed by one outgoing edge."""
    if edge.type == "finish_to_start":
        return succ_ls - edge.lag_days
    if edge.type == "start_to_start":
        return succ_ls - edge.lag_days + duration
    if edge.type == "finish_to_finish":
        return succ_lf - edge.lag_days
    # start_to_finish
    return succ_lf - edge.lag_days + duration


def _is_binding(edge: Edge, es: Dict[str, int], ef: Dict[str, int]) -> bool:
    u, v = edge.from_task_id, edge.to_task_id
    if edge.type == "finish_to_start":
        return es[v] == ef[u] + edge.lag_days
    if edge.type == "start_to_start":
        return es[v] == es[u] + edge.lag_days
    if edge.type == "finish_to_finish":
        return ef[v] == ef[u] + edge.lag_days
    return ef[v] == es[u] + edge.lag_days


def calculate_critical_path(graph: DependencyGraph) -> CriticalPathResult:
    """
    Critical-path method over the acyclic part of a validated graph.

    Forward pass (topological order): a task with analysable predecessors
    starts at the most restrictive of their constraints; a task without any
    is anchored at its own scheduled start.

    Backward pass (reverse order): sinks are anchored at the project finish,
    i.e. the latest of every task's earliest finish and scheduled finish, so a
    task planned later than it could start shows that gap as slack.

    A task is critical when its slack is zero and it takes part in at least one
    analysable dependency; a plan with no dependencies has no critical path.
    An edge is critical when both ends are critical and its own constraint is
    the one holding the successor in place.
    """
    order, leftover = graph.topological_order()
    warnings: List[LayoutWarning] = list(graph.warnings)
    if leftover:
        warnings.append(
            LayoutWarning(
                kind="CyclicDependency",
                message=f"Tasks left unordered by the dependency graph: {', '.join(sorted(leftover))}.",
                task_ids=tuple(sorted(leftover)),
            )
        )
    skipped = frozenset(set(graph.cyclic_task_ids) | leftover)

    if not order:
        return CriticalPathResult(skipped_task_ids=skipped, warnings=tuple(warnings))

    nodes: Set[str] = set(order)
    incoming: Dict[str, List[Edge]] = {
        tid: [e for e in graph.predecessors.get(tid, []) if e.from_task_id in nodes] for tid in order
    }
    outgoing: Dict[str, List[Edge]] = {
        tid: [e for e in graph.adjacency.get(tid, []) if e.to_task_id in nodes] for tid in order
    }
    duration = {tid: graph.tasks[tid].duration_days for tid in order}

    es: Dict[str, int] = {}
    ef: Dict[str, int] = {}
    for tid in order:
        preds = incoming[tid]
        if preds:
            es[tid] = max(_earliest_start_bound(e, es[e.from_task_id], ef[e.from_task_id], duration[tid]) for e in preds)
        else:
            es[tid] = graph.tasks[tid].start_date.toordinal()
        ef[tid] = es[tid] + duration[tid]

    project_start = min(es.values())
    project_finish = max(max(ef[tid], graph.tasks[tid].finish_date.toordinal()) for tid in order)

    lf: Dict[str, int] = {}
    ls: Dict[str, int] = {}
    for tid in reversed(order):
        succs = outgoing[tid]
        bound = project_finish
        if succs:
            bound = min(bound, min(_latest_finish_bound(e, ls[e.to_task_id], lf[e.to_task_id], duration[tid]) for e in succs))
        lf[tid] = bound
        ls[tid] = bound - duration[tid]

    in_network = {tid for tid in order if incoming[tid] or outgoing[tid]}

    timings: Dict[str, TaskTiming] = {}
    critical_tasks: Set[str] = set()
    for tid in order:
        slack = ls[tid] - es[tid]
        is_critical = slack == 0 and tid in in_network
        if is_critical:
            critical_tasks.add(tid)
        timings[tid] = TaskTiming(
            task_id=tid,
            earliest_start=date.fromordinal(es[tid]),
            earliest_finish=date.fromordinal(ef[tid]),
            latest_start=date.fromordinal(ls[tid]),
            latest_finish=date.fromordinal(lf[tid]),
            slack_days=slack,
            critical=is_critical,
        )

    critical_edges = {
        e.dependency_id
        for tid in order
        for e in outgoing[tid]
        if e.from_task_id in critical_tasks and e.to_task_id in critical_tasks and _is_binding(e, es, ef)
    }

    logger.debug(
        "Critical path: %d analysed, %d skipped, %d critical tasks, %d critical edges, %d days",
        len(order),
        len(skipped),
        len(critical_tasks),
        len(critical_edges),
        project_finish - project_start,
    )

    return CriticalPathResult(
        critical_task_ids=frozenset(critical_tasks),
        critical_dependency_ids=frozenset(critical_edges),
        timings=timings,
        project_start=date.fromordinal(project_start),
        project_finish=date.fromordinal(project_finish),
        skipped_task_ids=skipped,
        warnings=tuple(warnings),
    )


def critical_path_for(tasks: Iterable[Task], dependencies: Iterable[Dependency]) -> CriticalPathResult:
    return calculate_critical_path(build_dependency_graph(tasks, dependencies))


def timings_frame(result: CriticalPathResult) -> pd.DataFrame:
    """Schedule report: one row per analysed task, ordered by earliest start then id."""
    rows = [
        {
            "task_id": t.task_id,
            "earliest_start": t.earliest_start,
            "earliest_finish": t.earliest_finish,
            "latest_start": t.latest_start,
            "latest_finish": t.latest_finish,
            "slack_days": t.slack_days,
            "critical": t.critical,
        }
        for t in result.timings.values()
    ]
    df = pd.DataFrame(rows, columns=TIMING_COLUMNS)
    if df.empty:
        return df
    return df.sort_values(["earliest_start", "task_id"], kind="mergesort").reset_index(drop=True)
