from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

from timeline_models import Dependency, LayoutWarning, Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    dependency_id: str
    from_task_id: str
    to_task_id: str
    type: str
    lag_days: int


@dataclass
class DependencyGraph:
    """
    Validated adjacency structure over an id-keyed task arena.

    Dependencies are referenced by id only; `dependencies` keeps every input
    dependency (including excluded ones) so callers can display and fix them.
    """

    tasks: Dict[str, Task]
    dependencies: Dict[str, Dependency]
    adjacency: Dict[str, List[Edge]]
    predecessors: Dict[str, List[Edge]]
    cyclic_task_ids: frozenset = frozenset()
    excluded_dependency_ids: frozenset = frozenset()
    warnings: List[LayoutWarning] = field(default_factory=list)

    def edges(self) -> List[Edge]:
        return [e for task_id in self.tasks for e in self.adjacency.get(task_id, [])]

    def acyclic_task_ids(self) -> List[str]:
        return [tid for tid in self.tasks if tid not in self.cyclic_task_ids]

    def acyclic_edges(self) -> List[Edge]:
        return [
            e
            for e in self.edges()
            if e.from_task_id not in self.cyclic_task_ids and e.to_task_id not in self.cyclic_task_ids
        ]

    def topological_order(self) -> Tuple[List[str], Set[str]]:
        """
        Kahn's algorithm over the acyclic remainder, ties broken by input order.

        Returns (order, leftover). `leftover` is empty unless the cycle pass
        missed something; callers treat those ids as cyclic too.
        """
        nodes = self.acyclic_task_ids()
        node_set = set(nodes)
        in_degree: Dict[str, int] = {tid: 0 for tid in nodes}
        for e in self.acyclic_edges():
            in_degree[e.to_task_id] += 1

        queue = deque(tid for tid in nodes if in_degree[tid] == 0)
        order: List[str] = []
        while queue:
            tid = queue.popleft()
            order.append(tid)
            for e in self.adjacency.get(tid, []):
                if e.to_task_id not in node_set:
                    continue
                in_degree[e.to_task_id] -= 1
                if in_degree[e.to_task_id] == 0:
                    queue.append(e.to_task_id)

        leftover = node_set - set(order)
        return order, leftover


def _find_cycles(task_ids: List[str], adjacency: Dict[str, List[Edge]]) -> List[List[str]]:
    """
    Strongly connected components with more than one task (iterative Tarjan).

    Every task that can reach itself belongs to exactly one returned component,
    including tasks first reached through an edge into an already finished
    node. Members are listed in input order; components by their first member.
    """
    position = {tid: i for i, tid in enumerate(task_ids)}
    index: Dict[str, int] = {}
    low: Dict[str, int] = {}
    stack: List[str] = []
    on_stack: Set[str] = set()
    components: List[List[str]] = []

    for root in task_ids:
        if root in index:
            continue
        index[root] = low[root] = len(index)
        stack.append(root)
        on_stack.add(root)
        work: List[Tuple[str, int]] = [(root, 0)]

        while work:
            node, next_idx = work[-1]
            out = adjacency.get(node, [])
            if next_idx < len(out):
                work[-1] = (node, next_idx + 1)
                succ = out[next_idx].to_task_id
                if succ not in index:
                    index[succ] = low[succ] = len(index)
                    stack.append(succ)
                    on_stack.add(succ)
                    work.append((succ, 0))
                elif succ in on_stack:
                    low[node] = min(low[node], index[succ])
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
            if low[node] != index[node]:
                continue
            component: List[str] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            if len(component) > 1:
                components.append(sorted(component, key=position.__getitem__))

    return sorted(components, key=lambda c: position[c[0]])


def build_dependency_graph(tasks: Iterable[Task], dependencies: Iterable[Dependency]) -> DependencyGraph:
    """
    Turn flat task/dependency snapshots into a validated graph.

    - duplicate task ids: first occurrence wins (DuplicateTask)
    - missing endpoint: excluded from the graph (DanglingDependency)
    - same (from, to, type) twice: later copy excluded (DuplicateDependency)
    - cycles: member tasks flagged (CyclicDependency); they stay in the graph
      for rendering but downstream scheduling skips them
    """
    warnings: List[LayoutWarning] = []

    arena: Dict[str, Task] = {}
    for t in tasks:
        if t.id in arena:
            warnings.append(
                LayoutWarning(
                    kind="DuplicateTask",
                    message=f"Task id '{t.id}' appears more than once; the first definition is used.",
                    task_ids=(t.id,),
                )
            )
            continue
        arena[t.id] = t

    all_deps: Dict[str, Dependency] = {}
    adjacency: Dict[str, List[Edge]] = {tid: [] for tid in arena}
    predecessors: Dict[str, List[Edge]] = {tid: [] for tid in arena}
    excluded: Set[str] = set()
    seen_keys: Dict[Tuple[str, str, str], str] = {}

    for dep in dependencies:
        if dep.id in all_deps:
            warnings.append(
                LayoutWarning(
                    kind="DuplicateDependency",
                    message=f"Dependency id '{dep.id}' appears more than once; the first definition is used.",
                    dependency_ids=(dep.id,),
                )
            )
            continue
        all_deps[dep.id] = dep

        missing = [tid for tid in (dep.from_task_id, dep.to_task_id) if tid not in arena]
        if missing:
            excluded.add(dep.id)
            warnings.append(
                LayoutWarning(
                    kind="DanglingDependency",
                    message=f"Dependency {dep.id} references missing task(s): {', '.join(missing)}.",
                    task_ids=tuple(missing),
                    dependency_ids=(dep.id,),
                )
            )
            continue

        key = (dep.from_task_id, dep.to_task_id, dep.type)
        if key in seen_keys:
            excluded.add(dep.id)
            warnings.append(
                LayoutWarning(
                    kind="DuplicateDependency",
                    message=(
                        f"Dependency {dep.id} duplicates {seen_keys[key]} "
                        f"({dep.from_task_id} -> {dep.to_task_id}, {dep.type})."
                    ),
                    task_ids=(dep.from_task_id, dep.to_task_id),
                    dependency_ids=(dep.id, seen_keys[key]),
                )
            )
            continue
        seen_keys[key] = dep.id

        edge = Edge(
            dependency_id=dep.id,
            from_task_id=dep.from_task_id,
            to_task_id=dep.to_task_id,
            type=dep.type,
            lag_days=dep.lag_days,
        )
        adjacency[dep.from_task_id].append(edge)
        predecessors[dep.to_task_id].append(edge)

    cyclic: Set[str] = set()
    for component in _find_cycles(list(arena), adjacency):
        cyclic.update(component)
        members = set(component)
        dep_ids = tuple(
            e.dependency_id
            for tid in component
            for e in adjacency[tid]
            if e.to_task_id in members
        )
        warnings.append(
            LayoutWarning(
                kind="CyclicDependency",
                message=f"Dependency cycle among tasks: {', '.join(component)}.",
                task_ids=tuple(component),
                dependency_ids=dep_ids,
            )
        )

    for w in warnings:
        logger.warning("%s: %s", w.kind, w.message)
    logger.debug(
        "Built dependency graph: %d tasks, %d edges, %d excluded, %d cyclic tasks",
        len(arena),
        sum(len(v) for v in adjacency.values()),
        len(excluded),
        len(cyclic),
    )

    return DependencyGraph(
        tasks=arena,
        dependencies=all_deps,
        adjacency=adjacency,
        predecessors=predecessors,
        cyclic_task_ids=frozenset(cyclic),
        excluded_dependency_ids=frozenset(excluded),
        warnings=warnings,
    )
