from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from critical_path import calculate_critical_path
from dependency_graph import DependencyGraph, build_dependency_graph
from layout import TimelineLayout, compute_timeline_layout
from snap_engine import SnapContext
from timeline_models import (
    CriticalPathResult,
    Dependency,
    Lane,
    LayoutSettings,
    Task,
    ViewWindow,
    normalize_scale,
)

logger = logging.getLogger(__name__)


def _canonical(part: Any) -> Any:
    if isinstance(part, BaseModel):
        # python-mode dump; dates and any foreign scalars in attributes go through json's default=str
        return _canonical(part.model_dump())
    if isinstance(part, (list, tuple)):
        return [_canonical(p) for p in part]
    if isinstance(part, dict):
        return {str(k): _canonical(v) for k, v in part.items()}
    return part


def input_fingerprint(*parts: Any) -> str:
    """Stable sha256 over the canonical JSON of every part (models, lists of models, plain values)."""
    payload = json.dumps([_canonical(p) for p in parts], sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DerivedCache:
    """
    Memo of derived values keyed by name, valid for exactly one input fingerprint.

    Any change of fingerprint drops every entry; there is no partial invalidation.
    """

    def __init__(self) -> None:
        self._fingerprint: Optional[str] = None
        self._values: Dict[str, Any] = {}
        self.hits = 0
        self.misses = 0

    @property
    def fingerprint(self) -> Optional[str]:
        return self._fingerprint

    def validate(self, fingerprint: str) -> None:
        if fingerprint != self._fingerprint:
            if self._values:
                logger.debug("Input changed; dropping %d cached value(s)", len(self._values))
            self._values.clear()
            self._fingerprint = fingerprint

    def get_or_compute(self, fingerprint: str, key: str, compute: Callable[[], Any]) -> Any:
        self.validate(fingerprint)
        if key in self._values:
            self.hits += 1
            return self._values[key]
        self.misses += 1
        value = compute()
        self._values[key] = value
        return value

    def clear(self) -> None:
        self._values.clear()
        self._fingerprint = None

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


class TimelineEngine:
    """
    Holds the current snapshot and serves derived layout/critical-path values,
    recomputing only when an input changed since the last request.
    """

    def __init__(
        self,
        tasks: Sequence[Task] = (),
        lanes: Sequence[Lane] = (),
        dependencies: Sequence[Dependency] = (),
        *,
        window: ViewWindow,
        scale: str = "week",
        settings: Optional[LayoutSettings] = None,
    ) -> None:
        self.tasks: List[Task] = list(tasks)
        self.lanes: List[Lane] = list(lanes)
        self.dependencies: List[Dependency] = list(dependencies)
        self.window = window
        self.scale = normalize_scale(scale)
        self.settings = settings or LayoutSettings()
        self.cache = DerivedCache()

    def update(
        self,
        *,
        tasks: Optional[Sequence[Task]] = None,
        lanes: Optional[Sequence[Lane]] = None,
        dependencies: Optional[Sequence[Dependency]] = None,
        window: Optional[ViewWindow] = None,
        scale: Optional[str] = None,
        settings: Optional[LayoutSettings] = None,
    ) -> None:
        """Replace any subset of inputs. The next read recomputes if anything actually differs."""
        if tasks is not None:
            self.tasks = list(tasks)
        if lanes is not None:
            self.lanes = list(lanes)
        if dependencies is not None:
            self.dependencies = list(dependencies)
        if window is not None:
            self.window = window
        if scale is not None:
            self.scale = normalize_scale(scale)
        if settings is not None:
            self.settings = settings

    def replace_task(self, task: Task) -> None:
        """Apply a committed edit (e.g. a drag/resize result) to one task."""
        for i, t in enumerate(self.tasks):
            if t.id == task.id:
                self.tasks[i] = task
                return
        raise ValueError(f"Unknown task id {task.id!r}.")

    def fingerprint(self) -> str:
        return input_fingerprint(self.tasks, self.lanes, self.dependencies, self.window, self.scale, self.settings)

    def graph(self) -> DependencyGraph:
        return self.cache.get_or_compute(
            self.fingerprint(), "graph", lambda: build_dependency_graph(self.tasks, self.dependencies)
        )

    def critical_path(self) -> CriticalPathResult:
        return self.cache.get_or_compute(self.fingerprint(), "critical", lambda: calculate_critical_path(self.graph()))

    def layout(self) -> TimelineLayout:
        return self.cache.get_or_compute(
            self.fingerprint(),
            "layout",
            lambda: compute_timeline_layout(
                self.tasks,
                self.lanes,
                self.dependencies,
                self.window,
                self.scale,
                self.settings,
                graph=self.graph(),
                critical=self.critical_path(),
            ),
        )

    def snap_context(self) -> SnapContext:
        window = self.layout().window
        return self.cache.get_or_compute(
            self.fingerprint(),
            "snap",
            lambda: SnapContext.build(
                self.tasks,
                self.lanes,
                self.scale,
                window.start,
                zoom=self.settings.zoom,
                threshold_px=self.settings.snap_threshold_px,
            ),
        )
