from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from pydantic import ValidationError

from timeline_models import Dependency, Lane, LayoutWarning, Task

logger = logging.getLogger(__name__)

TASK_COLUMNS = ["id", "label", "start_date", "end_date", "lane_id"]
DEPENDENCY_COLUMNS = ["id", "from_task_id", "to_task_id", "type", "lag_days", "visible"]

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%d-%b-%Y", "%b %d %Y")


def _is_blank(value: Any) -> bool:
    """True for None, pandas missing values (NA/NaN/NaT) and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return False
    return bool(pd.isna(value))


def coerce_date(value: Any) -> Optional[date]:
    """Date from a date, datetime, pandas Timestamp or common string format; None when blank or unparseable."""
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # pandas Timestamp (NaT already handled above)
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime().date()
    if isinstance(value, str):
        v = value.strip()
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(v, fmt).date()
            except ValueError:
                continue
    return None


def _error_text(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(x) for x in e.get("loc", [])) or "row"
        parts.append(f"{loc} — {e.get('msg', 'Invalid value')}")
    return "; ".join(parts)


def _row_label(kind: str, idx: int, rec: Mapping[str, Any]) -> str:
    rid = rec.get("id")
    if _is_blank(rid):
        return f"{kind} row {idx + 1}"
    return f"{kind} row {idx + 1} ({str(rid).strip()})"


def tasks_from_records(records: Iterable[Mapping[str, Any]]) -> Tuple[List[Task], List[LayoutWarning]]:
    """
    Build Task models from plain dict rows.

    Columns outside TASK_COLUMNS end up in `attributes`. A row that fails
    validation is skipped with an InvalidTask warning; the rest still load.
    """
    tasks: List[Task] = []
    warnings: List[LayoutWarning] = []

    for idx, rec in enumerate(records):
        label = _row_label("Task", idx, rec)
        rid = rec.get("id")
        task_ids = () if _is_blank(rid) else (str(rid).strip(),)

        bad_dates = [
            f"{col}: unrecognised date {rec.get(col)!r}"
            for col in ("start_date", "end_date")
            if not _is_blank(rec.get(col)) and coerce_date(rec.get(col)) is None
        ]
        if bad_dates:
            warnings.append(LayoutWarning(kind="InvalidTask", message=f"{label}: {'; '.join(bad_dates)}", task_ids=task_ids))
            continue

        payload: Dict[str, Any] = {
            "id": "" if _is_blank(rid) else str(rid),
            "label": "" if _is_blank(rec.get("label")) else str(rec.get("label")),
            "start_date": coerce_date(rec.get("start_date")),
            "end_date": coerce_date(rec.get("end_date")),
            "lane_id": "" if _is_blank(rec.get("lane_id")) else str(rec.get("lane_id")),
            "attributes": {k: v for k, v in rec.items() if k not in TASK_COLUMNS and not _is_blank(v)},
        }
        try:
            tasks.append(Task(**payload))
        except ValidationError as ve:
            warnings.append(LayoutWarning(kind="InvalidTask", message=f"{label}: {_error_text(ve)}", task_ids=task_ids))

    for w in warnings:
        logger.warning("%s: %s", w.kind, w.message)
    logger.debug("Loaded %d task(s), skipped %d", len(tasks), len(warnings))
    return tasks, warnings


def dependencies_from_records(
    records: Iterable[Mapping[str, Any]],
) -> Tuple[List[Dependency], List[LayoutWarning]]:
    """Dependency rows -> models. Blank type means finish-to-start, blank lag 0, blank visibility shown."""
    deps: List[Dependency] = []
    warnings: List[LayoutWarning] = []

    for idx, rec in enumerate(records):
        label = _row_label("Dependency", idx, rec)
        payload = {c: rec.get(c) for c in DEPENDENCY_COLUMNS if not _is_blank(rec.get(c))}
        for c in ("id", "from_task_id", "to_task_id"):
            payload[c] = str(payload.get(c, ""))
        lag = payload.get("lag_days")
        if isinstance(lag, float) and lag.is_integer():
            payload["lag_days"] = int(lag)
        try:
            deps.append(Dependency(**payload))
        except ValidationError as ve:
            dep_ids = (payload["id"].strip(),) if payload["id"].strip() else ()
            warnings.append(
                LayoutWarning(kind="InvalidDependency", message=f"{label}: {_error_text(ve)}", dependency_ids=dep_ids)
            )

    for w in warnings:
        logger.warning("%s: %s", w.kind, w.message)
    logger.debug("Loaded %d dependency(ies), skipped %d", len(deps), len(warnings))
    return deps, warnings


def _df_clean(df: pd.DataFrame) -> pd.DataFrame:
    """Missing values become plain None and fully empty rows are dropped."""
    df2 = df.astype(object)
    df2 = df2.where(pd.notna(df2), None)
    df2 = df2.dropna(how="all")
    return df2.reset_index(drop=True)


def _ensure_columns(df: pd.DataFrame, cols: List[str]) -> pd.DataFrame:
    """Add any missing expected columns as blank; extra columns are kept after them."""
    df2 = df.copy()
    for c in cols:
        if c not in df2.columns:
            df2[c] = None
    extra = [c for c in df2.columns if c not in cols]
    return df2[cols + extra]


def tasks_from_frame(df: pd.DataFrame) -> Tuple[List[Task], List[LayoutWarning]]:
    clean = _df_clean(_ensure_columns(df, TASK_COLUMNS))
    return tasks_from_records(clean.to_dict(orient="records"))


def dependencies_from_frame(df: pd.DataFrame) -> Tuple[List[Dependency], List[LayoutWarning]]:
    clean = _df_clean(_ensure_columns(df, DEPENDENCY_COLUMNS))
    return dependencies_from_records(clean.to_dict(orient="records"))


def lanes_from_tasks(tasks: Iterable[Task]) -> List[Lane]:
    """One lane per distinct lane id, indexed in order of first appearance."""
    order: Dict[str, List[str]] = {}
    for t in tasks:
        order.setdefault(t.lane_id, []).append(t.id)
    return [Lane(id=lane_id, task_ids=ids, index=i) for i, (lane_id, ids) in enumerate(order.items())]


def tasks_to_frame(tasks: Iterable[Task]) -> pd.DataFrame:
    """Inverse of tasks_from_frame for display/export; attributes are flattened into extra columns."""
    rows = []
    for t in tasks:
        row = {
            "id": t.id,
            "label": t.label,
            "start_date": t.start_date,
            "end_date": t.end_date,
            "lane_id": t.lane_id,
        }
        row.update(t.attributes)
        rows.append(row)
    df = pd.DataFrame(rows)
    return _ensure_columns(df, TASK_COLUMNS)
