# src/mlstudio_engine/preprocessing/transforms.py
"""
Fit/apply pairs for every tabular transform.

``fit_*`` functions compute a FittedStatistic from the current data;
``apply_*`` functions use a statistic (never the data) to transform rows, so
the same code path serves both training-time preprocessing and recipe replay.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from mlstudio_engine.data.schemas import (
    ColumnType,
    FittedStatistic,
    RawDataset,
    is_missing,
)
from mlstudio_engine.errors import DataShapeError

LOGGER = logging.getLogger(__name__)


# ============================================================
# Cell helpers
# ============================================================


def to_float(value: Any, column: str, row: int) -> float:
    """Coerce one cell to float or raise DataShapeError naming the cell."""
    if isinstance(value, str):
        value = value.strip()
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise DataShapeError(
            f"Invalid numeric value {value!r}", column=column, row=row, value=value
        ) from None
    if math.isnan(out):
        raise DataShapeError("NaN where a number is required", column=column, row=row)
    return out


def numeric_cells(data: RawDataset, idx: int) -> List[Tuple[int, float]]:
    """(row_index, value) for every non-missing cell of a column, coerced to float."""
    name = data.columns[idx]
    return [
        (i, to_float(row[idx], name, i))
        for i, row in enumerate(data.rows)
        if not is_missing(row[idx])
    ]


def resolve_columns(
    data: RawDataset, columns: Optional[Iterable[str]], step: str
) -> List[Tuple[str, int]]:
    """
    Map column names to indices.

    Unknown names are skipped with a warning so that saved recipes keep working
    against datasets that dropped a column. ``None`` selects every column.
    """
    if columns is None:
        return [(c, i) for i, c in enumerate(data.columns)]

    resolved: List[Tuple[str, int]] = []
    for name in columns:
        idx = data.column_index(name)
        if idx is None:
            LOGGER.warning("%s: ignoring unknown column '%s'", step, name)
            continue
        resolved.append((name, idx))
    return resolved


def most_frequent(values: Sequence[Any]) -> Any:
    """
    Most frequent value; on ties the value that first reached the top count wins.
    """
    counts: Dict[Any, int] = {}
    best = values[0] if values else None
    best_count = 0
    for v in values:
        counts[v] = counts.get(v, 0) + 1
        if counts[v] > best_count:
            best_count = counts[v]
            best = v
    return best


# ============================================================
# Missing values
# ============================================================


# strategies that record no fill value
VALUELESS_STRATEGIES = ("drop", "drop_columns", "forward_fill", "backward_fill")


def fit_fill(data: RawDataset, idx: int, strategy: str) -> Optional[FittedStatistic]:
    name = data.columns[idx]
    present = [row[idx] for row in data.rows if not is_missing(row[idx])]
    missing_count = data.n_rows - len(present)

    if strategy in VALUELESS_STRATEGIES:
        return FittedStatistic(strategy=strategy, missing_count=missing_count)
    if not present:
        return None

    numeric = data.types[idx] is ColumnType.NUMERIC
    if strategy == "mean" and numeric:
        nums = np.array([v for _, v in numeric_cells(data, idx)], dtype=float)
        fill: Any = float(nums.mean())
    elif strategy == "median" and numeric:
        nums = sorted(v for _, v in numeric_cells(data, idx))
        fill = nums[len(nums) // 2]
    elif strategy in {"mean", "median", "mode"}:
        fill = most_frequent(present)
    else:
        raise ValueError(f"Unknown missing-value strategy: {strategy}")

    LOGGER.debug("fill %s with %r (%d missing)", name, fill, missing_count)
    return FittedStatistic(strategy=strategy, fill_value=fill, missing_count=missing_count)


def apply_fill(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    if stat.strategy == "drop":
        rows = [row for row in data.rows if not is_missing(row[idx])]
        return data.copy_with(rows=rows)
    if stat.strategy == "drop_columns":
        # only columns that had gaps when fitted are removed
        return drop_column(data, idx) if stat.missing_count else data
    if stat.strategy in ("forward_fill", "backward_fill"):
        return _propagate(data, idx, reverse=stat.strategy == "backward_fill")

    rows = [list(row) for row in data.rows]
    for row in rows:
        if is_missing(row[idx]):
            row[idx] = stat.fill_value
    return data.copy_with(rows=rows)


def _propagate(data: RawDataset, idx: int, reverse: bool) -> RawDataset:
    """Carry the last seen value forward (or the next one backward); edge gaps stay missing."""
    rows = [list(row) for row in data.rows]
    last: Any = None
    for row in (reversed(rows) if reverse else rows):
        if not is_missing(row[idx]):
            last = row[idx]
        elif last is not None:
            row[idx] = last
    return data.copy_with(rows=rows)


def drop_column(data: RawDataset, idx: int) -> RawDataset:
    return data.copy_with(
        rows=[row[:idx] + row[idx + 1 :] for row in data.rows],
        columns=data.columns[:idx] + data.columns[idx + 1 :],
        types=data.types[:idx] + data.types[idx + 1 :],
    )


# ============================================================
# Outliers (IQR)
# ============================================================


def fit_iqr(data: RawDataset, idx: int, factor: float) -> Optional[FittedStatistic]:
    values = sorted(v for _, v in numeric_cells(data, idx))
    if not values:
        return None
    n = len(values)
    q1 = values[int(math.floor(n * 0.25))]
    q3 = values[int(math.floor(n * 0.75))]
    iqr = q3 - q1
    return FittedStatistic(
        q1=q1,
        q3=q3,
        lower_bound=q1 - factor * iqr,
        upper_bound=q3 + factor * iqr,
    )


def apply_iqr(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    name = data.columns[idx]
    lo, hi = stat.lower_bound, stat.upper_bound
    kept = []
    for i, row in enumerate(data.rows):
        cell = row[idx]
        if is_missing(cell) or lo <= to_float(cell, name, i) <= hi:
            kept.append(row)
    return data.copy_with(rows=kept)


# ============================================================
# Numeric rescaling
# ============================================================


def fit_zscore(data: RawDataset, idx: int) -> Optional[FittedStatistic]:
    values = np.array([v for _, v in numeric_cells(data, idx)], dtype=float)
    if values.size == 0:
        return None
    # population std (ddof=0)
    return FittedStatistic(method="z-score", mean=float(values.mean()), std=float(values.std()))


def fit_minmax(data: RawDataset, idx: int) -> Optional[FittedStatistic]:
    values = np.array([v for _, v in numeric_cells(data, idx)], dtype=float)
    if values.size == 0:
        return None
    return FittedStatistic(method="min-max", min=float(values.min()), max=float(values.max()))


def _rescale(data: RawDataset, idx: int, offset: float, denom: float) -> RawDataset:
    name = data.columns[idx]
    rows = [list(row) for row in data.rows]
    for i, row in enumerate(rows):
        if is_missing(row[idx]):
            continue
        value = to_float(row[idx], name, i)
        # zero-width columns collapse to 0 instead of dividing by zero
        row[idx] = 0.0 if denom == 0 else (value - offset) / denom
    types = list(data.types)
    types[idx] = ColumnType.NUMERIC
    return data.copy_with(rows=rows, types=types)


def apply_zscore(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    return _rescale(data, idx, stat.mean, stat.std)


def apply_minmax(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    return _rescale(data, idx, stat.min, stat.max - stat.min)


def fit_robust(data: RawDataset, idx: int) -> Optional[FittedStatistic]:
    values = sorted(v for _, v in numeric_cells(data, idx))
    if not values:
        return None
    last = len(values) - 1
    return FittedStatistic(
        method="robust",
        median=values[int(math.floor(last * 0.5))],
        q1=values[int(math.floor(last * 0.25))],
        q3=values[int(math.floor(last * 0.75))],
    )


def apply_robust(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    iqr = stat.q3 - stat.q1
    # zero-IQR columns are only centred on the median
    return _rescale(data, idx, stat.median, iqr or 1.0)


# ============================================================
# Categorical encoding
# ============================================================


def fit_categories(data: RawDataset, idx: int, method: str) -> FittedStatistic:
    categories: List[Any] = []
    seen = set()
    for row in data.rows:
        v = row[idx]
        if is_missing(v) or v in seen:
            continue
        seen.add(v)
        categories.append(v)
    return FittedStatistic(method=method, categories=categories)


def apply_one_hot(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    """Replace column ``idx`` by one indicator column per category, in place."""
    name = data.columns[idx]
    categories = stat.categories or []
    new_columns = [f"{name}_{c}" for c in categories]

    columns = data.columns[:idx] + new_columns + data.columns[idx + 1 :]
    types = (
        data.types[:idx]
        + [ColumnType.NUMERIC] * len(new_columns)
        + data.types[idx + 1 :]
    )
    rows = []
    for row in data.rows:
        value = row[idx]
        indicators = [1 if (not is_missing(value) and value == c) else 0 for c in categories]
        rows.append(row[:idx] + indicators + row[idx + 1 :])
    return data.copy_with(rows=rows, columns=columns, types=types)


def apply_label(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    name = data.columns[idx]
    mapping = {c: i for i, c in enumerate(stat.categories or [])}
    rows = [list(row) for row in data.rows]
    for i, row in enumerate(rows):
        value = row[idx]
        if is_missing(value):
            continue
        if value not in mapping:
            raise DataShapeError(
                f"Unseen category {value!r} for label encoding", column=name, row=i
            )
        row[idx] = mapping[value]
    types = list(data.types)
    types[idx] = ColumnType.NUMERIC
    return data.copy_with(rows=rows, types=types)


TARGET_SMOOTHING = 10.0


def fit_target_means(
    data: RawDataset, idx: int, target_idx: int, smoothing: float = TARGET_SMOOTHING
) -> FittedStatistic:
    """
    Smoothed mean of the target per category.

    Each category maps to ``w * category_mean + (1 - w) * global_mean`` with
    ``w = count / (count + smoothing)``. Rows with a missing target are
    ignored; the global mean is stored for categories unseen at fit time.
    """
    target_name = data.columns[target_idx]
    sums: Dict[Any, float] = {}
    counts: Dict[Any, int] = {}
    total, n = 0.0, 0
    for i, row in enumerate(data.rows):
        if is_missing(row[target_idx]):
            continue
        y = to_float(row[target_idx], target_name, i)
        total += y
        n += 1
        key = row[idx]
        if is_missing(key):
            continue
        sums[key] = sums.get(key, 0.0) + y
        counts[key] = counts.get(key, 0) + 1

    global_mean = total / n if n else 0.0
    categories = list(counts)
    encodings = []
    for key in categories:
        w = counts[key] / (counts[key] + smoothing)
        encodings.append(w * sums[key] / counts[key] + (1.0 - w) * global_mean)
    return FittedStatistic(
        method="target", categories=categories, encodings=encodings, mean=global_mean
    )


def apply_target(data: RawDataset, idx: int, stat: FittedStatistic) -> RawDataset:
    mapping = dict(zip(stat.categories or [], stat.encodings or []))
    rows = [list(row) for row in data.rows]
    for row in rows:
        if is_missing(row[idx]):
            continue
        row[idx] = mapping.get(row[idx], stat.mean)
    types = list(data.types)
    types[idx] = ColumnType.NUMERIC
    return data.copy_with(rows=rows, types=types)


# ============================================================
# Feature engineering
# ============================================================


def _derived_column(
    data: RawDataset, name: str, cells: List[Any]
) -> RawDataset:
    if data.column_index(name) is not None:
        raise DataShapeError(f"Derived column '{name}' already exists", column=name)
    rows = [row + [cell] for row, cell in zip(data.rows, cells)]
    return data.copy_with(
        rows=rows,
        columns=data.columns + [name],
        types=data.types + [ColumnType.NUMERIC],
    )


def _column_floats(data: RawDataset, idx: int) -> List[Optional[float]]:
    name = data.columns[idx]
    return [
        None if is_missing(row[idx]) else to_float(row[idx], name, i)
        for i, row in enumerate(data.rows)
    ]


def apply_feature_operation(data: RawDataset, operation: Dict[str, Any]) -> RawDataset:
    """
    Append derived numeric columns.

    Supported operation types: ``polynomial`` (``degree``), ``interaction``,
    ``log`` (log1p) and ``sqrt``.
    """
    op_type = operation.get("type")
    targets = resolve_columns(data, operation.get("columns", []), f"feature_engineering[{op_type}]")

    if op_type == "polynomial":
        degree = int(operation.get("degree", 2))
        for name, idx in targets:
            values = _column_floats(data, idx)
            for k in range(2, degree + 1):
                cells = [None if v is None else v**k for v in values]
                data = _derived_column(data, f"{name}_pow{k}", cells)
    elif op_type == "interaction":
        for a in range(len(targets)):
            for b in range(a + 1, len(targets)):
                (name_a, idx_a), (name_b, idx_b) = targets[a], targets[b]
                va, vb = _column_floats(data, idx_a), _column_floats(data, idx_b)
                cells = [None if x is None or y is None else x * y for x, y in zip(va, vb)]
                data = _derived_column(data, f"{name_a}_x_{name_b}", cells)
    elif op_type in ("log", "sqrt"):
        for name, idx in targets:
            cells: List[Optional[float]] = []
            for i, v in enumerate(_column_floats(data, idx)):
                if v is None:
                    cells.append(None)
                elif op_type == "log":
                    if v <= -1.0:
                        raise DataShapeError("log1p requires values > -1", column=name, row=i)
                    cells.append(math.log1p(v))
                else:
                    if v < 0.0:
                        raise DataShapeError("sqrt requires values >= 0", column=name, row=i)
                    cells.append(math.sqrt(v))
            data = _derived_column(data, f"{name}_{op_type}", cells)
    else:
        raise ValueError(f"Unknown feature operation: {op_type}")
    return data
