# src/mlstudio_engine/data/schemas.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from mlstudio_engine.errors import DataShapeError


class ColumnType(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    DATE = "date"
    BOOLEAN = "boolean"


def is_missing(value: Any) -> bool:
    """True for None and float NaN (the two encodings of an empty cell)."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NaT


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(
        value, (bool, np.bool_)
    )


def _is_numeric_string(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        float(value)
    except ValueError:
        return False
    return True


def infer_column_type(values: Sequence[Any]) -> ColumnType:
    """
    Infer one ColumnType from the non-missing cells of a column.

    Order of precedence: boolean, numeric (numbers or numeric strings),
    date (date objects or parseable strings), categorical.
    """
    present = [v for v in values if not is_missing(v)]
    if not present:
        return ColumnType.CATEGORICAL

    if all(isinstance(v, (bool, np.bool_)) for v in present):
        return ColumnType.BOOLEAN
    if all(_is_number(v) or _is_numeric_string(v) for v in present):
        return ColumnType.NUMERIC
    if all(isinstance(v, (date, datetime, pd.Timestamp)) for v in present):
        return ColumnType.DATE
    if all(isinstance(v, str) for v in present):
        parsed = pd.to_datetime(pd.Series(present), errors="coerce", format="mixed")
        if parsed.notna().all():
            return ColumnType.DATE
    return ColumnType.CATEGORICAL


def _dtype_to_column_type(series: pd.Series) -> ColumnType:
    if pd.api.types.is_bool_dtype(series):
        return ColumnType.BOOLEAN
    if pd.api.types.is_numeric_dtype(series):
        return ColumnType.NUMERIC
    if pd.api.types.is_datetime64_any_dtype(series):
        return ColumnType.DATE
    return infer_column_type(series.tolist())


# ============================================================
# Raw dataset
# ============================================================


class RawDataset(BaseModel):
    """
    Column-typed, row-major table handed to the engine by the dataset store.

    The engine treats instances as read-only: every preprocessing operation
    returns a new RawDataset.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    columns: List[str] = Field(..., description="Column names, in order.")
    types: List[ColumnType] = Field(..., description="One inferred type per column.")
    rows: List[List[Any]] = Field(default_factory=list, description="Row-major cells.")

    @property
    def n_rows(self) -> int:
        return len(self.rows)

    @property
    def n_columns(self) -> int:
        return len(self.columns)

    def check_shape(self) -> "RawDataset":
        """Raise DataShapeError if the header, types and rows disagree in width."""
        if len(self.types) != len(self.columns):
            raise DataShapeError(
                f"{len(self.columns)} columns but {len(self.types)} column types"
            )
        if len(set(self.columns)) != len(self.columns):
            raise DataShapeError("Duplicate column names")
        width = len(self.columns)
        for i, row in enumerate(self.rows):
            if len(row) != width:
                raise DataShapeError(
                    f"Row has {len(row)} cells, expected {width}", row=i
                )
        return self

    def column_index(self, name: str) -> Optional[int]:
        try:
            return self.columns.index(name)
        except ValueError:
            return None

    def column_values(self, name: str) -> List[Any]:
        idx = self.column_index(name)
        if idx is None:
            raise KeyError(f"Column '{name}' not found")
        return [row[idx] for row in self.rows]

    def column_type(self, name: str) -> Optional[ColumnType]:
        idx = self.column_index(name)
        return None if idx is None else self.types[idx]

    def copy_with(
        self,
        rows: Optional[List[List[Any]]] = None,
        columns: Optional[List[str]] = None,
        types: Optional[List[ColumnType]] = None,
    ) -> "RawDataset":
        """Shallow-copy the table, replacing any of its three parts."""
        return RawDataset.model_construct(
            columns=list(self.columns if columns is None else columns),
            types=list(self.types if types is None else types),
            rows=[list(r) for r in (self.rows if rows is None else rows)],
        )

    # --------------------------------------------------------
    # Constructors / interop
    # --------------------------------------------------------

    @classmethod
    def from_records(
        cls, records: Sequence[Dict[str, Any]], columns: Optional[List[str]] = None
    ) -> "RawDataset":
        """
        Build a dataset from a list of dict records.

        Column order follows ``columns`` or first appearance across records.
        Numeric strings in a numeric column are converted to float.
        """
        if columns is None:
            columns = []
            for rec in records:
                for key in rec:
                    if key not in columns:
                        columns.append(key)

        rows = [[rec.get(c) for c in columns] for rec in records]
        types = [infer_column_type([r[j] for r in rows]) for j in range(len(columns))]

        for j, ctype in enumerate(types):
            if ctype is ColumnType.NUMERIC:
                for r in rows:
                    if isinstance(r[j], str):
                        r[j] = float(r[j])

        return cls(columns=list(columns), types=types, rows=rows).check_shape()

    @classmethod
    def from_frame(
        cls, df: pd.DataFrame, types: Optional[List[ColumnType]] = None
    ) -> "RawDataset":
        """Convert a pandas DataFrame; NaN/NaT cells become None."""
        columns = [str(c) for c in df.columns]
        if types is None:
            types = [_dtype_to_column_type(df[c]) for c in df.columns]
        obj = df.astype(object).where(pd.notna(df), None)
        rows = obj.values.tolist()
        return cls(columns=columns, types=list(types), rows=rows).check_shape()

    @classmethod
    def read_csv(cls, path: str | Path, **kwargs: Any) -> "RawDataset":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Dataset path does not exist: {path}")
        df = pd.read_csv(path, na_values=["null", "NULL"], **kwargs)
        return cls.from_frame(df)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns, dtype=object)


# ============================================================
# Recipe: steps + fitted statistics
# ============================================================

StepType = Literal[
    "handle_missing",
    "outlier_removal",
    "normalize",
    "scale",
    "encode",
    "feature_engineering",
    "split_data",
]


class FittedStatistic(BaseModel):
    """Per-column values fitted when a step is applied; reused on replay."""

    model_config = ConfigDict(extra="forbid")

    strategy: Optional[str] = None
    fill_value: Any = None
    missing_count: Optional[int] = None
    mean: Optional[float] = None
    std: Optional[float] = None
    median: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    q1: Optional[float] = None
    q3: Optional[float] = None
    lower_bound: Optional[float] = None
    upper_bound: Optional[float] = None
    outliers_removed: Optional[int] = None
    method: Optional[str] = None
    categories: Optional[List[Any]] = None
    encodings: Optional[List[float]] = None


class PreprocessingStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: StepType
    parameters: Dict[str, Any] = Field(default_factory=dict)
    order: int
    applied_at: datetime
    statistics: Dict[str, FittedStatistic] = Field(default_factory=dict)


class Recipe(BaseModel):
    """
    Ordered, replayable sequence of preprocessing steps.

    Frozen: a recipe captured at training time cannot be modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    steps: Tuple[PreprocessingStep, ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def statistics(self) -> Dict[str, Dict[str, Any]]:
        """Per-column statistics merged across steps (later steps win on key clashes)."""
        merged: Dict[str, Dict[str, Any]] = {}
        for step in self.steps:
            for col, stat in step.statistics.items():
                merged.setdefault(col, {}).update(stat.model_dump(exclude_none=True))
        return merged


# ============================================================
# ML-ready arrays
# ============================================================


@dataclass
class ProcessedData:
    """Numeric training buffers plus the shape/recipe metadata that produced them."""

    features: np.ndarray
    labels: np.ndarray
    feature_names: List[str]
    label_name: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_samples(self) -> int:
        return int(self.features.shape[0])

    @property
    def n_features(self) -> int:
        return len(self.feature_names)
