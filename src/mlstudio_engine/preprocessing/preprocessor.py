# src/mlstudio_engine/preprocessing/preprocessor.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence, get_args

import numpy as np

from mlstudio_engine.data.schemas import (
    FittedStatistic,
    PreprocessingStep,
    ProcessedData,
    RawDataset,
    Recipe,
    StepType,
    is_missing,
)
from mlstudio_engine.errors import DataShapeError
from mlstudio_engine.preprocessing import transforms as T
from mlstudio_engine.preprocessing.splits import DataSplit, split_sizes

LOGGER = logging.getLogger(__name__)

MissingStrategy = Literal[
    "mean", "median", "mode", "drop", "drop_columns", "forward_fill", "backward_fill"
]
NormalizeMethod = Literal["z-score", "robust"]
EncodingMethod = Literal["one-hot", "label", "target"]


class DataPreprocessor:
    """
    Stateful recorder around the tabular transforms.

    Every public transform returns a new RawDataset and appends one
    PreprocessingStep (with its fitted statistics) to the recipe. Unknown
    column names are skipped with a warning; bad cells raise DataShapeError.
    """

    def __init__(self) -> None:
        self._steps: List[PreprocessingStep] = []

    # --------------------------------------------------------
    # Recipe bookkeeping
    # --------------------------------------------------------

    @property
    def steps(self) -> List[PreprocessingStep]:
        return list(self._steps)

    @property
    def statistics(self) -> Dict[str, Dict[str, Any]]:
        return self.recipe().statistics

    def recipe(self) -> Recipe:
        """Frozen snapshot of the steps applied so far."""
        return Recipe(steps=tuple(s.model_copy(deep=True) for s in self._steps))

    def reset(self) -> None:
        self._steps = []

    def _add_step(
        self,
        step_type: StepType,
        parameters: Dict[str, Any],
        statistics: Optional[Dict[str, FittedStatistic]] = None,
    ) -> PreprocessingStep:
        step = PreprocessingStep(
            id=f"step_{uuid.uuid4().hex[:12]}",
            type=step_type,
            parameters=parameters,
            order=len(self._steps),
            applied_at=datetime.now(timezone.utc),
            statistics=statistics or {},
        )
        self._steps.append(step)
        LOGGER.info("Applied %s step #%d %s", step_type, step.order, parameters)
        return step

    # --------------------------------------------------------
    # Transforms
    # --------------------------------------------------------

    def handle_missing_values(
        self,
        data: RawDataset,
        strategy: MissingStrategy = "mean",
        columns: Optional[Sequence[str]] = None,
    ) -> RawDataset:
        """
        Fill, propagate or drop missing cells, column by column.

        ``mean``/``median``/``mode`` fill with a fitted value; non-numeric
        columns fall back to their most frequent value for ``mean`` and
        ``median``. ``forward_fill``/``backward_fill`` carry neighbouring
        values in row order. ``drop`` removes rows and ``drop_columns``
        removes columns that have any missing cell. Drops are sequential, so
        a later column only sees rows kept by earlier ones.
        """
        if strategy not in get_args(MissingStrategy):
            raise ValueError(f"Unknown missing-value strategy: {strategy}")
        data.check_shape()

        out = data.copy_with()
        stats: Dict[str, FittedStatistic] = {}
        for name, _ in T.resolve_columns(data, columns, "handle_missing"):
            # drop_columns shifts positions, so look up on `out`
            idx = out.column_index(name)
            stat = T.fit_fill(out, idx, strategy)
            if stat is None:
                continue
            out = T.apply_fill(out, idx, stat)
            stats[name] = stat

        params: Dict[str, Any] = {"strategy": strategy}
        if columns is not None:
            params["columns"] = list(columns)
        self._add_step("handle_missing", params, stats)
        return out

    def remove_outliers(
        self, data: RawDataset, columns: Sequence[str], factor: float = 1.5
    ) -> RawDataset:
        """
        Drop rows outside ``[q1 - factor*iqr, q3 + factor*iqr]`` per column.

        Filtering is cumulative and order-dependent: each column's quartiles
        are computed on the rows that survived the previous columns.
        """
        data.check_shape()
        out = data.copy_with()
        stats: Dict[str, FittedStatistic] = {}
        for name, idx in T.resolve_columns(data, columns, "remove_outliers"):
            stat = T.fit_iqr(out, idx, factor)
            if stat is None:
                continue
            before = out.n_rows
            out = T.apply_iqr(out, idx, stat)
            stats[name] = stat.model_copy(update={"outliers_removed": before - out.n_rows})

        self._add_step("outlier_removal", {"columns": list(columns), "factor": factor}, stats)
        return out

    def normalize(
        self,
        data: RawDataset,
        columns: Sequence[str],
        method: NormalizeMethod = "z-score",
    ) -> RawDataset:
        """
        Standardize numeric columns.

        ``z-score`` uses the population mean and std; zero-variance columns
        map to 0. ``robust`` centres on the median and divides by the IQR
        (quartiles at ``floor(q * (n - 1))``); a zero IQR only centres.
        """
        if method not in get_args(NormalizeMethod):
            raise ValueError(f"Unknown normalization method: {method}")
        data.check_shape()
        if method == "robust":
            fit, apply = T.fit_robust, T.apply_robust
        else:
            fit, apply = T.fit_zscore, T.apply_zscore
        out = data.copy_with()
        stats: Dict[str, FittedStatistic] = {}
        for name, idx in T.resolve_columns(data, columns, "normalize"):
            stat = fit(out, idx)
            if stat is None:
                continue
            out = apply(out, idx, stat)
            stats[name] = stat

        self._add_step("normalize", {"columns": list(columns), "method": method}, stats)
        return out

    def scale(self, data: RawDataset, columns: Sequence[str]) -> RawDataset:
        """Min-max scale to [0, 1]; constant columns map to 0."""
        data.check_shape()
        out = data.copy_with()
        stats: Dict[str, FittedStatistic] = {}
        for name, idx in T.resolve_columns(data, columns, "scale"):
            stat = T.fit_minmax(out, idx)
            if stat is None:
                continue
            out = T.apply_minmax(out, idx, stat)
            stats[name] = stat

        self._add_step("scale", {"columns": list(columns), "method": "min-max"}, stats)
        return out

    def encode_categorical(
        self,
        data: RawDataset,
        columns: Sequence[str],
        method: EncodingMethod = "one-hot",
        target_column: Optional[str] = None,
    ) -> RawDataset:
        """
        One-hot, label or target encode categorical columns.

        One-hot replaces the column with ``<col>_<value>`` indicators in
        first-seen order, at the original position. Label encoding assigns
        contiguous ids by first occurrence. Target encoding replaces each
        category with the smoothed mean of ``target_column``.
        """
        if method not in get_args(EncodingMethod):
            raise ValueError(f"Unknown encoding method: {method}")
        if method == "target" and target_column is None:
            raise ValueError("Target encoding requires a target_column")
        data.check_shape()
        if method == "target" and data.column_index(target_column) is None:
            raise DataShapeError("Target column not found", column=target_column)

        out = data.copy_with()
        stats: Dict[str, FittedStatistic] = {}
        for name in columns:
            # positions shift after each one-hot expansion, so look up on `out`
            idx = out.column_index(name)
            if idx is None:
                LOGGER.warning("encode_categorical: ignoring unknown column '%s'", name)
                continue
            if method == "target":
                stat = T.fit_target_means(out, idx, out.column_index(target_column))
                out = T.apply_target(out, idx, stat)
            else:
                stat = T.fit_categories(out, idx, method)
                if method == "one-hot":
                    out = T.apply_one_hot(out, idx, stat)
                else:
                    out = T.apply_label(out, idx, stat)
            stats[name] = stat

        params: Dict[str, Any] = {"columns": list(columns), "method": method}
        if target_column is not None:
            params["target_column"] = target_column
        self._add_step("encode", params, stats)
        return out

    def feature_engineering(
        self, data: RawDataset, operations: Sequence[Dict[str, Any]]
    ) -> RawDataset:
        data.check_shape()
        out = data.copy_with()
        for op in operations:
            out = T.apply_feature_operation(out, op)
        self._add_step("feature_engineering", {"operations": [dict(op) for op in operations]})
        return out

    def split_data(
        self,
        data: RawDataset,
        test_size: float = 0.2,
        validation_size: float = 0.2,
        seed: int = 42,
    ) -> DataSplit:
        """
        Sequential three-way split: train first, then validation, then test.

        ``seed`` is recorded for provenance only; rows are never shuffled, so
        repeated calls return identical partitions.
        """
        data.check_shape()
        n_train, n_val, n_test = split_sizes(data.n_rows, test_size, validation_size)

        split = DataSplit(
            train=data.copy_with(rows=data.rows[:n_train]),
            validation=data.copy_with(rows=data.rows[n_train : n_train + n_val]),
            test=data.copy_with(rows=data.rows[n_train + n_val :]),
        )
        self._add_step(
            "split_data",
            {"test_size": test_size, "validation_size": validation_size, "seed": seed},
        )
        return split

    # --------------------------------------------------------
    # Conversion
    # --------------------------------------------------------

    def convert_to_ml_format(
        self,
        data: RawDataset,
        feature_columns: Sequence[str],
        label_column: str,
    ) -> ProcessedData:
        """
        Flatten selected columns into float32 row-major buffers.

        Every selected cell must be numeric; a missing or non-numeric cell
        raises DataShapeError with its column and row.
        """
        data.check_shape()
        features_idx = T.resolve_columns(data, feature_columns, "convert_to_ml_format")
        if not features_idx:
            raise DataShapeError("No usable feature columns")
        label_idx = data.column_index(label_column)
        if label_idx is None:
            raise DataShapeError("Label column not found", column=label_column)

        features = np.empty((data.n_rows, len(features_idx)), dtype=np.float32)
        labels = np.empty(data.n_rows, dtype=np.float32)
        for i, row in enumerate(data.rows):
            for j, (name, idx) in enumerate(features_idx):
                features[i, j] = _required_float(row[idx], name, i)
            labels[i] = _required_float(row[label_idx], label_column, i)

        feature_names = [name for name, _ in features_idx]
        return ProcessedData(
            features=features,
            labels=labels,
            feature_names=feature_names,
            label_name=label_column,
            metadata={
                "original_shape": [data.n_rows, data.n_columns],
                "processed_shape": [data.n_rows, len(feature_names)],
                "recipe": self.recipe(),
                "statistics": self.statistics,
            },
        )


def _required_float(value: Any, column: str, row: int) -> float:
    if is_missing(value):
        raise DataShapeError("Missing value where a number is required", column=column, row=row)
    return T.to_float(value, column, row)
