# src/mlstudio_engine/preprocessing/formats.py
from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple

import numpy as np

from mlstudio_engine.data.schemas import ProcessedData, RawDataset, is_missing
from mlstudio_engine.errors import DataShapeError
from mlstudio_engine.preprocessing.transforms import to_float


def prepare_records(
    records: Sequence[Dict[str, Any]],
    feature_columns: Sequence[str],
    label_column: str,
) -> ProcessedData:
    """
    Strict conversion of dict records to float32 buffers.

    Unlike the preprocessor, every named column must be present in every
    record and hold a number.
    """
    if not records:
        raise DataShapeError("No data provided for training")
    if not feature_columns:
        raise DataShapeError("No feature columns specified")

    n, f = len(records), len(feature_columns)
    features = np.empty((n, f), dtype=np.float32)
    labels = np.empty(n, dtype=np.float32)
    for i, rec in enumerate(records):
        for j, col in enumerate(feature_columns):
            features[i, j] = _cell(rec, col, i)
        labels[i] = _cell(rec, label_column, i)

    return ProcessedData(
        features=features,
        labels=labels,
        feature_names=list(feature_columns),
        label_name=label_column,
        metadata={"original_shape": [n, f], "processed_shape": [n, f]},
    )


def dataset_features(data: RawDataset, feature_columns: Sequence[str]) -> np.ndarray:
    """
    Strict ``(n, f)`` float32 matrix of the named columns, in that order.

    Used at inference time, so every column must exist.
    """
    data.check_shape()
    indices = []
    for col in feature_columns:
        idx = data.column_index(col)
        if idx is None:
            raise DataShapeError("Feature column not found", column=col)
        indices.append(idx)

    out = np.empty((data.n_rows, len(indices)), dtype=np.float32)
    for i, row in enumerate(data.rows):
        for j, (col, idx) in enumerate(zip(feature_columns, indices)):
            value = row[idx]
            if is_missing(value):
                raise DataShapeError(
                    "Missing value where a number is required", column=col, row=i
                )
            out[i, j] = to_float(value, col, i)
    return out


def _cell(record: Dict[str, Any], column: str, row: int) -> float:
    value = record.get(column)
    if is_missing(value):
        raise DataShapeError("Missing value where a number is required", column=column, row=row)
    return to_float(value, column, row)


def images_to_features(
    images: Sequence[Sequence[float]], image_shape: Tuple[int, int, int]
) -> np.ndarray:
    """
    Flatten images into an ``(n, C*H*W)`` float32 matrix.

    ``image_shape`` is channels-first. Each image is truncated or zero-padded
    to exactly ``C*H*W`` values.
    """
    size = int(np.prod(image_shape))
    out = np.zeros((len(images), size), dtype=np.float32)
    for i, img in enumerate(images):
        flat = np.asarray(img, dtype=np.float32).ravel()[:size]
        out[i, : flat.size] = flat
    return out


def images_to_processed(
    images: Sequence[Sequence[float]],
    labels: Sequence[float],
    image_shape: Tuple[int, int, int],
    label_name: str = "label",
) -> ProcessedData:
    if len(images) != len(labels):
        raise DataShapeError(f"{len(images)} images but {len(labels)} labels")
    features = images_to_features(images, image_shape)
    names = [f"pixel_{i}" for i in range(features.shape[1])]
    return ProcessedData(
        features=features,
        labels=np.asarray(labels, dtype=np.float32),
        feature_names=names,
        label_name=label_name,
        metadata={"image_shape": list(image_shape)},
    )


def to_sequences(
    features: np.ndarray, labels: np.ndarray, length: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sliding windows for recurrent models.

    Window ``i`` covers rows ``i .. i+length-1`` and is labelled with the label
    of its last row. Returns ``(n - length + 1, length, f)`` features.
    """
    features = np.asarray(features, dtype=np.float32)
    labels = np.asarray(labels, dtype=np.float32)
    if features.ndim != 2:
        raise DataShapeError(f"Expected 2-D features, got shape {features.shape}")
    if length < 1:
        raise ValueError("sequence length must be >= 1")

    n_windows = features.shape[0] - length + 1
    if n_windows <= 0:
        return (
            np.empty((0, length, features.shape[1]), dtype=np.float32),
            np.empty((0,), dtype=np.float32),
        )
    windows = np.stack([features[i : i + length] for i in range(n_windows)])
    return windows, labels[length - 1 :]
