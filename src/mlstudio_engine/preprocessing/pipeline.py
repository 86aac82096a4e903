# src/mlstudio_engine/preprocessing/pipeline.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

from mlstudio_engine.data.schemas import RawDataset
from mlstudio_engine.preprocessing.preprocessor import DataPreprocessor


def run_steps(
    preprocessor: DataPreprocessor,
    data: RawDataset,
    steps: Iterable[Mapping[str, Any]],
) -> RawDataset:
    """
    Apply step configurations (as stored in a saved pipeline) in order.

    Each mapping carries a ``type`` plus the keyword arguments of the
    corresponding DataPreprocessor method, e.g.
    ``{"type": "scale", "columns": ["x"]}``.
    """
    for raw in steps:
        spec: Dict[str, Any] = dict(raw)
        step_type = spec.pop("type", None)

        if step_type == "handle_missing":
            data = preprocessor.handle_missing_values(
                data, strategy=spec.get("strategy", "mean"), columns=spec.get("columns")
            )
        elif step_type == "outlier_removal":
            data = preprocessor.remove_outliers(
                data, spec.get("columns", []), factor=spec.get("factor", 1.5)
            )
        elif step_type == "normalize":
            data = preprocessor.normalize(
                data, spec.get("columns", []), method=spec.get("method", "z-score")
            )
        elif step_type == "scale":
            data = preprocessor.scale(data, spec.get("columns", []))
        elif step_type == "encode":
            data = preprocessor.encode_categorical(
                data,
                spec.get("columns", []),
                method=spec.get("method", "one-hot"),
                target_column=spec.get("target_column"),
            )
        elif step_type == "feature_engineering":
            data = preprocessor.feature_engineering(data, spec.get("operations", []))
        else:
            raise ValueError(f"Unsupported preprocessing step type: {step_type}")
    return data
