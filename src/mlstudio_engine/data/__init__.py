"""Dataset, recipe and ML-buffer schemas."""
from mlstudio_engine.data.schemas import (
    ColumnType,
    FittedStatistic,
    PreprocessingStep,
    ProcessedData,
    RawDataset,
    Recipe,
    infer_column_type,
    is_missing,
)

__all__ = [
    "ColumnType",
    "FittedStatistic",
    "PreprocessingStep",
    "ProcessedData",
    "RawDataset",
    "Recipe",
    "infer_column_type",
    "is_missing",
]
