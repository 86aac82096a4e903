"""Data preprocessing: transforms, recipe replay, splits and ML-format conversion."""
from mlstudio_engine.preprocessing.formats import (
    dataset_features,
    images_to_features,
    images_to_processed,
    prepare_records,
    to_sequences,
)
from mlstudio_engine.preprocessing.pipeline import run_steps
from mlstudio_engine.preprocessing.preprocessor import DataPreprocessor
from mlstudio_engine.preprocessing.recipe import apply_recipe
from mlstudio_engine.preprocessing.splits import (
    DataSplit,
    Partition,
    Partitions,
    split_arrays,
    split_sizes,
)

__all__ = [
    "DataPreprocessor",
    "DataSplit",
    "Partition",
    "Partitions",
    "apply_recipe",
    "dataset_features",
    "images_to_features",
    "images_to_processed",
    "prepare_records",
    "run_steps",
    "split_arrays",
    "split_sizes",
    "to_sequences",
]
