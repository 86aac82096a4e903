# src/mlstudio_engine/preprocessing/splits.py
"""Sequential (non-shuffled) train/validation/test partitioning."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from mlstudio_engine.data.schemas import RawDataset
from mlstudio_engine.errors import DataShapeError


def split_sizes(total: int, test_size: float, validation_size: float) -> Tuple[int, int, int]:
    """
    Absolute (train, validation, test) row counts.

    ``test = floor(total * test_size)``, ``validation = floor(total *
    validation_size)`` and train takes the remainder, so the three always sum
    to ``total``.
    """
    for label, ratio in (("test_size", test_size), ("validation_size", validation_size)):
        if not (0.0 <= ratio <= 1.0):
            raise ValueError(f"{label} must be in [0, 1], got {ratio}")
    if test_size + validation_size > 1.0:
        raise ValueError("test_size + validation_size must not exceed 1")

    n_test = int(math.floor(total * test_size))
    n_val = int(math.floor(total * validation_size))
    return total - n_test - n_val, n_val, n_test


@dataclass(frozen=True)
class DataSplit:
    train: RawDataset
    validation: RawDataset
    test: RawDataset


@dataclass
class Partition:
    """Feature/label buffers of one train, validation or test subset."""

    features: np.ndarray
    labels: np.ndarray

    def __post_init__(self) -> None:
        if self.features.shape[0] != self.labels.shape[0]:
            raise DataShapeError(
                f"{self.features.shape[0]} feature rows but {self.labels.shape[0]} labels"
            )

    @property
    def row_count(self) -> int:
        return int(self.features.shape[0])

    def __len__(self) -> int:
        return self.row_count


@dataclass
class Partitions:
    train: Partition
    validation: Partition
    test: Partition

    @property
    def total(self) -> int:
        return self.train.row_count + self.validation.row_count + self.test.row_count


def split_arrays(
    features: np.ndarray,
    labels: np.ndarray,
    test_size: float = 0.2,
    validation_size: float = 0.2,
) -> Partitions:
    """Slice feature/label arrays into Partitions, train rows first."""
    features = np.asarray(features)
    labels = np.asarray(labels)
    if features.shape[0] != labels.shape[0]:
        raise DataShapeError(
            f"{features.shape[0]} feature rows but {labels.shape[0]} labels"
        )
    n_train, n_val, _ = split_sizes(features.shape[0], test_size, validation_size)
    a, b = n_train, n_train + n_val
    return Partitions(
        train=Partition(features[:a], labels[:a]),
        validation=Partition(features[a:b], labels[a:b]),
        test=Partition(features[b:], labels[b:]),
    )
