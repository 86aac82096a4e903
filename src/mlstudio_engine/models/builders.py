# src/mlstudio_engine/models/builders.py
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from mlstudio_engine.errors import DataShapeError
from mlstudio_engine.models.architecture import ArchitectureBuilder, ModelArchitecture, Shape
from mlstudio_engine.models.families import ModelFamily
from mlstudio_engine.models.hyperparameters import Hyperparameters

LOGGER = logging.getLogger(__name__)


class FamilyBuilder(ABC):
    """
    Strategy object turning hyperparameters and an input shape into layers.

    Subclasses set ``family``, the loss/metric pairing and implement
    ``add_layers``, which returns the output activation.
    """

    family: ModelFamily
    loss: str = "mse"
    metrics: Tuple[str, ...] = ("mae",)

    def input_shape(self, hp: Hyperparameters, input_shape: Shape) -> Shape:
        shape = tuple(input_shape)
        if len(shape) != 1:
            raise DataShapeError(
                f"{self.family.value} expects flat feature rows, got input shape {shape}"
            )
        return shape

    @abstractmethod
    def add_layers(self, b: ArchitectureBuilder, hp: Hyperparameters) -> str:
        ...

    def loss_for(self, hp: Hyperparameters) -> str:
        return self.loss

    def start(self, hp: Hyperparameters, input_shape: Shape) -> ArchitectureBuilder:
        return ArchitectureBuilder(self.input_shape(hp, input_shape))

    def build(self, hp: Hyperparameters, input_shape: Shape) -> ModelArchitecture:
        b = self.start(hp, input_shape)
        activation = self.add_layers(b, hp)
        arch = b.build(self.family, activation, self.loss_for(hp), list(self.metrics))
        LOGGER.debug("Built architecture\n%s", arch.summary())
        return arch


# ===============================================================
# Regression families
# ===============================================================


class LinearBuilder(FamilyBuilder):
    """Single dense unit, no activation."""

    family = ModelFamily.LINEAR

    def add_layers(self, b, hp):
        b.dense(1)
        return "linear"


class FeedForwardBuilder(FamilyBuilder):
    """Dense hidden stack from ``hidden_layers`` with dropout after each, linear output."""

    family = ModelFamily.FEED_FORWARD

    def add_layers(self, b, hp):
        widths = hp.hidden_layers or [64, 32]
        rate = 0.2 if hp.dropout is None else hp.dropout
        for width in widths:
            b.dense(width, hp.activation)
            b.dropout(rate)
        b.dense(1)
        return "linear"


class EnsembleApproximationBuilder(FamilyBuilder):
    """
    Neural stand-in for a random forest.

    ``min(n_estimators, 10)`` relu layers of width ``min(max_depth, 32)``.
    There are no trees, bagging or feature subsampling here.
    """

    family = ModelFamily.ENSEMBLE

    def add_layers(self, b, hp):
        depth = hp.max_depth or 10
        for _ in range(min(hp.n_estimators, 10)):
            b.dense(min(depth, 32), "relu")
        b.dense(1)
        return "linear"


class BoostingApproximationBuilder(FamilyBuilder):
    """
    Neural stand-in for gradient boosting.

    ``min(n_estimators, 5)`` relu layers of width ``min(4 * max_depth, 64)``;
    each layer is trained jointly, not fitted to residuals of the previous one.
    """

    family = ModelFamily.BOOSTING

    def add_layers(self, b, hp):
        depth = hp.max_depth or 6
        for _ in range(min(hp.n_estimators, 5)):
            b.dense(min(depth * 4, 64), "relu")
            if hp.dropout:
                b.dropout(0.1)
        b.dense(1)
        return "linear"


class SequenceBuilder(FamilyBuilder):
    """One LSTM layer over ``sequence_length`` steps, then a dense output."""

    family = ModelFamily.SEQUENCE

    def input_shape(self, hp, input_shape):
        shape = tuple(input_shape)
        if len(shape) == 1:
            return (hp.sequence_length, shape[0])
        if len(shape) == 2:
            return shape
        raise DataShapeError(f"lstm expects (steps, features), got input shape {shape}")

    def add_layers(self, b, hp):
        rate = 0.2 if hp.dropout is None else hp.dropout
        b.lstm(hp.units, dropout=rate)
        b.dense(1)
        return "linear"


# ===============================================================
# Classification families
# ===============================================================


class LogisticBuilder(FamilyBuilder):
    family = ModelFamily.LOGISTIC
    loss = "binary_crossentropy"
    metrics = ("accuracy",)

    def add_layers(self, b, hp):
        b.dense(1, "sigmoid")
        return "sigmoid"


class MarginApproximationBuilder(FamilyBuilder):
    """
    Neural stand-in for a support vector machine: 64 -> 32 relu -> 1, hinge loss.

    No kernel trick and no support vectors; labels {0, 1} are mapped to
    {-1, 1} inside the loss.
    """

    family = ModelFamily.MARGIN
    loss = "hinge"
    metrics = ("accuracy",)

    def add_layers(self, b, hp):
        b.dense(64, "relu")
        b.dense(32, "relu")
        b.dense(1)
        return "linear"


class ClusteringApproximationBuilder(FamilyBuilder):
    """
    Soft-assignment stand-in for k-means.

    A relu encoder feeds a softmax over ``n_clusters``; it is trained against
    the given labels as cluster ids and keeps no centroids.
    """

    family = ModelFamily.CLUSTERING
    loss = "categorical_crossentropy"
    metrics = ("accuracy",)

    def add_layers(self, b, hp):
        b.dense(32, "relu")
        b.dense(hp.n_clusters, "softmax")
        return "softmax"


class ImageBuilder(FamilyBuilder):
    """Shared input handling and classifier head for the image families."""

    metrics = ("accuracy",)
    default_image_shape: Tuple[int, int, int] = (1, 28, 28)
    default_dense_units: int = 128

    def image_shape(self, hp: Hyperparameters, input_shape: Shape) -> Tuple[int, int, int]:
        shape = tuple(input_shape)
        if len(shape) == 3:
            return shape  # type: ignore[return-value]
        image = tuple(hp.image_shape or self.default_image_shape)
        if len(shape) != 1 or shape[0] != math.prod(image):
            raise DataShapeError(
                f"{self.family.value} input shape {shape} does not match image shape {image}"
            )
        return image  # type: ignore[return-value]

    def start(self, hp, input_shape):
        # images arrive as flat rows and are reshaped channels-first
        image = self.image_shape(hp, input_shape)
        b = ArchitectureBuilder((math.prod(image),))
        b.reshape(image)
        return b

    def loss_for(self, hp):
        return "binary_crossentropy" if hp.num_classes <= 2 else "categorical_crossentropy"

    def head(self, b: ArchitectureBuilder, hp: Hyperparameters) -> str:
        b.dense(hp.dense_units or self.default_dense_units, "relu")
        b.dropout(hp.dropout)
        if hp.num_classes <= 2:
            b.dense(1, "sigmoid")
            return "sigmoid"
        b.dense(hp.num_classes, "softmax")
        return "softmax"


class ConvolutionalBuilder(ImageBuilder):
    """Two or three conv + 2x2 max-pool blocks, flatten, dense head."""

    family = ModelFamily.CONVOLUTIONAL

    def filters(self, hp: Hyperparameters) -> List[int]:
        first = hp.filters1 or 32
        second = hp.filters2 or 64
        third = 128 if not hp.field_was_set("filters3") else hp.filters3
        return [f for f in (first, second, third) if f]

    def add_layers(self, b, hp):
        for filters in self.filters(hp):
            b.conv2d(filters, hp.kernel_size)
            b.max_pool2d(2)
        b.flatten()
        return self.head(b, hp)


class ResidualBuilder(ImageBuilder):
    """
    Simplified residual network.

    7x7 stride-2 conv, 3x3 stride-2 pool, then two pairs of 3x3 convs. The
    pairs have no skip connection; they are plain stacked convolutions.
    """

    family = ModelFamily.RESIDUAL
    default_image_shape = (1, 224, 224)
    default_dense_units = 256

    def add_layers(self, b, hp):
        first = hp.filters1 or 64
        second = hp.filters2 or 128
        b.conv2d(first, 7, stride=2)
        b.max_pool2d(3, stride=2, same=True)
        for _ in range(2):
            b.conv2d(second, 3)
            b.conv2d(second, 3)
        b.global_avg_pool2d()
        return self.head(b, hp)


DEFAULT_BUILDERS: Sequence[FamilyBuilder] = (
    LinearBuilder(),
    FeedForwardBuilder(),
    LogisticBuilder(),
    EnsembleApproximationBuilder(),
    BoostingApproximationBuilder(),
    MarginApproximationBuilder(),
    ClusteringApproximationBuilder(),
    SequenceBuilder(),
    ConvolutionalBuilder(),
    ResidualBuilder(),
)
