# src/mlstudio_engine/models/families.py
from __future__ import annotations

from enum import Enum
from typing import Optional

from mlstudio_engine.errors import UnsupportedFamilyError


class ModelFamily(str, Enum):
    """
    Closed set of model families. Values are the ids stored on model records.
    """

    LINEAR = "linear_regression"
    FEED_FORWARD = "neural_network"
    LOGISTIC = "logistic_regression"
    ENSEMBLE = "random_forest"
    BOOSTING = "xgboost"
    MARGIN = "svm"
    CLUSTERING = "kmeans"
    SEQUENCE = "lstm"
    CONVOLUTIONAL = "cnn"
    RESIDUAL = "resnet"

    @property
    def is_classification(self) -> bool:
        return self in _CLASSIFICATION

    @property
    def is_image(self) -> bool:
        return self in (ModelFamily.CONVOLUTIONAL, ModelFamily.RESIDUAL)

    @property
    def supports_feature_importance(self) -> bool:
        return self in (ModelFamily.LINEAR, ModelFamily.FEED_FORWARD)

    @property
    def approximates(self) -> Optional[str]:
        """
        Name of the classical algorithm a family stands in for, if any.

        These families are stacks of neural layers trained by gradient descent;
        they share a name with, but are not implementations of, the algorithm.
        """
        return _APPROXIMATES.get(self)


_CLASSIFICATION = frozenset(
    {
        ModelFamily.LOGISTIC,
        ModelFamily.MARGIN,
        ModelFamily.CLUSTERING,
        ModelFamily.CONVOLUTIONAL,
        ModelFamily.RESIDUAL,
    }
)

_APPROXIMATES = {
    ModelFamily.ENSEMBLE: "random forest (neural approximation, no trees)",
    ModelFamily.BOOSTING: "gradient boosting (neural approximation, no trees)",
    ModelFamily.MARGIN: "support vector machine (neural approximation with hinge loss)",
    ModelFamily.CLUSTERING: "k-means (soft-assignment approximation, no centroids)",
}


def parse_family(value: str | ModelFamily) -> ModelFamily:
    """Resolve a family id (or enum member name) to a ModelFamily."""
    if isinstance(value, ModelFamily):
        return value
    try:
        return ModelFamily(value)
    except ValueError:
        pass
    try:
        return ModelFamily[str(value).upper()]
    except KeyError:
        raise UnsupportedFamilyError(
            f"Unsupported model family '{value}'. "
            f"Available: {[f.value for f in ModelFamily]}"
        ) from None
