import numpy as np
import pytest
import torch

from mlstudio_engine.errors import ReconstructionError
from mlstudio_engine.models.losses import (
    accuracy,
    binary_crossentropy,
    categorical_crossentropy,
    get_loss,
    get_metric,
    hinge,
    mean_absolute_error,
    mean_squared_error,
)


def t(values):
    return torch.tensor(values, dtype=torch.float32)


def test_mse_and_mae():
    pred, target = t([1.0, 2.0, 4.0]), t([1.0, 3.0, 2.0])
    assert np.isclose(float(mean_squared_error(pred, target)), 5.0 / 3.0)
    assert np.isclose(float(mean_absolute_error(pred, target)), 1.0)


def test_binary_crossentropy_is_clamped():
    loss = binary_crossentropy(t([1.0, 0.0]), t([0.0, 1.0]))
    assert torch.isfinite(loss)
    assert np.isclose(float(binary_crossentropy(t([0.5]), t([1.0]))), np.log(2.0), atol=1e-6)


def test_categorical_crossentropy_picks_target_class():
    probs = t([[0.7, 0.2, 0.1], [0.1, 0.1, 0.8]])
    loss = categorical_crossentropy(probs, t([0, 2]))
    assert np.isclose(float(loss), -(np.log(0.7) + np.log(0.8)) / 2, atol=1e-6)


def test_hinge_maps_zero_one_labels_to_signs():
    assert float(hinge(t([1.0, -1.0]), t([1.0, 0.0]))) == 0.0
    assert np.isclose(float(hinge(t([0.0]), t([1.0]))), 1.0)
    assert np.isclose(float(hinge(t([0.5]), t([0.0]))), 1.5)


def test_accuracy_binary_and_multiclass():
    assert np.isclose(float(accuracy(t([0.9, 0.2, 0.6]), t([1.0, 0.0, 0.0]))), 2.0 / 3.0)
    probs = t([[0.1, 0.9], [0.8, 0.2]])
    assert float(accuracy(probs, t([1, 1]))) == 0.5


def test_unknown_names_raise():
    with pytest.raises(ReconstructionError):
        get_loss("huber")
    with pytest.raises(ReconstructionError):
        get_metric("auc")
