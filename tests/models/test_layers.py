import numpy as np
import pytest
import torch

from mlstudio_engine.errors import DataShapeError, ReconstructionError
from mlstudio_engine.models import LayerSpec, Model, build_architecture, build_layer, build_network


@pytest.mark.parametrize(
    "family,shape,params",
    [
        ("linear_regression", 3, {}),
        ("neural_network", 3, {}),
        ("random_forest", 3, {"n_estimators": 3}),
        ("xgboost", 3, {"n_estimators": 2}),
        ("svm", 3, {}),
        ("kmeans", 3, {"n_clusters": 4}),
        ("lstm", 3, {"sequence_length": 4}),
        ("cnn", 784, {}),
        ("cnn", 64, {"image_shape": (1, 8, 8), "num_classes": 3}),
        ("resnet", 1024, {"image_shape": (1, 32, 32)}),
    ],
)
def test_network_output_matches_declared_shapes(family, shape, params):
    arch = build_architecture(family, shape, params)
    network = build_network(arch.layers).eval()
    with torch.no_grad():
        out = network(torch.zeros(2, *arch.input_shape))
    assert tuple(out.shape) == (2, *arch.output_shape)


def test_module_names_follow_layer_names():
    arch = build_architecture("neural_network", 3)
    network = build_network(arch.layers)
    assert list(dict(network.named_children())) == [l.name for l in arch.layers]
    assert "dense_0.linear.weight" in network.state_dict()


def test_dense_bias_starts_at_zero():
    arch = build_architecture("svm", 4)
    network = build_network(arch.layers)
    assert torch.count_nonzero(network[0].linear.bias) == 0


def test_unknown_layer_kind_cannot_be_built():
    spec = LayerSpec(name="attention_0", kind="attention", input_shape=(4,), output_shape=(4,))
    with pytest.raises(ReconstructionError):
        build_layer(spec)


def test_unknown_activation_cannot_be_built():
    spec = LayerSpec(
        name="dense_0",
        kind="dense",
        input_shape=(4,),
        output_shape=(2,),
        config={"units": 2, "activation": "swish"},
    )
    with pytest.raises(ReconstructionError):
        build_layer(spec)


def test_seeded_models_have_identical_parameters():
    a = Model.build("neural_network", 5, {"seed": 7})
    b = Model.build("neural_network", 5, {"seed": 7})
    for (name, pa), (_, pb) in zip(a.network.state_dict().items(), b.network.state_dict().items()):
        assert torch.equal(pa, pb), name


def test_model_properties():
    model = Model.build("kmeans", 3, {"n_clusters": 4})
    assert model.is_multi_output and model.is_classifier
    assert model.input_shape == (3,)
    assert model.parameter_count() == (3 * 32 + 32) + (32 * 4 + 4)
    assert not model.trained


def test_as_batch_adds_batch_dimension_and_checks_width():
    model = Model.build("linear_regression", 2)
    assert model.as_batch([1.0, 2.0]).shape == (1, 2)
    assert model.as_batch(np.ones((5, 2))).shape == (5, 2)

    with pytest.raises(DataShapeError):
        model.as_batch(np.ones((5, 3)))
    with pytest.raises(DataShapeError):
        model.as_batch([[1.0, float("nan")]])
    with pytest.raises(DataShapeError):
        model.as_batch([["a", "b"]])


def test_image_models_accept_channels_first_batches():
    model = Model.build("cnn", 64, {"image_shape": (1, 8, 8)})
    assert model.as_batch(np.zeros((3, 1, 8, 8))).shape == (3, 64)
