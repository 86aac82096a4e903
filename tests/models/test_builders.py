import pytest

from mlstudio_engine.errors import DataShapeError, UnsupportedFamilyError
from mlstudio_engine.models import build_architecture

TABULAR = [
    "linear_regression",
    "neural_network",
    "logistic_regression",
    "random_forest",
    "xgboost",
    "svm",
    "kmeans",
    "lstm",
]


def _kinds(arch):
    return [layer.kind for layer in arch.layers]


@pytest.mark.parametrize("family", TABULAR)
def test_first_layer_width_matches_feature_count(family):
    arch = build_architecture(family, 7)
    assert arch.layers[0].input_width == 7


@pytest.mark.parametrize("family", TABULAR + ["cnn", "resnet"])
def test_build_is_deterministic(family):
    params = {"image_shape": (1, 16, 16)}
    shape = 256 if family in ("cnn", "resnet") else 4
    a = build_architecture(family, shape, params)
    b = build_architecture(family, shape, params)
    assert a.model_dump() == b.model_dump()


def test_linear_is_single_unit():
    arch = build_architecture("linear_regression", (3,))
    assert _kinds(arch) == ["dense"]
    assert arch.layers[0].config == {"units": 1, "activation": "linear"}
    assert arch.loss == "mse"
    assert arch.output_units == 1


def test_feed_forward_defaults_and_camel_case_keys():
    arch = build_architecture("neural_network", 5)
    assert _kinds(arch) == ["dense", "dropout", "dense", "dropout", "dense"]
    assert [l.output_shape for l in arch.layers if l.kind == "dense"] == [(64,), (32,), (1,)]

    arch = build_architecture("neural_network", 5, {"hiddenLayers": [16], "dropout": 0})
    assert _kinds(arch) == ["dense", "dense"]
    assert arch.layers[0].output_shape == (16,)


def test_random_forest_approximation_is_capped():
    arch = build_architecture("random_forest", 4, {"n_estimators": 100, "max_depth": 50})
    hidden = arch.layers[:-1]
    assert len(hidden) == 10
    assert all(l.output_shape == (32,) and l.config["activation"] == "relu" for l in hidden)

    arch = build_architecture("random_forest", 4, {"n_estimators": 3, "max_depth": 5})
    assert [l.output_shape for l in arch.layers] == [(5,), (5,), (5,), (1,)]


def test_xgboost_approximation_is_capped():
    arch = build_architecture("xgboost", 4, {"n_estimators": 50})
    assert [l.output_shape for l in arch.layers] == [(24,)] * 5 + [(1,)]

    arch = build_architecture("xgboost", 4, {"n_estimators": 2, "max_depth": 20, "dropout": 0.3})
    assert _kinds(arch) == ["dense", "dropout", "dense", "dropout", "dense"]
    assert arch.layers[0].output_shape == (64,)
    assert arch.layers[1].config["rate"] == 0.1


def test_svm_uses_hinge_loss():
    arch = build_architecture("svm", 3)
    assert [l.output_shape for l in arch.layers] == [(64,), (32,), (1,)]
    assert arch.loss == "hinge"
    assert arch.metrics == ["accuracy"]


def test_kmeans_softmax_over_clusters():
    arch = build_architecture("kmeans", 3, {"n_clusters": 4})
    assert arch.output_units == 4
    assert arch.output_activation == "softmax"
    assert arch.loss == "categorical_crossentropy"


def test_logistic_sigmoid_output():
    arch = build_architecture("logistic_regression", 3)
    assert arch.output_activation == "sigmoid"
    assert arch.loss == "binary_crossentropy"


def test_lstm_windows_flat_input():
    arch = build_architecture("lstm", 3)
    assert arch.input_shape == (10, 3)
    assert _kinds(arch) == ["lstm", "dense"]
    assert arch.layers[0].output_shape == (50,)

    arch = build_architecture("lstm", (5, 2), {"units": 8})
    assert arch.input_shape == (5, 2)
    assert arch.layers[0].output_shape == (8,)


def test_cnn_default_shapes():
    arch = build_architecture("cnn", 784)
    shapes = [(l.kind, l.output_shape) for l in arch.layers]
    assert shapes == [
        ("reshape", (1, 28, 28)),
        ("conv2d", (32, 28, 28)),
        ("max_pool2d", (32, 14, 14)),
        ("conv2d", (64, 14, 14)),
        ("max_pool2d", (64, 7, 7)),
        ("conv2d", (128, 7, 7)),
        ("max_pool2d", (128, 3, 3)),
        ("flatten", (1152,)),
        ("dense", (128,)),
        ("dense", (1,)),
    ]
    assert arch.loss == "binary_crossentropy"


def test_cnn_third_block_can_be_disabled():
    arch = build_architecture("cnn", 784, {"filters3": 0})
    assert _kinds(arch).count("conv2d") == 2
    flatten = next(l for l in arch.layers if l.kind == "flatten")
    assert flatten.output_shape == (64 * 7 * 7,)


def test_cnn_multiclass_head():
    arch = build_architecture("cnn", 784, {"numClasses": 10, "dropout": 0.5})
    assert arch.output_units == 10
    assert arch.loss == "categorical_crossentropy"
    assert _kinds(arch)[-3:] == ["dense", "dropout", "dense"]


def test_cnn_rejects_mismatched_flat_input():
    with pytest.raises(DataShapeError):
        build_architecture("cnn", 100)


def test_resnet_shapes_on_small_image():
    arch = build_architecture("resnet", 1024, {"image_shape": (1, 32, 32)})
    shapes = [(l.kind, l.output_shape) for l in arch.layers]
    assert shapes == [
        ("reshape", (1, 32, 32)),
        ("conv2d", (64, 16, 16)),
        ("max_pool2d", (64, 8, 8)),
        ("conv2d", (128, 8, 8)),
        ("conv2d", (128, 8, 8)),
        ("conv2d", (128, 8, 8)),
        ("conv2d", (128, 8, 8)),
        ("global_avg_pool2d", (128,)),
        ("dense", (256,)),
        ("dense", (1,)),
    ]


def test_unknown_family_raises():
    with pytest.raises(UnsupportedFamilyError):
        build_architecture("naive_bayes", 3)


def test_invalid_input_shape_raises():
    with pytest.raises(DataShapeError):
        build_architecture("linear_regression", 0)
    with pytest.raises(DataShapeError):
        build_architecture("linear_regression", (2, 3))
