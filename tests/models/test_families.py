import pytest

from mlstudio_engine.errors import UnsupportedFamilyError
from mlstudio_engine.models import ModelFamily, parse_family


def test_parse_family_by_id_and_member_name():
    assert parse_family("linear_regression") is ModelFamily.LINEAR
    assert parse_family("xgboost") is ModelFamily.BOOSTING
    assert parse_family("feed_forward") is ModelFamily.FEED_FORWARD
    assert parse_family(ModelFamily.RESIDUAL) is ModelFamily.RESIDUAL


def test_parse_family_rejects_unknown_id():
    with pytest.raises(UnsupportedFamilyError) as excinfo:
        parse_family("gaussian_process")
    assert "gaussian_process" in str(excinfo.value)
    assert "linear_regression" in str(excinfo.value)


def test_unsupported_family_is_a_key_error():
    with pytest.raises(KeyError):
        parse_family("nope")


def test_classification_and_image_flags():
    assert ModelFamily.LOGISTIC.is_classification
    assert ModelFamily.CLUSTERING.is_classification
    assert not ModelFamily.LINEAR.is_classification
    assert ModelFamily.CONVOLUTIONAL.is_image and ModelFamily.RESIDUAL.is_image
    assert not ModelFamily.SEQUENCE.is_image


def test_approximation_families_are_labelled():
    labelled = {f for f in ModelFamily if f.approximates}
    assert labelled == {
        ModelFamily.ENSEMBLE,
        ModelFamily.BOOSTING,
        ModelFamily.MARGIN,
        ModelFamily.CLUSTERING,
    }
    assert "no trees" in ModelFamily.ENSEMBLE.approximates
